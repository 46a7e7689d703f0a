"""
Prometheus metrics for billing runs
In-process counters and timing summaries rendered in Prometheus text format
"""
import time
from typing import Dict, Optional, Tuple, List
from collections import defaultdict
from threading import Lock
import logging

logger = logging.getLogger(__name__)

LabelKey = Tuple[Tuple[str, str], ...]

# Samples kept per timing series
MAX_SAMPLES = 1000


def _label_key(labels: Optional[Dict[str, str]]) -> LabelKey:
    return tuple(sorted((labels or {}).items()))


def _render_labels(label_key: LabelKey, extra: Optional[Tuple[str, str]] = None) -> str:
    pairs = list(label_key) + ([extra] if extra else [])
    if not pairs:
        return ""
    return "{" + ",".join(f'{k}="{v}"' for k, v in pairs) + "}"


class MetricsCollector:
    """
    Thread-safe metrics collector

    Counters: billing_runs_total, billing_records_created_total, billing_failures_total, ...
    Timings: billing_job_duration_seconds (rendered as a summary with p50/p95/p99)
    """

    def __init__(self):
        self._lock = Lock()
        self._counters: Dict[str, Dict[LabelKey, float]] = defaultdict(lambda: defaultdict(float))
        self._timings: Dict[str, Dict[LabelKey, List[float]]] = defaultdict(lambda: defaultdict(list))

    def increment_counter(self, name: str, value: float = 1.0, labels: Optional[Dict[str, str]] = None):
        """Increment a counter, optionally keyed by labels (e.g. {"job": "billing_cycle"})"""
        with self._lock:
            self._counters[name][_label_key(labels)] += value

    def record_histogram(self, name: str, value: float, labels: Optional[Dict[str, str]] = None):
        """Record a timing sample in seconds"""
        with self._lock:
            samples = self._timings[name][_label_key(labels)]
            samples.append(value)
            if len(samples) > MAX_SAMPLES:
                del samples[:-MAX_SAMPLES]

    def get_counter(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        with self._lock:
            return self._counters.get(name, {}).get(_label_key(labels), 0.0)

    def get_histogram_stats(self, name: str, labels: Optional[Dict[str, str]] = None) -> Dict[str, float]:
        """Count, sum, min, max and average of a timing series"""
        with self._lock:
            values = list(self._timings.get(name, {}).get(_label_key(labels), []))
        if not values:
            return {"count": 0, "sum": 0, "min": 0, "max": 0, "avg": 0}
        return {
            "count": len(values),
            "sum": sum(values),
            "min": min(values),
            "max": max(values),
            "avg": sum(values) / len(values),
        }

    def reset(self):
        with self._lock:
            self._counters.clear()
            self._timings.clear()

    def format_prometheus(self) -> str:
        """Render all series in Prometheus text exposition format"""
        lines = []
        with self._lock:
            for name in sorted(self._counters):
                lines.append(f"# TYPE {name} counter")
                for label_key, value in sorted(self._counters[name].items()):
                    lines.append(f"{name}{_render_labels(label_key)} {value}")

            for name in sorted(self._timings):
                lines.append(f"# TYPE {name} summary")
                for label_key, values in sorted(self._timings[name].items()):
                    if not values:
                        continue
                    ordered = sorted(values)
                    for quantile in ("0.5", "0.95", "0.99"):
                        index = min(len(ordered) - 1, int(len(ordered) * float(quantile)))
                        lines.append(f"{name}{_render_labels(label_key, ('quantile', quantile))} {ordered[index]}")
                    lines.append(f"{name}_count{_render_labels(label_key)} {len(values)}")
                    lines.append(f"{name}_sum{_render_labels(label_key)} {sum(values)}")

        return "\n".join(lines) + "\n"


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector instance"""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()
    return _metrics_collector


def increment_counter(name: str, value: float = 1.0, labels: Optional[Dict[str, str]] = None):
    """Convenience function to increment counter"""
    get_metrics_collector().increment_counter(name, value, labels)


def record_histogram(name: str, value: float, labels: Optional[Dict[str, str]] = None):
    """Convenience function to record histogram"""
    get_metrics_collector().record_histogram(name, value, labels)


class JobTimer:
    """Context manager timing one scheduled job run"""

    def __init__(self, job_name: str):
        self.labels = {"job": job_name}
        self.start_time = None

    def __enter__(self):
        self.start_time = time.monotonic()
        increment_counter("billing_job_runs_total", labels=self.labels)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        record_histogram("billing_job_duration_seconds", time.monotonic() - self.start_time, self.labels)
        if exc_type is not None:
            increment_counter("billing_job_errors_total", labels=self.labels)
        return False
