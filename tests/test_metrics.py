"""
Tests for metrics collection and job timing
"""
import pytest
import time

from workforce_billing.services.metrics import JobTimer, MetricsCollector, get_metrics_collector


class TestMetricsCollector:
    """Test the in-process collector"""

    def test_counter_labels_are_independent(self):
        collector = MetricsCollector()

        collector.increment_counter("billing_failures_total", labels={"stage": "cycle"})
        collector.increment_counter("billing_failures_total", labels={"stage": "cycle"})
        collector.increment_counter("billing_failures_total", labels={"stage": "invoice"})

        assert collector.get_counter("billing_failures_total", {"stage": "cycle"}) == 2.0
        assert collector.get_counter("billing_failures_total", {"stage": "invoice"}) == 1.0
        assert collector.get_counter("billing_failures_total") == 0.0

    def test_histogram_stats(self):
        collector = MetricsCollector()

        for value in (0.5, 1.5, 1.0):
            collector.record_histogram("billing_job_duration_seconds", value, {"job": "billing_cycle"})

        stats = collector.get_histogram_stats("billing_job_duration_seconds", {"job": "billing_cycle"})
        assert stats["count"] == 3
        assert stats["sum"] == 3.0
        assert stats["min"] == 0.5
        assert stats["max"] == 1.5
        assert stats["avg"] == 1.0

    def test_empty_histogram(self):
        stats = MetricsCollector().get_histogram_stats("missing")

        assert stats["count"] == 0

    def test_prometheus_format(self):
        collector = MetricsCollector()
        collector.increment_counter("billing_records_created_total", labels={"kind": "overage"})
        collector.record_histogram("billing_job_duration_seconds", 0.25, {"job": "usage_adjustments"})

        output = collector.format_prometheus()

        assert "# TYPE billing_records_created_total counter" in output
        assert 'billing_records_created_total{kind="overage"} 1.0' in output
        assert "# TYPE billing_job_duration_seconds summary" in output
        assert 'billing_job_duration_seconds{job="usage_adjustments",quantile="0.5"} 0.25' in output
        assert 'billing_job_duration_seconds_count{job="usage_adjustments"} 1' in output

    def test_reset(self):
        collector = MetricsCollector()
        collector.increment_counter("billing_runs_skipped_total")

        collector.reset()

        assert collector.get_counter("billing_runs_skipped_total") == 0.0


class TestJobTimer:
    """Test the job timing context manager"""

    def test_successful_run(self):
        collector = get_metrics_collector()

        with JobTimer("billing_cycle"):
            time.sleep(0.01)

        assert collector.get_counter("billing_job_runs_total", {"job": "billing_cycle"}) == 1.0
        assert collector.get_counter("billing_job_errors_total", {"job": "billing_cycle"}) == 0.0
        stats = collector.get_histogram_stats("billing_job_duration_seconds", {"job": "billing_cycle"})
        assert stats["count"] == 1
        assert stats["sum"] >= 0.01

    def test_failed_run_counted_and_raised(self):
        collector = get_metrics_collector()

        with pytest.raises(RuntimeError):
            with JobTimer("usage_adjustments"):
                raise RuntimeError("boom")

        assert collector.get_counter("billing_job_errors_total", {"job": "usage_adjustments"}) == 1.0
