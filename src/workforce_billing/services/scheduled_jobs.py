"""
Scheduled Jobs Service
Runs the billing cycle, subscription lifecycle and usage adjustment passes in
the background. The process owns one SchedulerHandle (idle -> running -> idle).
"""
import logging
import threading
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, Optional
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from ..config import config
from ..logging_config import new_correlation_id
from .billing_gateway import BillingGateway, get_billing_gateway
from .billing_service import BillingService
from .metrics import JobTimer, increment_counter
from .subscription_service import SubscriptionService

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


def _default_session_factory() -> Session:
    from ..db.engine import SessionLocal
    return SessionLocal()


def _default_gateway_factory() -> BillingGateway:
    return get_billing_gateway(config.PAYMENT_PROVIDER, config)


class SchedulerHandle:
    """
    Owns the background scheduler for billing automation

    start() and stop() are idempotent state transitions. Each job run opens its
    own database session and never raises; failures are logged and counted.
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        gateway_factory: Optional[Callable[[], BillingGateway]] = None,
        interval_seconds: Optional[int] = None,
        first_run_delay_seconds: Optional[int] = None,
    ):
        self.session_factory = session_factory or _default_session_factory
        self.gateway_factory = gateway_factory or _default_gateway_factory
        self.interval_seconds = interval_seconds or config.BILLING_INTERVAL_SECONDS
        self.first_run_delay_seconds = (
            config.BILLING_FIRST_RUN_DELAY_SECONDS if first_run_delay_seconds is None else first_run_delay_seconds
        )
        self._scheduler: Optional[BackgroundScheduler] = None
        self._state = SchedulerState.IDLE
        self._state_lock = threading.Lock()
        # Held while a billing cycle is running
        self._cycle_lock = threading.Lock()

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == SchedulerState.RUNNING

    def start(self) -> bool:
        """
        Register the billing jobs and start the scheduler

        Returns:
            True if the handle moved from idle to running
        """
        with self._state_lock:
            if self._state == SchedulerState.RUNNING:
                logger.warning("Billing scheduler already running")
                return False

            scheduler = BackgroundScheduler(
                job_defaults={
                    'coalesce': True,  # Combine missed runs
                    'max_instances': 1,  # Only one instance at a time
                    'misfire_grace_time': 300
                }
            )

            scheduler.add_job(
                func=self.run_billing_cycle,
                trigger=IntervalTrigger(seconds=self.interval_seconds),
                next_run_time=datetime.now() + timedelta(seconds=self.first_run_delay_seconds),
                id='billing_cycle',
                name='Process due billing cycles',
                replace_existing=True
            )
            logger.info(
                f"Registered billing cycle job (every {self.interval_seconds}s, "
                f"first run in {self.first_run_delay_seconds}s)"
            )

            scheduler.add_job(
                func=self.run_subscription_lifecycle,
                trigger=CronTrigger(minute=30),  # Every hour at minute 30
                id='subscription_lifecycle',
                name='Manage subscription statuses',
                replace_existing=True
            )
            logger.info("Registered subscription lifecycle job (hourly at :30)")

            scheduler.add_job(
                func=self.run_usage_adjustments,
                trigger=CronTrigger(hour=1, minute=0),  # Daily at 1 AM
                id='usage_adjustments',
                name='Usage-based billing adjustments',
                replace_existing=True
            )
            logger.info("Registered usage adjustment job (daily at 1 AM)")

            scheduler.start()
            self._scheduler = scheduler
            self._state = SchedulerState.RUNNING
            logger.info("🚀 Automated billing system started")
            return True

    def stop(self, wait: bool = True) -> bool:
        """
        Shut the scheduler down

        Returns:
            True if the handle moved from running to idle
        """
        with self._state_lock:
            if self._state == SchedulerState.IDLE:
                return False

            if self._scheduler is not None and self._scheduler.running:
                self._scheduler.shutdown(wait=wait)
            self._scheduler = None
            self._state = SchedulerState.IDLE
            logger.info("⏹️ Automated billing system stopped")
            return True

    def get_jobs(self):
        if self._scheduler is None:
            return []
        return self._scheduler.get_jobs()

    def run_billing_cycle(self, now: Optional[datetime] = None) -> Optional[Dict[str, int]]:
        """Bill all due subscriptions; skipped if a previous cycle is still running"""
        if not self._cycle_lock.acquire(blocking=False):
            logger.warning("Billing cycle still in progress; skipping this run")
            increment_counter("billing_runs_skipped_total")
            return None
        try:
            return self._run_job(
                "billing_cycle",
                lambda db: BillingService(db, gateway=self.gateway_factory()).process_due_billing(now=now),
            )
        finally:
            self._cycle_lock.release()

    def run_subscription_lifecycle(self, now: Optional[datetime] = None) -> Optional[Dict[str, int]]:
        """Trial expiry, failed payment and renewal passes"""
        return self._run_job(
            "subscription_lifecycle",
            lambda db: SubscriptionService(db, gateway=self.gateway_factory()).manage_subscription_statuses(now=now),
        )

    def run_usage_adjustments(self, now: Optional[datetime] = None) -> Optional[Dict[str, int]]:
        """Proration and overage for every active subscription"""
        return self._run_job(
            "usage_adjustments",
            lambda db: BillingService(db, gateway=self.gateway_factory()).adjust_all_usage(now=now),
        )

    def _run_job(self, job_name: str, work: Callable[[Session], Dict[str, int]]) -> Optional[Dict[str, int]]:
        correlation_id = new_correlation_id(job_name.split("_")[0])
        logger.info("=" * 60)
        logger.info(f"Starting scheduled {job_name} job ({correlation_id})")
        logger.info("=" * 60)

        db = None
        try:
            with JobTimer(job_name):
                db = self.session_factory()
                stats = work(db)
            increment_counter("billing_job_results_total", labels={"job": job_name, "status": "success"})
            logger.info(f"{job_name} job summary: {stats}")
            return stats
        except Exception as e:
            increment_counter("billing_job_results_total", labels={"job": job_name, "status": "fatal_error"})
            logger.error(f"Fatal error during {job_name} job: {e}", exc_info=True)
            return None
        finally:
            if db is not None:
                db.close()
            logger.info(f"{job_name} job finished")
            logger.info("=" * 60)
