"""Certificate check scheduler.

Runs the orchestrator once at start, then again ``check_interval`` seconds
after each run completes. Runs are chained through one-shot date jobs rather
than an interval trigger, so a slow run delays the next one instead of
overlapping with it.
"""

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler

from .errors import OrchestrationError, Stage
from .models import OrchestrationResult
from .orchestrator import RenewalOrchestrator

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    """Scheduler states."""
    IDLE = "idle"        # Waiting for the next run
    RUNNING = "running"  # Orchestrator in progress


def create_blocking_scheduler() -> BlockingScheduler:
    return BlockingScheduler(
        jobstores={
            'default': MemoryJobStore()
        },
        executors={
            'default': ThreadPoolExecutor(max_workers=1)
        },
        job_defaults={
            'coalesce': True,
            'max_instances': 1,
            'misfire_grace_time': None,
        },
        timezone=timezone.utc,
    )


class CertificateScheduler:
    """Scheduler for automatic certificate checks of one domain."""

    def __init__(
        self,
        orchestrator: RenewalOrchestrator,
        domain: str,
        email: str,
        check_interval: int = 10800,
        scheduler: Optional[BaseScheduler] = None,
    ):
        """Initialize scheduler."""
        self.orchestrator = orchestrator
        self.domain = domain
        self.email = email
        self.check_interval = check_interval
        self.scheduler = scheduler or create_blocking_scheduler()

        self.state = SchedulerState.IDLE
        self.run_count = 0
        self.fail_count = 0
        self.last_attempt: Optional[datetime] = None
        self.last_success: Optional[datetime] = None
        self.last_result: Optional[OrchestrationResult] = None
        self._stopping = False

    def start(self):
        """Schedule the first check immediately and run until stopped.

        Blocks when the underlying scheduler is a ``BlockingScheduler``.
        """
        self._stopping = False
        self._schedule_next(delay=0)
        logger.info(f"Scheduler started for {self.domain} with check interval: {self.check_interval}s")
        self.scheduler.start()

    def stop(self):
        """Stop the scheduler, waiting for a running check to finish."""
        self._stopping = True
        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)
            logger.info("Scheduler stopped")

    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self.scheduler.running

    def run_check(self) -> OrchestrationResult:
        """Run one certificate check, then schedule the next one."""
        try:
            return self.run_once()
        finally:
            if not self._stopping:
                self._schedule_next(delay=self.check_interval)

    def run_once(self) -> OrchestrationResult:
        """Run one certificate check and log its outcome; never raises."""
        self.state = SchedulerState.RUNNING
        self.last_attempt = datetime.now(timezone.utc)
        self.run_count += 1
        logger.info(f"Checking certificate for {self.domain}")

        try:
            result = self.orchestrator.ensure_valid_certificate(self.domain, self.email)
        except Exception as e:
            logger.exception(f"Unexpected error checking certificate for {self.domain}")
            result = OrchestrationResult(
                domain=self.domain,
                error=OrchestrationError(Stage.UNEXPECTED, str(e) or type(e).__name__),
            )
        finally:
            self.state = SchedulerState.IDLE

        self.last_result = result
        if result.ok:
            self.last_success = self.last_attempt
            logger.info(f"Certificate check done: {result.summary()}")
            for warning in result.warnings:
                logger.warning(f"Certificate check warning: {warning}")
        else:
            self.fail_count += 1
            logger.error(f"Certificate check failed: {result.summary()}")
        return result

    def _schedule_next(self, delay: float):
        run_date = datetime.now(timezone.utc) + timedelta(seconds=delay)
        job = self.scheduler.add_job(
            self.run_check,
            'date',
            run_date=run_date,
            id=f"certificate_check_{self.domain}_{run_date.timestamp()}",
        )
        if delay:
            logger.info(f"Next certificate check for {self.domain} at {run_date:%Y-%m-%d %H:%M:%S} UTC")
        return job
