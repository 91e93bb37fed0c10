"""Periodic and on-demand tracking cycles."""

import logging
import threading
from datetime import datetime, timezone
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.cron import CronTrigger

from webtracker.cycle import CycleRunner, CycleSummary
from webtracker.errors import ConfigurationError, CycleInProgressError
from webtracker.models import utcnow

logger = logging.getLogger(__name__)

JOB_ID = "tracking_cycle"


class TrackingScheduler:
    """
    Runs the cycle on a crontab schedule and on demand, never two at once.

    Pass a ``BlockingScheduler`` to make ``start`` block the calling thread.
    """

    def __init__(
        self,
        runner: CycleRunner,
        cron: str,
        scheduler: BaseScheduler | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        try:
            self.trigger = CronTrigger.from_crontab(cron, timezone=timezone.utc)
        except ValueError as e:
            raise ConfigurationError(f"Invalid CYCLE_CRON {cron!r}: {e}") from e
        self.runner = runner
        self.cron = cron
        self.scheduler = scheduler or BackgroundScheduler(timezone=timezone.utc)
        self.clock = clock
        self._lock = threading.Lock()
        self.last_started: datetime | None = None
        self.last_finished: datetime | None = None
        self.last_summary: CycleSummary | None = None

    def start(self) -> None:
        self.scheduler.add_job(
            self._scheduled_run,
            trigger=self.trigger,
            id=JOB_ID,
            replace_existing=True,
            max_instances=1,  # Prevent overlapping runs
            coalesce=True,
            misfire_grace_time=300,
        )
        logger.info("Scheduler: tracking cycle on '%s'", self.cron)
        self.scheduler.start()

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")

    def run_now(self) -> CycleSummary:
        """Run one cycle in the calling thread; raises if one is already running."""
        if not self._lock.acquire(blocking=False):
            raise CycleInProgressError("A tracking cycle is already running")
        try:
            self.last_started = self.clock()
            summary = self.runner.run()
            self.last_summary = summary
            return summary
        finally:
            self.last_finished = self.clock()
            self._lock.release()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    def status(self) -> dict:
        job = self.scheduler.get_job(JOB_ID)
        next_run = getattr(job, "next_run_time", None) if job else None
        return {
            "running": self.running,
            "last_started": self.last_started,
            "last_finished": self.last_finished,
            "last_summary": self.last_summary.to_dict() if self.last_summary else None,
            "next_run": next_run,
        }

    def _scheduled_run(self) -> None:
        try:
            self.run_now()
        except CycleInProgressError:
            logger.warning("Skipping scheduled cycle: previous cycle still running")
