"""APScheduler-backed deferred executor for retry wake-ups."""

from datetime import datetime, timedelta, timezone

from apscheduler.jobstores.base import JobLookupError  # type: ignore
from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore
from apscheduler.triggers.date import DateTrigger  # type: ignore

from shared.infrastructure.observability.logger import get_logger

from ..domain.protocols.deferred_executor import JobCallback

logger = get_logger(__name__)


class APSchedulerExecutor:
    """
    Arms one-shot date-triggered jobs on an AsyncIOScheduler.

    Jobs live in the default in-memory job store: they are wake-up calls
    only. The retry state they act on is in the quota store, and the
    startup recovery scan re-arms whatever a dead process left behind.
    """

    def __init__(self, scheduler: AsyncIOScheduler | None = None, misfire_grace_seconds: int = 3600):
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self.misfire_grace_seconds = misfire_grace_seconds

    def start(self) -> None:
        """Start the scheduler."""
        if not self.scheduler.running:
            logger.info("Starting retry scheduler...")
            self.scheduler.start()
            logger.info("Retry scheduler started")

    def arm(self, job_id: str, delay_ms: int, callback: JobCallback) -> None:
        run_date = datetime.now(timezone.utc) + timedelta(milliseconds=max(delay_ms, 0))
        self.scheduler.add_job(
            callback,
            DateTrigger(run_date=run_date),
            id=job_id,
            name=f"Retry {job_id}",
            replace_existing=True,
            misfire_grace_time=self.misfire_grace_seconds,
            coalesce=True,
        )
        logger.debug("Retry job armed", job_id=job_id, run_date=run_date.isoformat())

    def cancel(self, job_id: str) -> None:
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            pass

    def stop(self) -> None:
        """Stop the scheduler."""
        if self.scheduler.running:
            logger.info("Stopping retry scheduler...")
            self.scheduler.shutdown(wait=False)
            logger.info("Retry scheduler stopped")
