"""
Notification Background Scheduling
==================================

APScheduler wrapper that drains the notification queue on a fixed interval.
"""

from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

QUEUE_JOB_ID = "notification_queue_drain"


class NotificationScheduler:
    """
    Wrapper for APScheduler for background queue processing.

    max_instances=1 keeps scheduled drains from overlapping; manual drains
    through the API can still run alongside one.
    """

    def __init__(self, interval_seconds: int = 30):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[object]]) -> None:
        """Start the scheduler with the given job function."""
        if self._running:
            logger.warning("Notification scheduler already running")
            return

        if self.interval_seconds <= 0:
            logger.info("Notification scheduler disabled (interval is 0)")
            return

        self._scheduler = AsyncIOScheduler()

        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id=QUEUE_JOB_ID,
            name="Notification Queue Drain",
            misfire_grace_time=self.interval_seconds,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        self._scheduler.start()
        self._running = True

        logger.info(
            "Notification scheduler started",
            extra={"interval_seconds": self.interval_seconds}
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=True)

        self._running = False
        logger.info("Notification scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running
