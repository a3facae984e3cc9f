"""Scheduler service - runs processing cycles and the cleanup sweep periodically.

Jobs:
- process_pending: one BatchProcessor cycle immediately, then every
  PROCESS_INTERVAL_MINUTES (default 5)
- cleanup: retention sweep plus maintenance report every
  CLEANUP_INTERVAL_HOURS (default 24)

Both jobs use max_instances=1; the processor's own single-flight latch also
covers cycles triggered on demand through the API.
"""
import logging
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..exceptions import StoreError
from .processor import BatchProcessor
from .stats import get_notification_stats

logger = logging.getLogger(__name__)


class SchedulerService:
    """Service for running delivery cycles on an interval."""

    def __init__(
        self,
        processor: BatchProcessor,
        process_interval_minutes: int = 5,
        cleanup_interval_hours: int = 24,
        stale_token_days: int = 30,
    ):
        self.processor = processor
        self.process_interval_minutes = process_interval_minutes
        self.cleanup_interval_hours = cleanup_interval_hours
        self.stale_token_days = stale_token_days
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Start the scheduler. Must be called from within the event loop."""
        if self._running:
            return

        self.scheduler = AsyncIOScheduler()

        self.scheduler.add_job(
            self._process_pending,
            trigger=IntervalTrigger(minutes=self.process_interval_minutes),
            id="process_pending",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(),  # Run immediately, then on the interval
        )

        self.scheduler.add_job(
            self._cleanup,
            trigger=IntervalTrigger(hours=self.cleanup_interval_hours),
            id="cleanup",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        self.scheduler.start()
        self._running = True
        logger.info(
            f"Scheduler started (interval={self.process_interval_minutes}m, "
            f"cleanup={self.cleanup_interval_hours}h)"
        )

    async def stop(self):
        """Stop scheduling new cycles and let an in-flight cycle finish."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            if self.processor.in_progress:
                logger.info("Waiting for the current cycle to finish")
            await self.processor.wait_idle()
            logger.info("Scheduler stopped")

    async def _process_pending(self):
        """Run one cycle; errors are logged and the next tick retries."""
        try:
            await self.processor.run_cycle()
        except StoreError as e:
            logger.error(f"Processing cycle aborted: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error in processing cycle: {e}")

    async def _cleanup(self):
        """Delete expired notifications and log the maintenance report."""
        try:
            await self.processor.cleanup()
            async with self.processor.database.session() as session:
                stats = await get_notification_stats(
                    session, self.processor, stale_token_days=self.stale_token_days
                )
            logger.info(
                f"Maintenance: {stats.pending} pending, {stats.delivered} delivered, "
                f"{stats.failed} failed, {stats.devices_active} active devices, "
                f"{stats.stale_fcm_tokens} FCM tokens older than {self.stale_token_days} days"
            )
        except Exception as e:
            logger.error(f"Error during cleanup: {e}")
