"""Batch processor - drives one delivery cycle over the pending queue.

A cycle fetches the oldest deliverable notifications, dispatches them
concurrently (each row in its own session so a failing row cannot take the
rest of the batch down), writes the outcome back and returns counters.

Only one cycle runs at a time per processor instance: a call made while a
cycle is in flight returns empty stats without touching the store.
"""
import asyncio
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy import select, delete, update
from sqlalchemy.exc import SQLAlchemyError

from ..database import Database
from ..exceptions import StoreError
from ..models import Device, DeliveryLog, PendingNotification, NotificationState, DeliveryMethod
from ..utils.db_utils import retry_on_lock
from .dispatch import (
    DEVICE_NOT_FOUND_ERROR,
    DispatchOutcome,
    DispatchPolicy,
    Outcome,
    apply_outcome,
    invalidate_credential,
)

logger = logging.getLogger(__name__)

EXPIRED_ERROR = "expired without delivery channel"


@dataclass
class CycleStats:
    """Counters for one processing cycle."""
    processed: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0

    def record(self, result: DispatchOutcome):
        self.processed += 1
        if result.outcome == Outcome.DELIVERED:
            self.sent += 1
        elif result.outcome in (Outcome.PERMANENT_CHANNEL_FAILURE, Outcome.TRANSIENT_FAILURE):
            self.failed += 1
        else:
            self.skipped += 1

    def as_dict(self) -> dict:
        return asdict(self)


class BatchProcessor:
    """Processes pending notifications in bounded batches."""

    def __init__(
        self,
        database: Database,
        policy: DispatchPolicy,
        batch_size: int = 10,
        max_retries: int = 3,
        max_concurrent: int = 10,
        retention: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.database = database
        self.policy = policy
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.max_concurrent = max_concurrent
        self.retention = retention
        self.clock = clock

        self._in_progress = False
        self._idle = asyncio.Event()
        self._idle.set()
        self.last_stats: Optional[CycleStats] = None
        self.last_run_at: Optional[datetime] = None

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    async def wait_idle(self):
        """Wait for an in-flight cycle to finish."""
        await self._idle.wait()

    async def run_cycle(self) -> CycleStats:
        """Run one processing cycle.

        Returns:
            Cycle counters; all zero if another cycle was already running

        Raises:
            StoreError: if the pending queue could not be read
        """
        if self._in_progress:
            logger.info("Processing cycle already running, skipping")
            return CycleStats()

        self._in_progress = True
        self._idle.clear()
        try:
            stats = await self._run_cycle()
            self.last_stats = stats
            self.last_run_at = self.clock()
            return stats
        finally:
            self._in_progress = False
            self._idle.set()

    async def _run_cycle(self) -> CycleStats:
        stats = CycleStats()
        notification_ids = await self.fetch_batch()
        if not notification_ids:
            logger.debug("No pending notifications")
            return stats

        logger.info(f"Processing {len(notification_ids)} pending notifications")

        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def process_with_limit(notification_id: int) -> DispatchOutcome:
            async with semaphore:
                return await self._process_notification(notification_id)

        results = await asyncio.gather(
            *[process_with_limit(nid) for nid in notification_ids],
            return_exceptions=True,
        )

        for notification_id, result in zip(notification_ids, results):
            if isinstance(result, BaseException):
                # _process_notification already converts errors; this is the last resort
                logger.error(f"Unhandled error processing notification {notification_id}: {result}")
                result = DispatchOutcome(Outcome.TRANSIENT_FAILURE, error=str(result))
            if result is not None:
                stats.record(result)

        logger.info(
            f"Cycle complete: {stats.processed} processed, {stats.sent} sent, "
            f"{stats.failed} failed, {stats.skipped} skipped"
        )
        if len(notification_ids) >= self.batch_size and stats.skipped == stats.processed:
            logger.warning(
                f"Entire batch of {stats.processed} skipped (no delivery channel); newer "
                f"notifications wait until these expire after {self.retention.days} days"
            )
        return stats

    async def fetch_batch(self) -> List[int]:
        """Ids of the oldest deliverable notifications, up to batch_size."""
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    select(PendingNotification.id)
                    .where(
                        PendingNotification.state == NotificationState.PENDING,
                        PendingNotification.attempt_count < self.max_retries,
                    )
                    .order_by(PendingNotification.created_at.asc(), PendingNotification.id.asc())
                    .limit(self.batch_size)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to fetch pending notifications: {e}") from e

    async def _process_notification(self, notification_id: int) -> Optional[DispatchOutcome]:
        """Dispatch one notification and persist the outcome in its own session."""
        try:
            async with self.database.session() as session:
                notification = await session.get(PendingNotification, notification_id)
                if (
                    notification is None
                    or notification.state != NotificationState.PENDING
                    or notification.attempt_count >= self.max_retries
                ):
                    # Changed since the fetch; nothing to do
                    return None

                result = await session.execute(
                    select(Device).where(Device.device_id == notification.device_id)
                )
                device = result.scalar_one_or_none()

                now = self.clock()
                if device is None:
                    logger.warning(
                        f"Notification {notification.id} references unknown device {notification.device_id}"
                    )
                    outcome = DispatchOutcome(Outcome.DEVICE_NOT_FOUND, error=DEVICE_NOT_FOUND_ERROR)
                else:
                    outcome = await self.policy.dispatch(notification, device, now)
                    invalidate_credential(device, outcome)

                apply_outcome(notification, outcome, self.max_retries, now)
                session.add(DeliveryLog(
                    notification_id=notification.id,
                    device_id=notification.device_id,
                    channel=outcome.channel,
                    outcome=outcome.outcome.value,
                    error=outcome.error,
                    created_at=now,
                ))
                await retry_on_lock(session.commit)

                if outcome.outcome == Outcome.DELIVERED:
                    logger.info(f"Notification {notification.id} delivered via {outcome.channel}")
                elif outcome.error:
                    logger.warning(
                        f"Notification {notification.id} {outcome.outcome.value}: {outcome.error} "
                        f"(attempt {notification.attempt_count}/{self.max_retries})"
                    )
                return outcome
        except Exception as e:
            logger.error(f"Error processing notification {notification_id}: {e}")
            return await self._record_transient_failure(notification_id, str(e))

    async def _record_transient_failure(self, notification_id: int, error: str) -> DispatchOutcome:
        """Count an attempt for a row whose processing blew up."""
        outcome = DispatchOutcome(Outcome.TRANSIENT_FAILURE, error=error)
        try:
            async with self.database.session() as session:
                notification = await session.get(PendingNotification, notification_id)
                if notification is not None and notification.state == NotificationState.PENDING:
                    apply_outcome(notification, outcome, self.max_retries, self.clock())
                    await retry_on_lock(session.commit)
        except SQLAlchemyError as e:
            logger.error(f"Could not record failure for notification {notification_id}: {e}")
        return outcome

    async def cleanup(self) -> int:
        """Delete failed rows past the retention window, then expire stale queued rows.

        Rows that never had a channel (fallback_queued, no attempts) and are
        older than the window are marked failed; the next sweep deletes them.
        Rows still retrying through a channel are left alone.

        Returns:
            Number of deleted notifications
        """
        cutoff = self.clock() - self.retention
        async with self.database.session() as session:
            result = await session.execute(
                delete(PendingNotification).where(
                    PendingNotification.state == NotificationState.FAILED,
                    PendingNotification.created_at < cutoff,
                )
            )
            deleted = result.rowcount or 0
            expired = await session.execute(
                update(PendingNotification)
                .where(
                    PendingNotification.state == NotificationState.PENDING,
                    PendingNotification.delivery_method == DeliveryMethod.FALLBACK_QUEUED,
                    PendingNotification.attempt_count == 0,
                    PendingNotification.created_at < cutoff,
                )
                .values(state=NotificationState.FAILED, last_error=EXPIRED_ERROR)
            )
            await retry_on_lock(session.commit)

        logger.info(
            f"Cleaned up {deleted} failed notifications older than {self.retention.days} days, "
            f"expired {expired.rowcount or 0} without a delivery channel"
        )
        return deleted
