"""Notification enqueue - the producer side of the pending queue."""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..models import PendingNotification, NotificationState
from ..utils.db_utils import retry_on_lock
from .dedup import TagDeduplicator

logger = logging.getLogger(__name__)


class NotificationQueue:
    """Inserts pending notifications, suppressing repeated tags."""

    def __init__(self, deduplicator: Optional[TagDeduplicator] = None):
        self.deduplicator = deduplicator or TagDeduplicator()

    async def enqueue(
        self,
        session: AsyncSession,
        device_id: str,
        title: str,
        body: str = "",
        data: Optional[Dict[str, Any]] = None,
        tag: Optional[str] = None,
        delivery_method: Optional[str] = None,
    ) -> Optional[PendingNotification]:
        """Queue a notification for a device.

        Returns:
            The new row, or None if the same tag was queued for this device
            within the deduplication window
        """
        if not self.deduplicator.should_accept(device_id, tag):
            return None

        notification = PendingNotification(
            device_id=device_id,
            title=title,
            body=body,
            data=data or {},
            tag=tag,
            delivery_method=delivery_method,
            state=NotificationState.PENDING,
            attempt_count=0,
        )
        session.add(notification)
        try:
            await retry_on_lock(session.commit)
        except Exception:
            if tag:
                self.deduplicator.forget(device_id, tag)
            raise
        await session.refresh(notification)

        logger.info(f"Queued notification {notification.id} for device {device_id}")
        return notification
