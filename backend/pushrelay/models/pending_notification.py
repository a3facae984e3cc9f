"""PendingNotification model - queued notifications and their delivery state."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, JSON

from ..database import Base


class NotificationState:
    """Delivery states. Delivered and failed are terminal."""
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


class DeliveryMethod:
    """Channel strategy recorded on a notification."""
    WEB_PUSH = "web_push"
    FCM = "fcm"
    FALLBACK_QUEUED = "fallback_queued"

    ALL = (WEB_PUSH, FCM, FALLBACK_QUEUED)


class PendingNotification(Base):
    """A notification waiting to be delivered to one device."""

    __tablename__ = "pending_notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Not a foreign key: a notification may reference a device that never registered
    device_id = Column(String, nullable=False, index=True)

    title = Column(String, nullable=False)
    body = Column(Text, nullable=False, default="")
    data = Column(JSON, nullable=False, default=dict)
    tag = Column(String, nullable=True)

    delivery_method = Column(String, nullable=True)  # web_push, fcm, fallback_queued
    state = Column(String, nullable=False, default=NotificationState.PENDING, index=True)
    attempt_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    last_attempt_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)

    @property
    def payload(self) -> dict:
        """Notification content as handed to the channel senders."""
        payload = {"title": self.title, "body": self.body, "data": dict(self.data or {})}
        if self.tag:
            payload["tag"] = self.tag
        return payload
