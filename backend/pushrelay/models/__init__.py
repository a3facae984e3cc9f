"""Database models."""
from .device import Device
from .pending_notification import PendingNotification, NotificationState, DeliveryMethod
from .delivery_log import DeliveryLog

__all__ = ["Device", "PendingNotification", "NotificationState", "DeliveryMethod", "DeliveryLog"]
