"""Pydantic schemas for API request/response models."""
from .device import (
    WebPushCredential,
    WebPushSubscription,
    DeviceRegister,
    DeviceRegisterResponse,
    DeviceResponse,
    DeviceCount,
)
from .notification import (
    NotificationCreate,
    NotificationQueued,
    NotificationResponse,
)
from .stats import (
    CycleStatsResponse,
    NotificationStats,
)

__all__ = [
    "WebPushCredential",
    "WebPushSubscription",
    "DeviceRegister",
    "DeviceRegisterResponse",
    "DeviceResponse",
    "DeviceCount",
    "NotificationCreate",
    "NotificationQueued",
    "NotificationResponse",
    "CycleStatsResponse",
    "NotificationStats",
]
