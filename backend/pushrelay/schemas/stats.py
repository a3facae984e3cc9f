"""Delivery statistics schemas."""
from datetime import datetime
from typing import Dict, Optional
from pydantic import BaseModel


class CycleStatsResponse(BaseModel):
    """Counters for one processing cycle."""
    processed: int
    sent: int
    failed: int
    skipped: int


class NotificationStats(BaseModel):
    """Overview of the queue, the device registry and the last cycle."""
    total_notifications: int
    pending: int
    delivered: int
    failed: int
    by_delivery_method: Dict[str, int]
    devices_total: int
    devices_active: int
    devices_with_fcm: int
    devices_with_webpush: int
    stale_fcm_tokens: int
    deliveries_last_24h: int
    last_cycle: Optional[CycleStatsResponse] = None
    last_cycle_at: Optional[datetime] = None
