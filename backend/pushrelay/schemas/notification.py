"""Notification enqueue and status schemas."""
from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class NotificationCreate(BaseModel):
    """Request to queue a notification for one device."""
    device_id: str = Field(..., min_length=1, max_length=255)
    title: str = Field(..., min_length=1, max_length=255)
    body: str = Field(default="", max_length=4000)
    data: Dict[str, Any] = Field(default_factory=dict)
    # Stable tag for repeatable source events, e.g. "sale-123"
    tag: Optional[str] = Field(None, min_length=1, max_length=255)
    delivery_method: Optional[str] = Field(None, pattern="^(web_push|fcm|fallback_queued)$")


class NotificationQueued(BaseModel):
    """Enqueue result; queued is False when the tag was seen recently."""
    queued: bool
    id: Optional[int] = None
    reason: Optional[str] = None


class NotificationResponse(BaseModel):
    """Schema for a notification in API responses."""
    id: int
    device_id: str
    title: str
    body: str
    data: Dict[str, Any]
    tag: Optional[str] = None
    delivery_method: Optional[str] = None
    state: str  # pending, delivered, failed
    attempt_count: int
    last_error: Optional[str] = None
    created_at: datetime
    last_attempt_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None

    class Config:
        from_attributes = True
