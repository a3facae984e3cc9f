"""Device registration schemas."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class WebPushCredential(BaseModel):
    """Complete Web Push subscription credential; all three parts required."""
    endpoint: str = Field(..., min_length=1, pattern=r"^https://")
    p256dh: str = Field(..., min_length=1)
    auth: str = Field(..., min_length=1)

    class Config:
        frozen = True


class WebPushKeys(BaseModel):
    """Keys object of a browser PushSubscription."""
    p256dh: str = Field(..., min_length=1)
    auth: str = Field(..., min_length=1)


class WebPushSubscription(BaseModel):
    """Browser PushSubscription.toJSON() shape."""
    endpoint: str = Field(..., min_length=1, pattern=r"^https://")
    keys: WebPushKeys

    def to_credential(self) -> WebPushCredential:
        return WebPushCredential(
            endpoint=self.endpoint,
            p256dh=self.keys.p256dh,
            auth=self.keys.auth,
        )


class DeviceRegister(BaseModel):
    """Request to register or refresh a device."""
    device_id: str = Field(..., min_length=1, max_length=255)
    webpush_subscription: Optional[WebPushSubscription] = None
    fcm_token: Optional[str] = Field(None, min_length=1, max_length=4096)
    is_active: bool = True
    platform: Optional[str] = Field(None, max_length=100)
    user_agent: Optional[str] = Field(None, max_length=1000)
    is_mobile: bool = False
    is_ios: bool = False


class DeviceRegisterResponse(BaseModel):
    """Response after registering a device."""
    success: bool
    created: bool
    device_id: str
    message: str


class DeviceResponse(BaseModel):
    """Device summary; credentials are reported as presence flags only."""
    device_id: str
    has_webpush: bool
    has_fcm_token: bool
    is_active: bool
    is_mobile: bool
    is_ios: bool
    platform: Optional[str] = None
    last_seen: Optional[datetime] = None
    created_at: Optional[datetime] = None


class DeviceCount(BaseModel):
    total: int
    active: int
    with_fcm: int
    with_webpush: int
