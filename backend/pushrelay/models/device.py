"""Device model - registered browsers/phones and their channel credentials."""
from datetime import datetime
from typing import Optional
from sqlalchemy import Column, Integer, String, DateTime, Boolean

from ..database import Base
from ..schemas.device import WebPushCredential


class Device(Base):
    """A registered client endpoint that can receive notifications.

    Web Push credentials are stored as three columns that are either all set
    or all NULL; the registration endpoint enforces this.
    """

    __tablename__ = "devices"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(String, unique=True, nullable=False, index=True)

    # Web Push subscription
    webpush_endpoint = Column(String, nullable=True)
    webpush_p256dh = Column(String, nullable=True)
    webpush_auth = Column(String, nullable=True)

    # Firebase Cloud Messaging
    fcm_token = Column(String, nullable=True, index=True)
    fcm_token_updated_at = Column(DateTime, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    last_seen = Column(DateTime, default=datetime.utcnow)

    # Platform hints, used for payload shaping only
    platform = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    is_mobile = Column(Boolean, default=False, nullable=False)
    is_ios = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def has_webpush(self) -> bool:
        return bool(self.webpush_endpoint and self.webpush_p256dh and self.webpush_auth)

    @property
    def webpush_credential(self) -> Optional[WebPushCredential]:
        if not self.has_webpush:
            return None
        return WebPushCredential(
            endpoint=self.webpush_endpoint,
            p256dh=self.webpush_p256dh,
            auth=self.webpush_auth,
        )

    def set_webpush(self, credential: Optional[WebPushCredential]):
        if credential is None:
            self.clear_webpush()
            return
        self.webpush_endpoint = credential.endpoint
        self.webpush_p256dh = credential.p256dh
        self.webpush_auth = credential.auth

    def clear_webpush(self):
        self.webpush_endpoint = None
        self.webpush_p256dh = None
        self.webpush_auth = None

    def clear_fcm_token(self):
        self.fcm_token = None
        self.fcm_token_updated_at = None
