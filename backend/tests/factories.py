"""Test doubles and row builders."""
from datetime import datetime, timedelta
from typing import Optional

from pushrelay.database import Database
from pushrelay.models import Device, PendingNotification, NotificationState
from pushrelay.services.fcm_sender import is_valid_fcm_token

FCM_TOKEN = "dQw4w9WgXcQ:APA91bH" + "x" * 140
WEBPUSH_ENDPOINT = "https://fcm.googleapis.com/fcm/send/abc123"

BASE_TIME = datetime(2024, 5, 1, 12, 0, 0)


class FakeWebPushSender:
    """Records sends; raises `error` if set."""
    channel = "web_push"

    def __init__(self, error: Optional[Exception] = None, enabled: bool = True):
        self.error = error
        self.enabled = enabled
        self.calls = []

    async def send(self, credential, payload):
        self.calls.append((credential, payload))
        if self.error:
            raise self.error


class FakeFcmSender:
    """Records sends; raises `error` if set."""
    channel = "fcm"

    def __init__(self, error: Optional[Exception] = None, enabled: bool = True):
        self.error = error
        self.enabled = enabled
        self.calls = []

    def is_valid_token(self, token):
        return is_valid_fcm_token(token)

    async def send(self, token, title, body, data=None, is_ios=False, is_mobile=False):
        self.calls.append({
            "token": token,
            "title": title,
            "body": body,
            "data": data,
            "is_ios": is_ios,
            "is_mobile": is_mobile,
        })
        if self.error:
            raise self.error
        return "projects/test/messages/1"


class FakeClock:
    def __init__(self, now: datetime = BASE_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def make_device(device_id: str = "device-1", webpush: bool = False, fcm_token: Optional[str] = None, **kwargs) -> Device:
    device = Device(
        device_id=device_id,
        fcm_token=fcm_token,
        fcm_token_updated_at=BASE_TIME if fcm_token else None,
        is_active=kwargs.pop("is_active", True),
        last_seen=kwargs.pop("last_seen", BASE_TIME),
        is_mobile=kwargs.pop("is_mobile", False),
        is_ios=kwargs.pop("is_ios", False),
        **kwargs,
    )
    if webpush:
        device.webpush_endpoint = WEBPUSH_ENDPOINT
        device.webpush_p256dh = "BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA_0QTpQtUbVlUls0VJXg7A8u-Ts1XbjhazAkj7I99e8QcYP7DkM"
        device.webpush_auth = "tBHItJI5svbpez7KI4CCXg"
    return device


async def add_device(database: Database, device_id: str = "device-1", **kwargs) -> Device:
    device = make_device(device_id, **kwargs)
    async with database.session() as session:
        session.add(device)
        await session.commit()
    return device


async def add_notification(
    database: Database,
    device_id: str = "device-1",
    created_at: datetime = BASE_TIME,
    **kwargs,
) -> int:
    notification = PendingNotification(
        device_id=device_id,
        title=kwargs.pop("title", "New sale"),
        body=kwargs.pop("body", "Order #42 paid"),
        data=kwargs.pop("data", {"sale_id": 42}),
        state=kwargs.pop("state", NotificationState.PENDING),
        attempt_count=kwargs.pop("attempt_count", 0),
        created_at=created_at,
        **kwargs,
    )
    async with database.session() as session:
        session.add(notification)
        await session.commit()
        return notification.id


async def load_notification(database: Database, notification_id: int) -> PendingNotification:
    async with database.session() as session:
        return await session.get(PendingNotification, notification_id)


async def load_device(database: Database, device_id: str) -> Optional[Device]:
    from sqlalchemy import select

    async with database.session() as session:
        result = await session.execute(select(Device).where(Device.device_id == device_id))
        return result.scalar_one_or_none()
