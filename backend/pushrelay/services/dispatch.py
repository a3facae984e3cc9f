"""Dispatch policy - picks a channel for one notification and classifies the result.

Channel order is fixed: a complete Web Push subscription first, then a valid
FCM token, otherwise the notification stays queued until the device gains a
channel. A single dispatch never tries a second channel; when a credential is
invalidated the next cycle re-resolves the device and may pick another one.

The device's last_seen timestamp is advisory. A sleeping phone with a valid
token is the normal case, so staleness is reported on the outcome for
logging but never suppresses an attempt.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from ..exceptions import ChannelError
from ..models.device import Device
from ..models.pending_notification import PendingNotification, NotificationState, DeliveryMethod

logger = logging.getLogger(__name__)

DEVICE_NOT_FOUND_ERROR = "device not found"


class Outcome(str, Enum):
    """Classification of one dispatch."""
    DELIVERED = "delivered"
    PERMANENT_CHANNEL_FAILURE = "permanent_failure"
    TRANSIENT_FAILURE = "transient_failure"
    QUEUED_NO_CHANNEL = "queued_no_channel"
    DEVICE_NOT_FOUND = "device_not_found"


@dataclass
class DispatchOutcome:
    """Result of dispatching one notification."""
    outcome: Outcome
    channel: Optional[str] = None  # web_push, fcm, fallback_queued
    error: Optional[str] = None
    likely_offline: bool = False

    @property
    def counts_as_attempt(self) -> bool:
        return self.outcome != Outcome.QUEUED_NO_CHANNEL


class DispatchPolicy:
    """Chooses a channel for a notification and attempts delivery through it."""

    def __init__(
        self,
        webpush_sender=None,
        fcm_sender=None,
        liveness_window: timedelta = timedelta(minutes=5),
    ):
        self.webpush_sender = webpush_sender
        self.fcm_sender = fcm_sender
        self.liveness_window = liveness_window

    def select_channel(self, device: Device) -> Optional[str]:
        """First available channel for a device, or None."""
        if not device.is_active:
            return None
        if device.has_webpush and self.webpush_sender is not None and self.webpush_sender.enabled:
            return DeliveryMethod.WEB_PUSH
        if (
            self.fcm_sender is not None
            and self.fcm_sender.enabled
            and self.fcm_sender.is_valid_token(device.fcm_token)
        ):
            return DeliveryMethod.FCM
        return None

    def is_likely_offline(self, device: Device, now: datetime) -> bool:
        if device.last_seen is None:
            return True
        return now - device.last_seen > self.liveness_window

    def build_data(self, notification: PendingNotification) -> dict:
        data = dict(notification.data or {})
        data["notification_id"] = str(notification.id)
        data["device_id"] = notification.device_id
        if notification.tag:
            data.setdefault("tag", notification.tag)
        return data

    async def dispatch(
        self,
        notification: PendingNotification,
        device: Device,
        now: Optional[datetime] = None,
    ) -> DispatchOutcome:
        """Attempt delivery of a notification to its device through one channel."""
        now = now or datetime.utcnow()
        channel = self.select_channel(device)
        if channel is None:
            return DispatchOutcome(Outcome.QUEUED_NO_CHANNEL, channel=DeliveryMethod.FALLBACK_QUEUED)

        likely_offline = self.is_likely_offline(device, now)
        if likely_offline:
            logger.debug(
                f"Device {device.device_id} not seen since {device.last_seen}, "
                f"attempting {channel} anyway"
            )

        try:
            if channel == DeliveryMethod.WEB_PUSH:
                payload = notification.payload
                payload["data"] = self.build_data(notification)
                await self.webpush_sender.send(device.webpush_credential, payload)
            else:
                await self.fcm_sender.send(
                    device.fcm_token,
                    notification.title,
                    notification.body,
                    self.build_data(notification),
                    is_ios=bool(device.is_ios),
                    is_mobile=bool(device.is_mobile),
                )
        except ChannelError as e:
            outcome = Outcome.PERMANENT_CHANNEL_FAILURE if e.permanent else Outcome.TRANSIENT_FAILURE
            return DispatchOutcome(outcome, channel=channel, error=str(e), likely_offline=likely_offline)
        except Exception as e:
            logger.exception(f"Unexpected {channel} sender error for notification {notification.id}")
            return DispatchOutcome(
                Outcome.TRANSIENT_FAILURE,
                channel=channel,
                error=f"{type(e).__name__}: {e}",
                likely_offline=likely_offline,
            )

        return DispatchOutcome(Outcome.DELIVERED, channel=channel, likely_offline=likely_offline)


def apply_outcome(
    notification: PendingNotification,
    result: DispatchOutcome,
    max_retries: int,
    now: datetime,
):
    """Write a dispatch outcome onto the notification row."""
    if result.outcome == Outcome.QUEUED_NO_CHANNEL:
        notification.delivery_method = DeliveryMethod.FALLBACK_QUEUED
        return

    notification.attempt_count = (notification.attempt_count or 0) + 1
    notification.last_attempt_at = now
    if result.channel:
        notification.delivery_method = result.channel

    if result.outcome == Outcome.DELIVERED:
        notification.state = NotificationState.DELIVERED
        notification.delivered_at = now
        notification.last_error = None
        return

    if result.outcome == Outcome.DEVICE_NOT_FOUND:
        notification.state = NotificationState.FAILED
        notification.last_error = result.error or DEVICE_NOT_FOUND_ERROR
        return

    notification.last_error = result.error
    if notification.attempt_count >= max_retries:
        notification.state = NotificationState.FAILED
    else:
        notification.state = NotificationState.PENDING


def invalidate_credential(device: Device, result: DispatchOutcome) -> bool:
    """Clear the credential a permanent failure was reported for.

    Returns True if the device was modified.
    """
    if result.outcome != Outcome.PERMANENT_CHANNEL_FAILURE:
        return False
    if result.channel == DeliveryMethod.WEB_PUSH and device.has_webpush:
        device.clear_webpush()
        logger.info(f"Cleared Web Push subscription of device {device.device_id}")
        return True
    if result.channel == DeliveryMethod.FCM and device.fcm_token:
        logger.info(f"Cleared FCM token {device.fcm_token[:16]}... of device {device.device_id}")
        device.clear_fcm_token()
        return True
    return False
