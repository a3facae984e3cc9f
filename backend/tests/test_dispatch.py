from datetime import timedelta

import pytest

from pushrelay.exceptions import PermanentChannelError, TransientChannelError
from pushrelay.models import PendingNotification, NotificationState, DeliveryMethod
from pushrelay.services.dispatch import (
    DispatchOutcome,
    DispatchPolicy,
    Outcome,
    apply_outcome,
    invalidate_credential,
)

from factories import BASE_TIME, FCM_TOKEN, WEBPUSH_ENDPOINT, FakeFcmSender, FakeWebPushSender, make_device


def make_notification(**kwargs) -> PendingNotification:
    return PendingNotification(
        id=kwargs.pop("id", 7),
        device_id=kwargs.pop("device_id", "device-1"),
        title="New sale",
        body="Order #42 paid",
        data={"sale_id": 42},
        tag=kwargs.pop("tag", None),
        state=NotificationState.PENDING,
        attempt_count=kwargs.pop("attempt_count", 0),
        created_at=BASE_TIME,
        **kwargs,
    )


def test_select_channel_prefers_webpush(policy):
    device = make_device(webpush=True, fcm_token=FCM_TOKEN)
    assert policy.select_channel(device) == DeliveryMethod.WEB_PUSH


def test_select_channel_falls_back_to_fcm(policy):
    device = make_device(fcm_token=FCM_TOKEN)
    assert policy.select_channel(device) == DeliveryMethod.FCM


def test_select_channel_ignores_malformed_fcm_token(policy):
    device = make_device(fcm_token="short-token")
    assert policy.select_channel(device) is None


def test_select_channel_inactive_device(policy):
    device = make_device(webpush=True, fcm_token=FCM_TOKEN, is_active=False)
    assert policy.select_channel(device) is None


def test_select_channel_skips_unconfigured_sender(fcm_sender):
    policy = DispatchPolicy(webpush_sender=FakeWebPushSender(enabled=False), fcm_sender=fcm_sender)
    device = make_device(webpush=True, fcm_token=FCM_TOKEN)
    assert policy.select_channel(device) == DeliveryMethod.FCM


@pytest.mark.asyncio
async def test_dispatch_webpush_success(policy, webpush_sender, fcm_sender):
    device = make_device(webpush=True, fcm_token=FCM_TOKEN)
    result = await policy.dispatch(make_notification(tag="sale-42"), device, BASE_TIME)

    assert result.outcome == Outcome.DELIVERED
    assert result.channel == DeliveryMethod.WEB_PUSH
    assert len(webpush_sender.calls) == 1
    assert fcm_sender.calls == []

    credential, payload = webpush_sender.calls[0]
    assert credential.endpoint == WEBPUSH_ENDPOINT
    assert payload["title"] == "New sale"
    assert payload["tag"] == "sale-42"
    assert payload["data"]["notification_id"] == "7"
    assert payload["data"]["sale_id"] == 42


@pytest.mark.asyncio
async def test_dispatch_fcm_passes_platform_hints(policy, fcm_sender):
    device = make_device(fcm_token=FCM_TOKEN, is_mobile=True, is_ios=True)
    result = await policy.dispatch(make_notification(), device, BASE_TIME)

    assert result.outcome == Outcome.DELIVERED
    assert result.channel == DeliveryMethod.FCM
    call = fcm_sender.calls[0]
    assert call["token"] == FCM_TOKEN
    assert call["is_ios"] is True
    assert call["is_mobile"] is True
    assert call["data"]["device_id"] == "device-1"


@pytest.mark.asyncio
async def test_dispatch_no_channel_is_queued(policy, webpush_sender, fcm_sender):
    result = await policy.dispatch(make_notification(), make_device(), BASE_TIME)

    assert result.outcome == Outcome.QUEUED_NO_CHANNEL
    assert result.channel == DeliveryMethod.FALLBACK_QUEUED
    assert not result.counts_as_attempt
    assert webpush_sender.calls == []
    assert fcm_sender.calls == []


@pytest.mark.asyncio
async def test_stale_last_seen_does_not_suppress_attempt(policy, fcm_sender):
    device = make_device(fcm_token=FCM_TOKEN, last_seen=BASE_TIME - timedelta(days=3))
    result = await policy.dispatch(make_notification(), device, BASE_TIME)

    assert result.outcome == Outcome.DELIVERED
    assert result.likely_offline is True
    assert len(fcm_sender.calls) == 1


@pytest.mark.asyncio
async def test_dispatch_permanent_failure():
    sender = FakeWebPushSender(error=PermanentChannelError("Push subscription gone (HTTP 410)", code="410"))
    policy = DispatchPolicy(webpush_sender=sender, fcm_sender=FakeFcmSender())
    device = make_device(webpush=True, fcm_token=FCM_TOKEN)

    result = await policy.dispatch(make_notification(), device, BASE_TIME)

    assert result.outcome == Outcome.PERMANENT_CHANNEL_FAILURE
    assert result.channel == DeliveryMethod.WEB_PUSH
    assert "410" in result.error


@pytest.mark.asyncio
async def test_dispatch_does_not_fall_back_within_one_call():
    fcm = FakeFcmSender()
    sender = FakeWebPushSender(error=TransientChannelError("connection reset"))
    policy = DispatchPolicy(webpush_sender=sender, fcm_sender=fcm)

    result = await policy.dispatch(make_notification(), make_device(webpush=True, fcm_token=FCM_TOKEN), BASE_TIME)

    assert result.outcome == Outcome.TRANSIENT_FAILURE
    assert fcm.calls == []


@pytest.mark.asyncio
async def test_dispatch_unexpected_error_is_transient():
    policy = DispatchPolicy(fcm_sender=FakeFcmSender(error=RuntimeError("boom")))
    result = await policy.dispatch(make_notification(), make_device(fcm_token=FCM_TOKEN), BASE_TIME)

    assert result.outcome == Outcome.TRANSIENT_FAILURE
    assert "boom" in result.error


def test_apply_outcome_delivered():
    notification = make_notification(last_error="earlier failure", attempt_count=1)
    apply_outcome(notification, DispatchOutcome(Outcome.DELIVERED, channel="fcm"), 3, BASE_TIME)

    assert notification.state == NotificationState.DELIVERED
    assert notification.delivered_at == BASE_TIME
    assert notification.attempt_count == 2
    assert notification.last_error is None
    assert notification.delivery_method == "fcm"


def test_apply_outcome_transient_below_limit_stays_pending():
    notification = make_notification(attempt_count=1)
    apply_outcome(notification, DispatchOutcome(Outcome.TRANSIENT_FAILURE, "fcm", "timeout"), 3, BASE_TIME)

    assert notification.state == NotificationState.PENDING
    assert notification.attempt_count == 2
    assert notification.last_error == "timeout"
    assert notification.last_attempt_at == BASE_TIME


def test_apply_outcome_reaching_limit_fails():
    notification = make_notification(attempt_count=2)
    apply_outcome(notification, DispatchOutcome(Outcome.PERMANENT_CHANNEL_FAILURE, "fcm", "gone"), 3, BASE_TIME)

    assert notification.state == NotificationState.FAILED
    assert notification.attempt_count == 3
    assert notification.delivered_at is None


def test_apply_outcome_queued_leaves_attempts():
    notification = make_notification()
    apply_outcome(notification, DispatchOutcome(Outcome.QUEUED_NO_CHANNEL, "fallback_queued"), 3, BASE_TIME)

    assert notification.state == NotificationState.PENDING
    assert notification.attempt_count == 0
    assert notification.delivery_method == DeliveryMethod.FALLBACK_QUEUED
    assert notification.last_attempt_at is None


def test_apply_outcome_device_not_found_is_terminal():
    notification = make_notification()
    apply_outcome(notification, DispatchOutcome(Outcome.DEVICE_NOT_FOUND, error="device not found"), 3, BASE_TIME)

    assert notification.state == NotificationState.FAILED
    assert notification.attempt_count == 1
    assert notification.last_error == "device not found"


def test_invalidate_credential_clears_only_failed_channel():
    device = make_device(webpush=True, fcm_token=FCM_TOKEN)

    changed = invalidate_credential(device, DispatchOutcome(Outcome.PERMANENT_CHANNEL_FAILURE, "web_push", "gone"))

    assert changed is True
    assert device.webpush_endpoint is None
    assert device.webpush_p256dh is None
    assert device.webpush_auth is None
    assert device.fcm_token == FCM_TOKEN


def test_invalidate_credential_ignores_transient():
    device = make_device(fcm_token=FCM_TOKEN)
    assert invalidate_credential(device, DispatchOutcome(Outcome.TRANSIENT_FAILURE, "fcm", "timeout")) is False
    assert device.fcm_token == FCM_TOKEN
