"""Tests for the push channel senders."""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging
from pywebpush import WebPushException

from slot_alerts.channels.push_sender import (
    FcmPushSender,
    RoutingPushSender,
    WebPushSender,
    fcm_error_status,
)
from slot_alerts.schemas.notifications import (
    DeliveryTarget,
    PushNotification,
    PushPayload,
    PushResult,
)

PAYLOAD = PushPayload(
    notification=PushNotification(title="Slots", body="10:00", data={"times": ["10:00"]}),
    badge_count=1,
)


def fcm_target() -> DeliveryTarget:
    return DeliveryTarget(id=uuid4(), user_id=uuid4(), fcm_token="token", device_type="android")


def web_target() -> DeliveryTarget:
    return DeliveryTarget(
        id=uuid4(),
        user_id=uuid4(),
        endpoint="https://push.example.com/abc",
        p256dh="p256dh-key",
        auth="auth-key",
    )


@pytest.mark.parametrize(
    ("error", "status_code"),
    [
        (messaging.UnregisteredError("unregistered"), 404),
        (messaging.SenderIdMismatchError("mismatch"), 401),
        (messaging.QuotaExceededError("quota"), 429),
        (firebase_exceptions.UnavailableError("unavailable"), 503),
        (firebase_exceptions.InternalError("internal"), 500),
        (firebase_exceptions.DeadlineExceededError("deadline"), 408),
    ],
)
def test_fcm_error_status(error, status_code):
    assert fcm_error_status(error) == status_code


@pytest.mark.asyncio
async def test_fcm_send_success():
    with patch("slot_alerts.channels.push_sender.messaging.send", return_value="msg-1") as send:
        result = await FcmPushSender().send(fcm_target(), PAYLOAD)

    assert result.delivered is True
    message = send.call_args.args[0]
    assert message.token == "token"
    assert message.data == {"times": '["10:00"]'}


@pytest.mark.asyncio
async def test_fcm_unregistered_token_maps_to_404():
    with patch(
        "slot_alerts.channels.push_sender.messaging.send",
        side_effect=messaging.UnregisteredError("Requested entity was not found."),
    ):
        result = await FcmPushSender().send(fcm_target(), PAYLOAD)

    assert result.delivered is False
    assert result.status_code == 404


@pytest.mark.asyncio
async def test_web_push_gone_maps_response_status():
    config = MagicMock(vapid_private_key="private-key", vapid_email="ops@example.com")
    response = MagicMock(status_code=410)
    with patch(
        "slot_alerts.channels.push_sender.webpush",
        side_effect=WebPushException("Push failed: 410 Gone", response=response),
    ):
        result = await WebPushSender(config).send(web_target(), PAYLOAD)

    assert result.delivered is False
    assert result.status_code == 410


@pytest.mark.asyncio
async def test_web_push_success_sends_subscription_info():
    config = MagicMock(vapid_private_key="private-key", vapid_email="ops@example.com")
    target = web_target()
    with patch(
        "slot_alerts.channels.push_sender.webpush", return_value=MagicMock(status_code=201)
    ) as webpush:
        result = await WebPushSender(config).send(target, PAYLOAD)

    assert result == PushResult(delivered=True, status_code=201)
    kwargs = webpush.call_args.kwargs
    assert kwargs["subscription_info"]["endpoint"] == target.endpoint
    assert kwargs["vapid_claims"] == {"sub": "mailto:ops@example.com"}


@pytest.mark.asyncio
async def test_web_push_without_vapid_keys_fails():
    config = MagicMock(vapid_private_key="", vapid_email="")

    result = await WebPushSender(config).send(web_target(), PAYLOAD)

    assert result.delivered is False


@pytest.mark.asyncio
async def test_routing_sender_picks_transport():
    fcm = MagicMock(send=AsyncMock(return_value=PushResult(delivered=True)))
    web = MagicMock(send=AsyncMock(return_value=PushResult(delivered=True)))
    router = RoutingPushSender(fcm=fcm, web=web)

    await router.send(fcm_target(), PAYLOAD)
    await router.send(web_target(), PAYLOAD)

    assert fcm.send.await_count == 1
    assert web.send.await_count == 1
