"""Push senders for FCM device tokens and Web Push subscriptions."""

import asyncio
import json

import structlog
from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging
from pywebpush import WebPushException, webpush

from slot_alerts.config import Settings, settings
from slot_alerts.schemas.notifications import DeliveryTarget, PushPayload, PushResult

logger = structlog.get_logger(__name__)

# FCM error class -> HTTP-style status code used for error classification.
# Order matters: subclasses before their bases.
FCM_ERROR_STATUS: list[tuple[type[Exception], int]] = [
    (messaging.UnregisteredError, 404),
    (messaging.SenderIdMismatchError, 401),
    (messaging.ThirdPartyAuthError, 401),
    (messaging.QuotaExceededError, 429),
    (firebase_exceptions.NotFoundError, 404),
    (firebase_exceptions.UnauthenticatedError, 401),
    (firebase_exceptions.PermissionDeniedError, 403),
    (firebase_exceptions.InvalidArgumentError, 400),
    (firebase_exceptions.ResourceExhaustedError, 429),
    (firebase_exceptions.DeadlineExceededError, 408),
    (firebase_exceptions.UnavailableError, 503),
    (firebase_exceptions.InternalError, 500),
]


def fcm_error_status(error: firebase_exceptions.FirebaseError) -> int | None:
    """HTTP-style status code for an FCM error."""
    for error_class, status_code in FCM_ERROR_STATUS:
        if isinstance(error, error_class):
            return status_code
    response = getattr(error, "http_response", None)
    return getattr(response, "status_code", None)


def _string_data(data: dict) -> dict[str, str]:
    # FCM data payloads only carry string values
    return {
        key: value if isinstance(value, str) else json.dumps(value)
        for key, value in data.items()
    }


class FcmPushSender:
    """Push sender for targets registered with an FCM token."""

    def _send_sync(self, token: str, payload: PushPayload) -> str:
        notification = payload.notification
        message = messaging.Message(
            token=token,
            notification=messaging.Notification(
                title=notification.title,
                body=notification.body,
            ),
            data=_string_data(notification.data),
            apns=messaging.APNSConfig(
                payload=messaging.APNSPayload(
                    aps=messaging.Aps(sound="default", badge=payload.badge_count),
                ),
            ),
            android=messaging.AndroidConfig(
                priority="high",
                notification=messaging.AndroidNotification(
                    sound="default",
                    tag=notification.tag,
                ),
            ),
        )
        return messaging.send(message)

    async def send(self, target: DeliveryTarget, notification: PushPayload) -> PushResult:
        """Send one FCM message."""
        if not target.fcm_token:
            return PushResult(delivered=False, status_code=404, error="Target has no FCM token")
        try:
            message_id = await asyncio.to_thread(
                self._send_sync, target.fcm_token, notification
            )
        except firebase_exceptions.FirebaseError as e:
            status_code = fcm_error_status(e)
            logger.warning(
                "fcm_send_failed",
                target_id=str(target.id),
                status_code=status_code,
                error=str(e),
            )
            return PushResult(delivered=False, status_code=status_code, error=str(e))

        logger.info("fcm_message_sent", target_id=str(target.id), message_id=message_id)
        return PushResult(delivered=True, status_code=200)


class WebPushSender:
    """Push sender for browser Web Push subscriptions (VAPID)."""

    def __init__(self, config: Settings = settings):
        """Initialize with VAPID settings."""
        self.config = config

    def _send_sync(self, target: DeliveryTarget, payload: PushPayload) -> int:
        response = webpush(
            subscription_info={
                "endpoint": target.endpoint,
                "keys": {"p256dh": target.p256dh, "auth": target.auth},
            },
            data=payload.model_dump_json(),
            vapid_private_key=self.config.vapid_private_key,
            vapid_claims={"sub": f"mailto:{self.config.vapid_email}"},
            ttl=86400,
            headers={"Urgency": "high"},
        )
        return getattr(response, "status_code", 201)

    async def send(self, target: DeliveryTarget, notification: PushPayload) -> PushResult:
        """Send one Web Push message."""
        if not self.config.vapid_private_key:
            return PushResult(delivered=False, error="VAPID keys not configured")
        if not (target.endpoint and target.p256dh and target.auth):
            return PushResult(delivered=False, status_code=404, error="Incomplete subscription")
        try:
            status_code = await asyncio.to_thread(self._send_sync, target, notification)
        except WebPushException as e:
            response = getattr(e, "response", None)
            status_code = getattr(response, "status_code", None)
            logger.warning(
                "web_push_failed",
                target_id=str(target.id),
                status_code=status_code,
                error=str(e),
            )
            return PushResult(delivered=False, status_code=status_code, error=str(e))

        return PushResult(delivered=True, status_code=status_code)


class RoutingPushSender:
    """Picks FCM for token targets and Web Push for browser subscriptions."""

    def __init__(
        self,
        fcm: FcmPushSender | None = None,
        web: WebPushSender | None = None,
    ):
        """Initialize with the two concrete senders."""
        self.fcm = fcm or FcmPushSender()
        self.web = web or WebPushSender()

    async def send(self, target: DeliveryTarget, notification: PushPayload) -> PushResult:
        """Send through the transport that matches the target."""
        if target.fcm_token:
            return await self.fcm.send(target, notification)
        return await self.web.send(target, notification)
