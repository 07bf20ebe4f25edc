"""Drains the primary notification queue."""

import asyncio
from datetime import date
from typing import Any
from urllib.parse import urlencode
from uuid import UUID

import structlog

from slot_alerts.channels.base import DirectMessageSender, PushSender
from slot_alerts.core.engine_config import EngineConfig
from slot_alerts.core.exceptions import (
    ChannelError,
    DuplicateSuppressed,
    PermanentChannelError,
    ValidationError,
)
from slot_alerts.core.timeutils import day_label, normalize_times, parse_date, times_key, utcnow
from slot_alerts.models.queue import notification_queue
from slot_alerts.schemas.notifications import (
    BatchResult,
    DeliveryTarget,
    EmailTemplateData,
    ItemError,
    NotificationMethod,
    PushNotification,
    PushPayload,
)
from slot_alerts.services.health_service import TargetHealthService
from slot_alerts.services.retry_service import RetryManager, deliver_push
from slot_alerts.services.store import NotificationStore

logger = structlog.get_logger(__name__)


def booking_url(base: str, appointment_date: date) -> str:
    """Link to the booking page for a date."""
    return f"{base}?{urlencode({'datef': appointment_date.isoformat(), 'lang': 'he'})}"


def action_urls(
    base_url: str, subscription_id: UUID, appointment_date: date, times: list[str]
) -> dict[str, str]:
    """Approve, decline and unsubscribe links for a notification."""
    action = f"{base_url.rstrip('/')}/notification-action"
    return {
        "approve_url": (
            f"{action}?{urlencode({'action': 'approve', 'subscription': subscription_id})}"
        ),
        "decline_url": f"{action}?"
        + urlencode(
            {
                "action": "decline",
                "subscription": subscription_id,
                "times": ",".join(times),
                "date": appointment_date.isoformat(),
            }
        ),
        "unsubscribe_url": (
            f"{action}?{urlencode({'action': 'unsubscribe', 'subscription': subscription_id})}"
        ),
    }


class QueueProcessor:
    """Processes pending queue entries: validate, dedupe, claim, send, record."""

    def __init__(
        self,
        store: NotificationStore,
        config: EngineConfig,
        health: TargetHealthService,
        retries: RetryManager,
        email_sender: DirectMessageSender,
        push_sender: PushSender,
    ):
        """Initialize the processor with its collaborators."""
        self.store = store
        self.config = config
        self.health = health
        self.retries = retries
        self.email_sender = email_sender
        self.push_sender = push_sender

    async def process_queue_batch(self, max_items: int | None = None) -> BatchResult:
        """
        Process up to ``max_items`` of the oldest pending entries once.

        One entry's failure never aborts the batch; it is collected into
        ``errors`` instead.

        Args:
            max_items: Batch size (defaults to the configured batch size)

        Returns:
            Counts of sent, skipped and failed entries with per-entry errors
        """
        result = BatchResult()
        entries = await self.store.list_pending_queue_entries(
            max_items or self.config.queue_batch_size
        )
        if not entries:
            logger.debug("notification_queue_empty")
            return result

        logger.info("processing_notification_queue", count=len(entries))
        for entry in entries:
            queue_id = entry["id"]
            try:
                outcome = await self._process_entry(entry)
            except Exception as e:
                logger.error("queue_item_failed", queue_id=str(queue_id), error=str(e))
                await self.store.db.rollback()
                await self._mark_failed(queue_id, str(e))
                outcome = "failed"
                result.errors.append(ItemError(queue_id=queue_id, error=str(e)))

            if outcome == "sent":
                result.processed += 1
            elif outcome == "skipped":
                result.skipped += 1
            elif outcome == "failed":
                result.failed += 1

        logger.info(
            "notification_queue_processed",
            processed=result.processed,
            skipped=result.skipped,
            failed=result.failed,
        )
        return result

    async def _skip(self, queue_id: UUID, reason: str) -> None:
        # Only a still-pending entry is skipped; a claimed one belongs to its worker
        await self.store.compare_and_swap_status(
            notification_queue,
            queue_id,
            "pending",
            "skipped",
            error_message=reason,
            processed_at=utcnow(),
        )
        logger.info("queue_item_skipped", queue_id=str(queue_id), reason=reason)

    async def _mark_failed(self, queue_id: UUID, error: str) -> None:
        try:
            await self.store.update_queue_entry(
                queue_id, status="failed", error_message=error, processed_at=utcnow()
            )
        except Exception as e:
            await self.store.db.rollback()
            logger.error("queue_outcome_write_failed", queue_id=str(queue_id), error=str(e))

    async def _process_entry(self, entry: dict[str, Any]) -> str:
        queue_id = entry["id"]

        try:
            appointment_date = parse_date(entry["appointment_date"])
            times = normalize_times(entry["new_times"])
        except ValidationError as e:
            await self._skip(queue_id, e.message)
            return "skipped"

        subscription = await self.store.get_subscription(entry["subscription_id"])
        if subscription is None or not subscription["is_active"]:
            await self._skip(queue_id, "Subscription no longer active")
            return "skipped"

        since = utcnow() - self.config.dedupe_window
        key = times_key(times)
        if await self.store.has_recent_notification(
            subscription["id"], appointment_date, key, since
        ):
            await self._skip(queue_id, DuplicateSuppressed().message)
            return "skipped"

        claimed = await self.store.compare_and_swap_status(
            notification_queue, queue_id, "pending", "processing"
        )
        if not claimed:
            logger.info("queue_item_already_claimed", queue_id=str(queue_id))
            return "skipped"

        error = await self._send(queue_id, subscription, appointment_date, times)
        if error is None:
            sent_at = utcnow()
            await self.store.insert_notified_record(
                subscription["id"], appointment_date, times, key, sent_at
            )
            await self.store.update_queue_entry(
                queue_id, status="sent", error_message=None, processed_at=sent_at
            )
            logger.info(
                "queue_item_sent",
                queue_id=str(queue_id),
                subscription_id=str(subscription["id"]),
                date=appointment_date.isoformat(),
            )
            return "sent"

        raise error

    async def _send(
        self,
        queue_id: UUID,
        subscription: dict[str, Any],
        appointment_date: date,
        times: list[str],
    ) -> ChannelError | None:
        """Send over the subscription's channels. Returns None once any channel delivered."""
        method: NotificationMethod = subscription["notification_method"]
        day_name = day_label(appointment_date)
        link = booking_url(self.config.booking_base_url, appointment_date)
        errors: list[str] = []
        delivered = False

        if method in ("email", "both"):
            error = await self._send_email(subscription, appointment_date, day_name, times, link)
            if error is None:
                delivered = True
            else:
                errors.append(error)

        if method in ("push", "both"):
            payload = PushPayload(
                notification=PushNotification(
                    title="נמצאו תורים פנויים",
                    body=f"{day_name} {appointment_date.isoformat()}: {', '.join(times)}",
                    data={
                        "type": "appointment",
                        "url": link,
                        "subscription_id": str(subscription["id"]),
                        "date": appointment_date.isoformat(),
                        "times": times,
                    },
                ),
            )
            error = await self._send_push(queue_id, subscription["user_id"], payload)
            if error is None:
                delivered = True
            else:
                errors.append(error)

        if delivered:
            return None
        return ChannelError("; ".join(errors) or f"Unknown notification method: {method}")

    async def _send_email(
        self,
        subscription: dict[str, Any],
        appointment_date: date,
        day_name: str,
        times: list[str],
        link: str,
    ) -> str | None:
        user = await self.store.get_user(subscription["user_id"])
        if user is None or not user.get("email"):
            return "User has no e-mail address"

        template_data = EmailTemplateData(
            appointment_date=appointment_date,
            day_name=day_name,
            times=times,
            subscription_id=subscription["id"],
            booking_url=link,
            **action_urls(self.config.base_url, subscription["id"], appointment_date, times),
        )
        try:
            sent = await asyncio.wait_for(
                self.email_sender.send(user["email"], template_data),
                timeout=self.config.send_timeout_seconds,
            )
        except TimeoutError:
            return "Email timeout"
        except Exception as e:
            logger.error("email_sender_error", error=str(e))
            return str(e)
        return None if sent else "Email sending failed"

    async def _send_push(self, queue_id: UUID, user_id: UUID, payload: PushPayload) -> str | None:
        targets = await self.store.list_active_targets(user_id)
        if not targets:
            return "No active push targets"

        delivered = 0
        last_error = None
        for row in targets:
            target = DeliveryTarget.model_validate(row)
            outcome = await deliver_push(
                self.push_sender, target, payload, self.config.send_timeout_seconds
            )
            if outcome.delivered:
                delivered += 1
                await self.health.reset_failures(target.id)
                continue

            error = self.retries.classify(outcome)
            last_error = error.message
            if isinstance(error, PermanentChannelError):
                await self.health.deactivate(target.id, error.message)
            else:
                await self.retries.add_to_retry_queue(
                    target.id, user_id, payload, error.message, original_queue_id=queue_id
                )

        if delivered:
            logger.info("push_delivered", queue_id=str(queue_id), targets=delivered)
            return None
        return f"Push failed on all targets: {last_error}"
