"""Retry queue for failed push deliveries, with exponential backoff."""

import asyncio
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

import structlog

from slot_alerts.channels.base import PushSender
from slot_alerts.core.engine_config import EngineConfig
from slot_alerts.core.exceptions import (
    ChannelError,
    MaxRetriesExceeded,
    PermanentChannelError,
    TransientChannelError,
)
from slot_alerts.core.timeutils import utcnow
from slot_alerts.models.retries import notification_retry_queue
from slot_alerts.schemas.notifications import (
    DeliveryTarget,
    PushPayload,
    PushResult,
    RetryStats,
    SweepResult,
)
from slot_alerts.services.health_service import TargetHealthService
from slot_alerts.services.store import RETRY_TERMINAL_STATUSES, NotificationStore

logger = structlog.get_logger(__name__)


async def deliver_push(
    sender: PushSender,
    target: DeliveryTarget,
    payload: PushPayload,
    timeout: float,
) -> PushResult:
    """
    Send one push bounded by ``timeout``.

    Timeouts and sender exceptions are reported as failed results, never raised.
    """
    try:
        return await asyncio.wait_for(sender.send(target, payload), timeout=timeout)
    except TimeoutError:
        return PushResult(delivered=False, status_code=408, error="Send timed out")
    except Exception as e:
        logger.error("push_sender_error", target_id=str(target.id), error=str(e))
        return PushResult(delivered=False, error=str(e))


class RetryManager:
    """Schedules and replays failed push deliveries."""

    def __init__(
        self,
        store: NotificationStore,
        config: EngineConfig,
        health: TargetHealthService,
        push_sender: PushSender | None = None,
    ):
        """Initialize with store, configuration, health tracker and push sender."""
        self.store = store
        self.config = config
        self.health = health
        self.push_sender = push_sender

    # Classification

    def is_permanent_error(self, status_code: int | None) -> bool:
        """Whether the code means the target is gone for good."""
        return status_code in self.config.permanent_error_codes

    def is_retryable_error(self, status_code: int | None) -> bool:
        """Whether the code is a known transient failure."""
        return status_code in self.config.retryable_error_codes

    def classify(self, result: PushResult) -> ChannelError:
        """Turn a failed push result into a channel error. Unknown codes are transient."""
        message = result.error or f"Push failed with status {result.status_code}"
        if self.is_permanent_error(result.status_code):
            return PermanentChannelError(message, result.status_code)
        if not self.is_retryable_error(result.status_code):
            logger.info(
                "unknown_push_status_retried",
                status_code=result.status_code,
                error=message,
            )
        return TransientChannelError(message, result.status_code)

    # Scheduling

    def backoff(self, retry_count: int) -> timedelta:
        """Backoff interval after ``retry_count`` failed attempts."""
        table = self.config.backoff_seconds
        return timedelta(seconds=table[min(retry_count, len(table) - 1)])

    def calculate_next_retry_time(self, retry_count: int, now: datetime | None = None) -> datetime:
        """Time of the next attempt after ``retry_count`` failed attempts."""
        return (now or utcnow()) + self.backoff(retry_count)

    async def add_to_retry_queue(
        self,
        target_id: UUID,
        user_id: UUID,
        payload: PushPayload | dict[str, Any],
        error: str,
        original_queue_id: UUID | None = None,
    ) -> UUID:
        """
        Schedule the first retry of a failed push delivery.

        Args:
            target_id: Delivery target that failed
            user_id: Owner of the target
            payload: Snapshot of the notification to resend
            error: Error of the failed attempt
            original_queue_id: Queue entry the delivery came from, if any

        Returns:
            ID of the new retry entry

        Raises:
            pydantic.ValidationError: If a dict payload is not a valid push payload
        """
        if not isinstance(payload, PushPayload):
            payload = PushPayload.model_validate(payload)
        snapshot = payload.model_dump(mode="json")
        next_retry_at = self.calculate_next_retry_time(0)

        retry_id = await self.store.insert_retry(
            original_queue_id=original_queue_id,
            push_subscription_id=target_id,
            user_id=user_id,
            retry_count=0,
            max_retries=self.config.max_retries,
            next_retry_at=next_retry_at,
            last_error=error,
            payload=snapshot,
            status="pending",
        )
        logger.info(
            "retry_scheduled",
            retry_id=str(retry_id),
            target_id=str(target_id),
            next_retry_at=next_retry_at.isoformat(),
        )
        return retry_id

    async def _transition(self, retry_id: UUID, expected: str, new: str, **values: Any) -> bool:
        # Writes only if the entry still holds ``expected``; terminal rows never move
        moved = await self.store.compare_and_swap_status(
            notification_retry_queue,
            retry_id,
            expected,
            new,
            updated_at=utcnow(),
            **values,
        )
        if not moved:
            logger.warning(
                "retry_outcome_conflict",
                retry_id=str(retry_id),
                expected=expected,
                new=new,
            )
        return moved

    async def update_retry_entry(
        self, retry_id: UUID, success: bool, error: str | None = None
    ) -> str | None:
        """
        Record the outcome of one retry attempt.

        Only pending or processing entries accept an outcome. Reports for
        succeeded, failed or cancelled entries are ignored.

        Args:
            retry_id: Retry entry ID
            success: Whether the attempt delivered
            error: Error of a failed attempt

        Returns:
            The entry's new status, or None if the entry does not exist, is
            already terminal, or changed status concurrently
        """
        entry = await self.store.get_retry(retry_id)
        if entry is None:
            logger.warning("retry_entry_not_found", retry_id=str(retry_id))
            return None

        current = entry["status"]
        if current in RETRY_TERMINAL_STATUSES:
            logger.warning("retry_outcome_ignored", retry_id=str(retry_id), status=current)
            return None

        if success:
            if not await self._transition(retry_id, current, "success", last_error=None):
                return None
            await self.health.reset_failures(entry["push_subscription_id"])
            logger.info("retry_succeeded", retry_id=str(retry_id))
            return "success"

        retry_count = entry["retry_count"] + 1
        if retry_count >= entry["max_retries"]:
            reason = error or MaxRetriesExceeded().message
            if not await self._transition(
                retry_id, current, "failed", retry_count=retry_count, last_error=reason
            ):
                return None
            logger.warning("retry_exhausted", retry_id=str(retry_id), attempts=retry_count)
            await self.health.increment_failures(entry["push_subscription_id"], reason)
            return "failed"

        next_retry_at = self.calculate_next_retry_time(retry_count)
        if not await self._transition(
            retry_id,
            current,
            "pending",
            retry_count=retry_count,
            next_retry_at=next_retry_at,
            last_error=error,
        ):
            return None
        logger.info(
            "retry_rescheduled",
            retry_id=str(retry_id),
            attempt=retry_count + 1,
            max_retries=entry["max_retries"],
            next_retry_at=next_retry_at.isoformat(),
        )
        return "pending"

    async def get_pending_retries(self, limit: int = 50) -> list[dict[str, Any]]:
        """Due pending retries whose target is still active, oldest due first."""
        return await self.store.list_due_retries(utcnow(), limit)

    async def mark_retry_as_processing(self, retry_id: UUID) -> bool:
        """Claim a retry entry. False if another worker already did."""
        return await self.store.compare_and_swap_status(
            notification_retry_queue,
            retry_id,
            "pending",
            "processing",
            updated_at=utcnow(),
        )

    async def cancel_pending_retries(self, target_id: UUID) -> int:
        """Cancel every pending retry of a target."""
        count = await self.store.cancel_pending_retries(target_id)
        logger.info("retries_cancelled", target_id=str(target_id), count=count)
        return count

    # Replay

    async def _replay(self, entry: dict[str, Any]) -> str | None:
        target = DeliveryTarget.model_validate(entry["target"])
        payload = PushPayload.model_validate(entry["payload"])
        outcome = await deliver_push(
            self.push_sender, target, payload, self.config.send_timeout_seconds
        )
        if outcome.delivered:
            return await self.update_retry_entry(entry["id"], success=True)

        error = self.classify(outcome)
        if isinstance(error, PermanentChannelError):
            await self.health.deactivate(target.id, error.message)
            await self._transition(entry["id"], "processing", "failed", last_error=error.message)
            await self.cancel_pending_retries(target.id)
            return "failed"

        return await self.update_retry_entry(entry["id"], success=False, error=error.message)

    async def _release_after_error(self, retry_id: UUID, error: str) -> str | None:
        # A replay that crashed counts as a failed attempt so the claim never sticks
        await self.store.db.rollback()
        try:
            return await self.update_retry_entry(retry_id, success=False, error=error)
        except Exception as e:
            await self.store.db.rollback()
            logger.error("retry_release_failed", retry_id=str(retry_id), error=str(e))
            return None

    async def sweep_retries(self, limit: int | None = None) -> SweepResult:
        """
        Replay due retries once.

        A permanent error deactivates the target, fails the entry and cancels the
        target's other pending retries without consuming further attempts. An
        unexpected error while replaying an entry is recorded as a failed
        attempt, so the entry is rescheduled or failed instead of staying
        claimed.

        Args:
            limit: Maximum entries to replay (defaults to the configured sweep limit)

        Returns:
            Counts of attempted, succeeded, rescheduled and terminally failed entries
        """
        if self.push_sender is None:
            raise RuntimeError("RetryManager needs a push sender to sweep retries")

        result = SweepResult()
        due = await self.get_pending_retries(limit or self.config.retry_sweep_limit)

        for entry in due:
            retry_id = entry["id"]
            try:
                claimed = await self.mark_retry_as_processing(retry_id)
            except Exception as e:
                await self.store.db.rollback()
                logger.error("retry_claim_failed", retry_id=str(retry_id), error=str(e))
                continue
            if not claimed:
                continue

            result.attempted += 1
            try:
                status = await self._replay(entry)
            except Exception as e:
                logger.error("retry_sweep_item_failed", retry_id=str(retry_id), error=str(e))
                status = await self._release_after_error(retry_id, str(e))

            if status == "success":
                result.succeeded += 1
            elif status == "failed":
                result.terminally_failed += 1
            elif status == "pending":
                result.rescheduled += 1

        logger.info("retry_sweep_completed", **result.model_dump())
        return result

    async def get_retry_stats(self, user_id: UUID) -> RetryStats:
        """Retry counts for a user. In-flight entries count as pending."""
        counts = await self.store.count_retries_by_status(user_id)
        return RetryStats(
            pending=counts.get("pending", 0) + counts.get("processing", 0),
            failed=counts.get("failed", 0),
            succeeded=counts.get("success", 0),
        )

    async def cleanup_old_retries(self, now: datetime | None = None) -> int:
        """Delete terminal retry entries older than the retention period."""
        cutoff = (now or utcnow()) - self.config.retention
        count = await self.store.delete_retries(RETRY_TERMINAL_STATUSES, cutoff)
        if count:
            logger.info("old_retries_purged", count=count)
        return count
