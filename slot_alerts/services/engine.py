"""Notification engine facade: the entry points the scheduler and API call."""

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from slot_alerts.channels.base import DirectMessageSender, PushSender
from slot_alerts.core.engine_config import EngineConfig
from slot_alerts.schemas.notifications import (
    BatchResult,
    MaintenanceResult,
    NotificationType,
    PushPayload,
    RetryStats,
    SweepResult,
)
from slot_alerts.services.eligibility_service import EligibilityService
from slot_alerts.services.health_service import TargetHealthService
from slot_alerts.services.maintenance_service import MaintenanceService
from slot_alerts.services.queue_processor import QueueProcessor
from slot_alerts.services.retry_service import RetryManager
from slot_alerts.services.store import NotificationStore

logger = structlog.get_logger(__name__)


class NotificationEngine:
    """Wires the engine components over one store."""

    def __init__(
        self,
        db: AsyncSession,
        email_sender: DirectMessageSender,
        push_sender: PushSender,
        config: EngineConfig | None = None,
    ):
        """Initialize the engine with a database session and channel senders."""
        self.config = config or EngineConfig.from_settings()
        self.store = NotificationStore(db)
        self.health = TargetHealthService(self.store, self.config)
        self.eligibility = EligibilityService(self.store, self.config)
        self.retries = RetryManager(self.store, self.config, self.health, push_sender)
        self.processor = QueueProcessor(
            self.store, self.config, self.health, self.retries, email_sender, push_sender
        )
        self.maintenance = MaintenanceService(self.store, self.config, self.retries)

    async def process_queue_batch(self, max_items: int | None = None) -> BatchResult:
        """Process one batch of the primary queue."""
        return await self.processor.process_queue_batch(max_items)

    async def sweep_retries(self, limit: int | None = None) -> SweepResult:
        """Replay due push retries."""
        return await self.retries.sweep_retries(limit)

    async def run_maintenance(self) -> MaintenanceResult:
        """Run all cleanup jobs."""
        return await self.maintenance.run_maintenance()

    async def is_eligible(self, user_id: UUID, notification_type: NotificationType) -> bool:
        """Whether a proactive notification of this type may be sent now."""
        return await self.eligibility.is_eligible(user_id, notification_type)

    async def enqueue_retry(
        self,
        target_id: UUID,
        user_id: UUID,
        payload: PushPayload | dict[str, Any],
        error: str,
        original_id: UUID | None = None,
    ) -> UUID:
        """Schedule a retry for a failed push delivery."""
        return await self.retries.add_to_retry_queue(
            target_id, user_id, payload, error, original_queue_id=original_id
        )

    async def record_retry_outcome(
        self, retry_id: UUID, success: bool, error: str | None = None
    ) -> None:
        """Record the outcome of a retry attempt made outside the sweep."""
        await self.retries.update_retry_entry(retry_id, success, error)

    async def cancel_retries_for_target(self, target_id: UUID) -> int:
        """Cancel all pending retries of a delivery target."""
        return await self.retries.cancel_pending_retries(target_id)

    async def get_retry_stats(self, user_id: UUID) -> RetryStats:
        """Retry counts for a user."""
        return await self.retries.get_retry_stats(user_id)

    async def remove_target(self, target_id: UUID) -> bool:
        """Cancel a target's pending retries, then delete it."""
        await self.retries.cancel_pending_retries(target_id)
        deleted = await self.store.delete_target(target_id)
        logger.info("target_removed", target_id=str(target_id), deleted=deleted)
        return deleted
