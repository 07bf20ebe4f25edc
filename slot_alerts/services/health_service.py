"""Consecutive-failure tracking for push delivery targets."""

from uuid import UUID

import structlog

from slot_alerts.core.engine_config import EngineConfig
from slot_alerts.core.timeutils import utcnow
from slot_alerts.services.store import NotificationStore

logger = structlog.get_logger(__name__)


class TargetHealthService:
    """Tracks delivery target health and deactivates broken targets."""

    def __init__(self, store: NotificationStore, config: EngineConfig):
        """Initialize with a store and engine configuration."""
        self.store = store
        self.config = config

    async def increment_failures(self, target_id: UUID, reason: str) -> bool:
        """
        Count one more consecutive failure for a target.

        The target is deactivated once the count reaches the threshold.

        Args:
            target_id: Delivery target ID
            reason: Failure reason to store

        Returns:
            True if the target is still active afterwards
        """
        target = await self.store.get_target(target_id)
        if target is None:
            logger.warning("target_not_found", target_id=str(target_id))
            return False

        failures = (target["consecutive_failures"] or 0) + 1
        threshold = self.config.max_consecutive_failures

        if failures >= threshold:
            await self.store.update_target(
                target_id,
                is_active=False,
                consecutive_failures=failures,
                last_delivery_status="failed",
                last_failure_reason=(
                    f"Auto-disabled after {failures} consecutive failures: {reason}"
                ),
            )
            logger.warning(
                "target_auto_disabled",
                target_id=str(target_id),
                consecutive_failures=failures,
                reason=reason,
            )
            return False

        await self.store.update_target(
            target_id,
            consecutive_failures=failures,
            last_delivery_status="failed",
            last_failure_reason=reason,
        )
        logger.info(
            "target_failure_recorded",
            target_id=str(target_id),
            consecutive_failures=failures,
            threshold=threshold,
        )
        return True

    async def reset_failures(self, target_id: UUID) -> None:
        """Clear the failure streak after a successful delivery."""
        await self.store.update_target(
            target_id,
            consecutive_failures=0,
            last_delivery_status="success",
            last_failure_reason=None,
            last_used=utcnow(),
        )

    async def deactivate(self, target_id: UUID, reason: str) -> None:
        """Deactivate a target right away, for endpoints that are gone for good."""
        await self.store.update_target(
            target_id,
            is_active=False,
            last_delivery_status="failed",
            last_failure_reason=reason,
        )
        logger.warning("target_deactivated", target_id=str(target_id), reason=reason)
