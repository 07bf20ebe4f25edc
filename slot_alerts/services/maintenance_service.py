"""Periodic cleanup of subscriptions, queue entries and retries."""

from datetime import datetime

import structlog

from slot_alerts.core.engine_config import EngineConfig
from slot_alerts.core.timeutils import today_in_timezone, utcnow
from slot_alerts.schemas.notifications import MaintenanceResult
from slot_alerts.services.retry_service import RetryManager
from slot_alerts.services.store import QUEUE_TERMINAL_STATUSES, NotificationStore

logger = structlog.get_logger(__name__)


class MaintenanceService:
    """Housekeeping jobs run by the external scheduler."""

    def __init__(self, store: NotificationStore, config: EngineConfig, retries: RetryManager):
        """Initialize with store, configuration and retry manager."""
        self.store = store
        self.config = config
        self.retries = retries

    async def cleanup_expired_subscriptions(self, now: datetime | None = None) -> int:
        """Deactivate subscriptions whose date (or range end) is before today."""
        now = now or utcnow()
        today = today_in_timezone(self.config.reference_timezone, now)
        count = await self.store.deactivate_expired_subscriptions(today, now)
        logger.info("expired_subscriptions_deactivated", count=count, today=today.isoformat())
        return count

    async def cleanup_notification_queue(self, now: datetime | None = None) -> int:
        """Delete finished queue entries older than the retention period."""
        cutoff = (now or utcnow()) - self.config.retention
        count = await self.store.delete_queue_entries(QUEUE_TERMINAL_STATUSES, cutoff)
        logger.info("notification_queue_purged", count=count)
        return count

    async def retry_failed_notifications(self, now: datetime | None = None) -> int:
        """Put recently failed queue entries back to pending."""
        since = (now or utcnow()) - self.config.failed_reset_window
        count = await self.store.reset_failed_queue_entries(since)
        logger.info("failed_notifications_reset", count=count)
        return count

    async def cleanup_old_retries(self, now: datetime | None = None) -> int:
        """Delete finished retry entries older than the retention period."""
        return await self.retries.cleanup_old_retries(now)

    async def run_maintenance(self, now: datetime | None = None) -> MaintenanceResult:
        """
        Run every cleanup job.

        A failing job is recorded in ``errors`` and does not stop the others.

        Args:
            now: Reference time (defaults to the current time)

        Returns:
            Per-job counts and errors
        """
        now = now or utcnow()
        result = MaintenanceResult()
        jobs = [
            ("expired_subscriptions", self.cleanup_expired_subscriptions),
            ("reset_failed_entries", self.retry_failed_notifications),
            ("purged_queue_entries", self.cleanup_notification_queue),
            ("purged_retries", self.cleanup_old_retries),
        ]
        for name, job in jobs:
            try:
                setattr(result, name, await job(now))
            except Exception as e:
                logger.error("maintenance_job_failed", job=name, error=str(e))
                await self.store.db.rollback()
                result.errors[name] = str(e)

        logger.info("maintenance_completed", **result.model_dump(exclude={"errors"}))
        return result
