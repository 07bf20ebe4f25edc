"""Eligibility gate and preference helpers for proactive notifications."""

from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.exc import IntegrityError

from slot_alerts.core.engine_config import EngineConfig
from slot_alerts.core.exceptions import ValidationError
from slot_alerts.core.timeutils import (
    as_utc,
    format_time_of_day,
    in_quiet_window,
    minutes_since_midnight,
    parse_time_of_day,
    utcnow,
)
from slot_alerts.schemas.notifications import NotificationType
from slot_alerts.services.store import NotificationStore

logger = structlog.get_logger(__name__)

DEFAULT_PREFERENCES: dict[str, Any] = {
    "hot_alerts_enabled": True,
    "proactive_notifications_enabled": True,
    "weekly_digest_enabled": False,
    "expiry_reminders_enabled": True,
    "inactivity_alerts_enabled": True,
    "quiet_hours_start": "22:00",
    "quiet_hours_end": "07:00",
    "notification_cooldown_hours": 4,
}

# Notification type -> preference toggle that gates it
TYPE_TOGGLES: dict[NotificationType, str] = {
    "hot_alert": "hot_alerts_enabled",
    "opportunity": "proactive_notifications_enabled",
    "weekly_summary": "weekly_digest_enabled",
    "expiry_reminder": "expiry_reminders_enabled",
    "inactivity": "inactivity_alerts_enabled",
}

_UPDATABLE = frozenset(DEFAULT_PREFERENCES) | {"last_proactive_notification_at"}


class EligibilityService:
    """Decides whether a proactive notification may be sent to a user."""

    def __init__(self, store: NotificationStore, config: EngineConfig):
        """Initialize with a store and engine configuration."""
        self.store = store
        self.config = config

    async def ensure_user_preferences(self, user_id: UUID) -> dict[str, Any]:
        """
        Get a user's preferences, creating the defaults when missing.

        Args:
            user_id: User ID

        Returns:
            Preferences row
        """
        existing = await self.store.get_preferences(user_id)
        if existing:
            return existing

        try:
            await self.store.insert_preferences(user_id, dict(DEFAULT_PREFERENCES))
            logger.info("preferences_created", user_id=str(user_id))
        except IntegrityError:
            # Created concurrently by another worker
            logger.info("preferences_already_exist", user_id=str(user_id))

        created = await self.store.get_preferences(user_id)
        if created is None:
            raise RuntimeError(f"Preferences for user {user_id} could not be created")
        return created

    async def is_eligible(
        self,
        user_id: UUID,
        notification_type: NotificationType,
        now: datetime | None = None,
    ) -> bool:
        """
        Check type toggle, cooldown and quiet hours, in that order.

        Any read failure fails closed.

        Args:
            user_id: User ID
            notification_type: Notification type; unknown types are ineligible
            now: Evaluation time (defaults to the current time)

        Returns:
            True if the notification may be sent now
        """
        now = as_utc(now) if now else utcnow()
        try:
            prefs = await self.ensure_user_preferences(user_id)
        except Exception as e:
            logger.error(
                "eligibility_check_failed",
                user_id=str(user_id),
                notification_type=notification_type,
                error=str(e),
            )
            return False

        toggle = TYPE_TOGGLES.get(notification_type)
        if toggle is None or not prefs.get(toggle):
            logger.debug(
                "notification_type_disabled",
                user_id=str(user_id),
                notification_type=notification_type,
            )
            return False

        last_sent = prefs.get("last_proactive_notification_at")
        if last_sent is not None:
            hours = prefs.get("notification_cooldown_hours") or self.config.default_cooldown_hours
            elapsed = now - as_utc(last_sent)
            if elapsed < timedelta(hours=hours):
                logger.info(
                    "user_in_cooldown",
                    user_id=str(user_id),
                    elapsed_minutes=int(elapsed.total_seconds() // 60),
                    cooldown_hours=hours,
                )
                return False

        start, end = prefs.get("quiet_hours_start"), prefs.get("quiet_hours_end")
        if start and end:
            try:
                start_min, end_min = parse_time_of_day(start), parse_time_of_day(end)
            except ValidationError as e:
                logger.error("invalid_quiet_hours", user_id=str(user_id), error=e.message)
                return False
            current = minutes_since_midnight(now, self.config.reference_timezone)
            if in_quiet_window(current, start_min, end_min):
                logger.info(
                    "user_in_quiet_hours",
                    user_id=str(user_id),
                    local_time=format_time_of_day(current),
                    quiet_hours=f"{start}-{end}",
                )
                return False

        return True

    async def update_preferences(self, user_id: UUID, **updates: Any) -> dict[str, Any]:
        """
        Update preference columns, creating the row first if needed.

        Raises:
            ValidationError: On unknown columns or malformed quiet hours
        """
        unknown = set(updates) - _UPDATABLE
        if unknown:
            raise ValidationError(f"Unknown preference fields: {', '.join(sorted(unknown))}")
        for key in ("quiet_hours_start", "quiet_hours_end"):
            if updates.get(key) is not None:
                updates[key] = format_time_of_day(parse_time_of_day(updates[key]))

        await self.ensure_user_preferences(user_id)
        await self.store.update_preferences(user_id, updates)
        logger.info("preferences_updated", user_id=str(user_id), fields=sorted(updates))
        return await self.ensure_user_preferences(user_id)

    async def set_quiet_hours(self, user_id: UUID, start: str | None, end: str | None) -> None:
        """Set or clear (both None) the quiet-hours window."""
        await self.update_preferences(user_id, quiet_hours_start=start, quiet_hours_end=end)

    async def set_cooldown(self, user_id: UUID, hours: float) -> None:
        """Set the minimum hours between two proactive notifications."""
        if hours < 0:
            raise ValidationError("Cooldown cannot be negative")
        await self.update_preferences(user_id, notification_cooldown_hours=hours)

    async def record_proactive_notification(
        self, user_id: UUID, now: datetime | None = None
    ) -> None:
        """Stamp the time of the last proactive notification after a successful send."""
        await self.update_preferences(user_id, last_proactive_notification_at=now or utcnow())
