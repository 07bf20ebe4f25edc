"""User notification preferences model."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    String,
    Table,
    Uuid,
    func,
    text,
)

from slot_alerts.models.base import metadata

user_preferences = Table(
    "user_preferences",
    metadata,
    Column(
        "user_id",
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("hot_alerts_enabled", Boolean, nullable=False, server_default=text("true")),
    Column(
        "proactive_notifications_enabled", Boolean, nullable=False, server_default=text("true")
    ),
    Column("weekly_digest_enabled", Boolean, nullable=False, server_default=text("false")),
    Column("expiry_reminders_enabled", Boolean, nullable=False, server_default=text("true")),
    Column("inactivity_alerts_enabled", Boolean, nullable=False, server_default=text("true")),
    # "HH:MM" in the reference timezone
    Column("quiet_hours_start", String(5), nullable=True),
    Column("quiet_hours_end", String(5), nullable=True),
    Column("notification_cooldown_hours", Float, nullable=False, server_default=text("4")),
    Column("last_proactive_notification_at", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)
