"""Availability subscription model."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Table,
    Uuid,
    func,
    text,
)

from slot_alerts.models.base import metadata

notification_subscriptions = Table(
    "notification_subscriptions",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True, default=uuid4),
    Column(
        "user_id", Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    ),
    Column("subscription_date", Date, nullable=True),
    Column("date_range_start", Date, nullable=True),
    Column("date_range_end", Date, nullable=True),
    Column("notification_method", String(10), nullable=False, server_default="email"),
    Column("is_active", Boolean, nullable=False, server_default=text("true")),
    Column("completed_at", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint(
        "notification_method IN ('email', 'push', 'both')",
        name="notification_subscriptions_method_check",
    ),
    Index("idx_notification_subscriptions_user_id", "user_id"),
    Index("idx_notification_subscriptions_active", "is_active"),
)
