"""Primary notification queue and delivered-notification audit models."""

from uuid import uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Table,
    Text,
    Uuid,
    func,
)

from slot_alerts.models.base import metadata

notification_queue = Table(
    "notification_queue",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True, default=uuid4),
    Column(
        "subscription_id",
        Uuid(as_uuid=True),
        ForeignKey("notification_subscriptions.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("appointment_date", Date, nullable=True),
    Column("available_times", JSON, nullable=True),
    Column("new_times", JSON, nullable=True),
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("error_message", Text, nullable=True),
    Column("processed_at", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint(
        "status IN ('pending', 'processing', 'sent', 'skipped', 'failed')",
        name="notification_queue_status_check",
    ),
    Index("idx_notification_queue_status_created", "status", "created_at"),
)

notified_appointments = Table(
    "notified_appointments",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True, default=uuid4),
    Column(
        "subscription_id",
        Uuid(as_uuid=True),
        ForeignKey("notification_subscriptions.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("appointment_date", Date, nullable=False),
    Column("notified_times", JSON, nullable=False),
    # Canonical "HH:MM,HH:MM" form of notified_times for equality lookups
    Column("times_key", Text, nullable=False),
    Column(
        "notification_sent_at", DateTime(timezone=True), nullable=False, server_default=func.now()
    ),
    Index(
        "idx_notified_appointments_lookup",
        "subscription_id",
        "appointment_date",
        "times_key",
        "notification_sent_at",
    ),
)
