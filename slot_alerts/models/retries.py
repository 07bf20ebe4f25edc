"""Push retry queue model."""

from uuid import uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    Uuid,
    func,
    text,
)

from slot_alerts.models.base import metadata

notification_retry_queue = Table(
    "notification_retry_queue",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True, default=uuid4),
    Column(
        "original_queue_id",
        Uuid(as_uuid=True),
        ForeignKey("notification_queue.id", ondelete="SET NULL"),
        nullable=True,
    ),
    Column(
        "push_subscription_id",
        Uuid(as_uuid=True),
        ForeignKey("push_subscriptions.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "user_id", Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    ),
    Column("retry_count", Integer, nullable=False, server_default=text("0")),
    Column("max_retries", Integer, nullable=False, server_default=text("3")),
    Column("next_retry_at", DateTime(timezone=True), nullable=False),
    Column("last_error", Text, nullable=True),
    Column("payload", JSON, nullable=False),
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint(
        "status IN ('pending', 'processing', 'success', 'failed', 'cancelled')",
        name="notification_retry_queue_status_check",
    ),
    CheckConstraint("retry_count <= max_retries", name="notification_retry_queue_count_check"),
    Index("idx_notification_retry_queue_due", "status", "next_retry_at"),
    Index("idx_notification_retry_queue_target", "push_subscription_id"),
)
