"""Push delivery targets model definition using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    Uuid,
    func,
    text,
)

from slot_alerts.models.base import metadata

push_subscriptions = Table(
    "push_subscriptions",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True, default=uuid4),
    Column(
        "user_id",
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("endpoint", Text, nullable=True),
    Column("p256dh", Text, nullable=True),
    Column("auth", Text, nullable=True),
    Column("fcm_token", Text, nullable=True),
    Column("device_type", String(20), nullable=False, server_default="web"),
    Column("is_active", Boolean, nullable=False, server_default=text("true"), index=True),
    Column("consecutive_failures", Integer, nullable=False, server_default=text("0")),
    Column("last_delivery_status", String(20), nullable=True),
    Column("last_failure_reason", Text, nullable=True),
    Column("last_used", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)
