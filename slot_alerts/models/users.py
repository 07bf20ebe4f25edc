"""Users model definition using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, String, Table, Uuid, func, text

from slot_alerts.models.base import metadata

users = Table(
    "users",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True, default=uuid4),
    Column("email", String(255), nullable=False, unique=True),
    Column("full_name", String(255), nullable=True),
    Column("is_active", Boolean, nullable=False, server_default=text("true")),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)
