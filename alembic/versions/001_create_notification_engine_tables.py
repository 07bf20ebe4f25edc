"""create notification engine tables

Revision ID: 001
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
    )


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        postgresql.TIMESTAMP(timezone=True),
        server_default=None if nullable else sa.text("NOW()"),
        nullable=nullable,
    )


def upgrade() -> None:
    """Create users, preferences, subscriptions, queues, targets and the audit table."""
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    op.create_table(
        "users",
        _id_column(),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="users_email_key"),
    )

    op.create_table(
        "user_preferences",
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("hot_alerts_enabled", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column(
            "proactive_notifications_enabled",
            sa.Boolean(),
            server_default=sa.text("true"),
            nullable=False,
        ),
        sa.Column(
            "weekly_digest_enabled", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        sa.Column(
            "expiry_reminders_enabled", sa.Boolean(), server_default=sa.text("true"), nullable=False
        ),
        sa.Column(
            "inactivity_alerts_enabled", sa.Boolean(), server_default=sa.text("true"), nullable=False
        ),
        sa.Column("quiet_hours_start", sa.String(5), nullable=True),
        sa.Column("quiet_hours_end", sa.String(5), nullable=True),
        sa.Column(
            "notification_cooldown_hours", sa.Float(), server_default=sa.text("4"), nullable=False
        ),
        _timestamp("last_proactive_notification_at", nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("user_id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )

    op.create_table(
        "notification_subscriptions",
        _id_column(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("subscription_date", sa.Date(), nullable=True),
        sa.Column("date_range_start", sa.Date(), nullable=True),
        sa.Column("date_range_end", sa.Date(), nullable=True),
        sa.Column("notification_method", sa.String(10), server_default="email", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _timestamp("completed_at", nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "notification_method IN ('email', 'push', 'both')",
            name="notification_subscriptions_method_check",
        ),
    )
    op.create_index(
        "idx_notification_subscriptions_user_id", "notification_subscriptions", ["user_id"]
    )
    op.create_index(
        "idx_notification_subscriptions_active", "notification_subscriptions", ["is_active"]
    )

    op.create_table(
        "notification_queue",
        _id_column(),
        sa.Column("subscription_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("appointment_date", sa.Date(), nullable=True),
        sa.Column("available_times", sa.JSON(), nullable=True),
        sa.Column("new_times", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(20), server_default="pending", nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        _timestamp("processed_at", nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["subscription_id"], ["notification_subscriptions.id"], ondelete="CASCADE"
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'sent', 'skipped', 'failed')",
            name="notification_queue_status_check",
        ),
    )
    op.create_index(
        "idx_notification_queue_status_created", "notification_queue", ["status", "created_at"]
    )

    op.create_table(
        "notified_appointments",
        _id_column(),
        sa.Column("subscription_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("appointment_date", sa.Date(), nullable=False),
        sa.Column("notified_times", sa.JSON(), nullable=False),
        sa.Column("times_key", sa.Text(), nullable=False),
        _timestamp("notification_sent_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["subscription_id"], ["notification_subscriptions.id"], ondelete="CASCADE"
        ),
    )
    op.create_index(
        "idx_notified_appointments_lookup",
        "notified_appointments",
        ["subscription_id", "appointment_date", "times_key", "notification_sent_at"],
    )

    op.create_table(
        "push_subscriptions",
        _id_column(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("endpoint", sa.Text(), nullable=True),
        sa.Column("p256dh", sa.Text(), nullable=True),
        sa.Column("auth", sa.Text(), nullable=True),
        sa.Column("fcm_token", sa.Text(), nullable=True),
        sa.Column("device_type", sa.String(20), server_default="web", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("consecutive_failures", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("last_delivery_status", sa.String(20), nullable=True),
        sa.Column("last_failure_reason", sa.Text(), nullable=True),
        _timestamp("last_used", nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_push_subscriptions_user_id", "push_subscriptions", ["user_id"])
    op.create_index("ix_push_subscriptions_is_active", "push_subscriptions", ["is_active"])

    op.create_table(
        "notification_retry_queue",
        _id_column(),
        sa.Column("original_queue_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("push_subscription_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("retry_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("max_retries", sa.Integer(), server_default=sa.text("3"), nullable=False),
        sa.Column("next_retry_at", postgresql.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(20), server_default="pending", nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["original_queue_id"], ["notification_queue.id"], ondelete="SET NULL"
        ),
        sa.ForeignKeyConstraint(
            ["push_subscription_id"], ["push_subscriptions.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'success', 'failed', 'cancelled')",
            name="notification_retry_queue_status_check",
        ),
        sa.CheckConstraint(
            "retry_count <= max_retries", name="notification_retry_queue_count_check"
        ),
    )
    op.create_index(
        "idx_notification_retry_queue_due",
        "notification_retry_queue",
        ["status", "next_retry_at"],
    )
    op.create_index(
        "idx_notification_retry_queue_target",
        "notification_retry_queue",
        ["push_subscription_id"],
    )


def downgrade() -> None:
    """Drop the notification engine tables."""
    op.drop_table("notification_retry_queue")
    op.drop_table("push_subscriptions")
    op.drop_table("notified_appointments")
    op.drop_table("notification_queue")
    op.drop_table("notification_subscriptions")
    op.drop_table("user_preferences")
    op.drop_table("users")
