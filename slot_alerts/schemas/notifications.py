"""Notification engine schemas."""

from datetime import date
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

NotificationType = Literal[
    "hot_alert",
    "opportunity",
    "weekly_summary",
    "expiry_reminder",
    "inactivity",
]

NotificationMethod = Literal["email", "push", "both"]


class DeliveryTarget(BaseModel):
    """Schema for a push-capable delivery target."""

    id: UUID
    user_id: UUID
    endpoint: str | None = None
    p256dh: str | None = None
    auth: str | None = None
    fcm_token: str | None = None
    device_type: str = "web"
    is_active: bool = True
    consecutive_failures: int = 0
    last_delivery_status: str | None = None
    last_failure_reason: str | None = None

    class Config:
        """Pydantic config."""

        from_attributes = True


class PushNotification(BaseModel):
    """Push notification content."""

    title: str = Field(..., min_length=1, max_length=200)
    body: str = Field(..., min_length=1, max_length=1000)
    icon: str | None = "/icons/icon-192x192.png"
    badge: str | None = "/icons/icon-72x72.png"
    tag: str | None = "appointment-notification"
    data: dict[str, Any] = Field(default_factory=dict)


class PushPayload(BaseModel):
    """Snapshot of a push delivery, stored on retry entries."""

    notification: PushNotification
    badge_count: int | None = None


class PushResult(BaseModel):
    """Outcome reported by a push sender."""

    delivered: bool
    status_code: int | None = None
    error: str | None = None


class ItemError(BaseModel):
    """Per-item failure collected by a batch pass."""

    queue_id: UUID
    error: str


class BatchResult(BaseModel):
    """Result of one queue processing pass."""

    processed: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[ItemError] = Field(default_factory=list)


class SweepResult(BaseModel):
    """Result of one retry sweep."""

    attempted: int = 0
    succeeded: int = 0
    rescheduled: int = 0
    terminally_failed: int = 0


class MaintenanceResult(BaseModel):
    """Result of one maintenance run."""

    expired_subscriptions: int = 0
    purged_queue_entries: int = 0
    reset_failed_entries: int = 0
    purged_retries: int = 0
    errors: dict[str, str] = Field(default_factory=dict)


class RetryStats(BaseModel):
    """Retry queue statistics for a user."""

    pending: int = 0
    failed: int = 0
    succeeded: int = 0


class EmailTemplateData(BaseModel):
    """Data rendered into the availability e-mail."""

    appointment_date: date
    day_name: str
    times: list[str]
    subscription_id: UUID
    booking_url: str
    approve_url: str
    decline_url: str
    unsubscribe_url: str
