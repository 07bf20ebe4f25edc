"""Database models."""

from slot_alerts.models.base import metadata
from slot_alerts.models.preferences import user_preferences
from slot_alerts.models.push_subscriptions import push_subscriptions
from slot_alerts.models.queue import notification_queue, notified_appointments
from slot_alerts.models.retries import notification_retry_queue
from slot_alerts.models.subscriptions import notification_subscriptions
from slot_alerts.models.users import users

__all__ = [
    "metadata",
    "notification_queue",
    "notification_retry_queue",
    "notification_subscriptions",
    "notified_appointments",
    "push_subscriptions",
    "user_preferences",
    "users",
]
