"""Persistent store for the notification engine.

Every write commits before returning, so a claim made through
``compare_and_swap_status`` is visible to other workers before the caller
starts any network call.
"""

from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import Table, delete, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from slot_alerts.core.timeutils import utcnow
from slot_alerts.models.preferences import user_preferences
from slot_alerts.models.push_subscriptions import push_subscriptions
from slot_alerts.models.queue import notification_queue, notified_appointments
from slot_alerts.models.retries import notification_retry_queue
from slot_alerts.models.subscriptions import notification_subscriptions
from slot_alerts.models.users import users

QUEUE_TERMINAL_STATUSES = ("sent", "skipped", "failed")
RETRY_TERMINAL_STATUSES = ("success", "failed", "cancelled")


class NotificationStore:
    """Reads and writes of the engine's entities over one async session."""

    def __init__(self, db: AsyncSession):
        """Initialize the store with a database session."""
        self.db = db

    async def _fetch_one(self, table: Table, row_id: UUID) -> dict[str, Any] | None:
        result = await self.db.execute(select(table).where(table.c.id == row_id))
        row = result.first()
        return dict(row._mapping) if row else None

    async def _update(self, table: Table, row_id: UUID, values: dict[str, Any]) -> bool:
        result = await self.db.execute(update(table).where(table.c.id == row_id).values(**values))
        await self.db.commit()
        return result.rowcount > 0

    async def compare_and_swap_status(
        self,
        table: Table,
        row_id: UUID,
        expected: str,
        new: str,
        **values: Any,
    ) -> bool:
        """
        Move a row from one status to another only if it still holds ``expected``.

        Args:
            table: Table with ``id`` and ``status`` columns
            row_id: Row ID
            expected: Status the row must currently hold
            new: Status to write
            **values: Extra columns written in the same statement

        Returns:
            True if this call made the transition, False if another writer got there first
        """
        result = await self.db.execute(
            update(table)
            .where(table.c.id == row_id, table.c.status == expected)
            .values(status=new, **values)
        )
        await self.db.commit()
        return result.rowcount == 1

    # Users and preferences

    async def get_user(self, user_id: UUID) -> dict[str, Any] | None:
        """Get a user by ID."""
        return await self._fetch_one(users, user_id)

    async def get_preferences(self, user_id: UUID) -> dict[str, Any] | None:
        """Get a user's notification preferences."""
        result = await self.db.execute(
            select(user_preferences).where(user_preferences.c.user_id == user_id)
        )
        row = result.first()
        return dict(row._mapping) if row else None

    async def insert_preferences(self, user_id: UUID, values: dict[str, Any]) -> None:
        """Insert a preferences row. Raises IntegrityError if one already exists."""
        now = utcnow()
        try:
            await self.db.execute(
                insert(user_preferences).values(
                    user_id=user_id, created_at=now, updated_at=now, **values
                )
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def update_preferences(self, user_id: UUID, values: dict[str, Any]) -> bool:
        """Update a user's preferences."""
        result = await self.db.execute(
            update(user_preferences)
            .where(user_preferences.c.user_id == user_id)
            .values(updated_at=utcnow(), **values)
        )
        await self.db.commit()
        return result.rowcount > 0

    # Subscriptions

    async def get_subscription(self, subscription_id: UUID) -> dict[str, Any] | None:
        """Get a subscription by ID."""
        return await self._fetch_one(notification_subscriptions, subscription_id)

    async def deactivate_expired_subscriptions(self, today: date, now: datetime) -> int:
        """Deactivate active subscriptions whose date or range end is before ``today``."""
        total = 0
        for column in (
            notification_subscriptions.c.subscription_date,
            notification_subscriptions.c.date_range_end,
        ):
            result = await self.db.execute(
                update(notification_subscriptions)
                .where(
                    notification_subscriptions.c.is_active == True,  # noqa: E712
                    column.is_not(None),
                    column < today,
                )
                .values(is_active=False, completed_at=now, updated_at=now)
            )
            total += result.rowcount
        await self.db.commit()
        return total

    # Primary queue

    async def get_queue_entry(self, queue_id: UUID) -> dict[str, Any] | None:
        """Get a queue entry by ID."""
        return await self._fetch_one(notification_queue, queue_id)

    async def insert_queue_entry(
        self,
        subscription_id: UUID,
        appointment_date: date | None,
        new_times: list[str] | None,
        available_times: list[str] | None = None,
        status: str = "pending",
        created_at: datetime | None = None,
    ) -> UUID:
        """Insert a queue entry and return its ID."""
        result = await self.db.execute(
            insert(notification_queue).values(
                subscription_id=subscription_id,
                appointment_date=appointment_date,
                new_times=new_times,
                available_times=available_times if available_times is not None else new_times,
                status=status,
                created_at=created_at or utcnow(),
            )
        )
        await self.db.commit()
        return result.inserted_primary_key[0]

    async def list_pending_queue_entries(self, limit: int) -> list[dict[str, Any]]:
        """Oldest pending queue entries first."""
        result = await self.db.execute(
            select(notification_queue)
            .where(notification_queue.c.status == "pending")
            .order_by(notification_queue.c.created_at.asc())
            .limit(limit)
        )
        return [dict(row._mapping) for row in result.fetchall()]

    async def update_queue_entry(self, queue_id: UUID, **values: Any) -> bool:
        """Update columns of a queue entry."""
        return await self._update(notification_queue, queue_id, values)

    async def delete_queue_entries(self, statuses: tuple[str, ...], before: datetime) -> int:
        """Delete queue entries in the given statuses created before ``before``."""
        result = await self.db.execute(
            delete(notification_queue).where(
                notification_queue.c.status.in_(statuses),
                notification_queue.c.created_at < before,
            )
        )
        await self.db.commit()
        return result.rowcount

    async def reset_failed_queue_entries(self, since: datetime) -> int:
        """Move failed entries created at or after ``since`` back to pending."""
        result = await self.db.execute(
            update(notification_queue)
            .where(
                notification_queue.c.status == "failed",
                notification_queue.c.created_at >= since,
            )
            .values(status="pending", error_message=None)
        )
        await self.db.commit()
        return result.rowcount

    # Delivered-notification audit

    async def has_recent_notification(
        self,
        subscription_id: UUID,
        appointment_date: date,
        times_key: str,
        since: datetime,
    ) -> bool:
        """Whether this time-set was delivered for the subscription and date since ``since``."""
        result = await self.db.execute(
            select(notified_appointments.c.id)
            .where(
                notified_appointments.c.subscription_id == subscription_id,
                notified_appointments.c.appointment_date == appointment_date,
                notified_appointments.c.times_key == times_key,
                notified_appointments.c.notification_sent_at >= since,
            )
            .limit(1)
        )
        return result.first() is not None

    async def insert_notified_record(
        self,
        subscription_id: UUID,
        appointment_date: date,
        times: list[str],
        times_key: str,
        sent_at: datetime,
    ) -> UUID:
        """Record a delivered notification."""
        result = await self.db.execute(
            insert(notified_appointments).values(
                subscription_id=subscription_id,
                appointment_date=appointment_date,
                notified_times=times,
                times_key=times_key,
                notification_sent_at=sent_at,
            )
        )
        await self.db.commit()
        return result.inserted_primary_key[0]

    # Delivery targets

    async def get_target(self, target_id: UUID) -> dict[str, Any] | None:
        """Get a delivery target by ID."""
        return await self._fetch_one(push_subscriptions, target_id)

    async def list_active_targets(self, user_id: UUID) -> list[dict[str, Any]]:
        """Active delivery targets of a user."""
        result = await self.db.execute(
            select(push_subscriptions)
            .where(
                push_subscriptions.c.user_id == user_id,
                push_subscriptions.c.is_active == True,  # noqa: E712
            )
            .order_by(push_subscriptions.c.created_at.asc())
        )
        return [dict(row._mapping) for row in result.fetchall()]

    async def update_target(self, target_id: UUID, **values: Any) -> bool:
        """Update columns of a delivery target."""
        return await self._update(push_subscriptions, target_id, values)

    async def delete_target(self, target_id: UUID) -> bool:
        """Delete a delivery target."""
        result = await self.db.execute(
            delete(push_subscriptions).where(push_subscriptions.c.id == target_id)
        )
        await self.db.commit()
        return result.rowcount > 0

    # Retry queue

    async def get_retry(self, retry_id: UUID) -> dict[str, Any] | None:
        """Get a retry entry by ID."""
        return await self._fetch_one(notification_retry_queue, retry_id)

    async def insert_retry(self, **values: Any) -> UUID:
        """Insert a retry entry and return its ID."""
        now = utcnow()
        values.setdefault("created_at", now)
        values.setdefault("updated_at", now)
        result = await self.db.execute(insert(notification_retry_queue).values(**values))
        await self.db.commit()
        return result.inserted_primary_key[0]

    async def update_retry(self, retry_id: UUID, **values: Any) -> bool:
        """Update columns of a retry entry."""
        values.setdefault("updated_at", utcnow())
        return await self._update(notification_retry_queue, retry_id, values)

    async def list_due_retries(self, now: datetime, limit: int) -> list[dict[str, Any]]:
        """
        Pending retries due at ``now`` whose target is still active.

        Each row carries the retry columns plus the target under ``target``.
        """
        retries = notification_retry_queue
        targets = push_subscriptions
        query = (
            select(retries, *[c.label(f"target_{c.name}") for c in targets.c])
            .join(targets, targets.c.id == retries.c.push_subscription_id)
            .where(
                retries.c.status == "pending",
                retries.c.next_retry_at <= now,
                targets.c.is_active == True,  # noqa: E712
            )
            .order_by(retries.c.next_retry_at.asc())
            .limit(limit)
        )
        result = await self.db.execute(query)
        rows = []
        for row in result.fetchall():
            mapping = dict(row._mapping)
            mapping["target"] = {c.name: mapping.pop(f"target_{c.name}") for c in targets.c}
            rows.append(mapping)
        return rows

    async def cancel_pending_retries(self, target_id: UUID) -> int:
        """Cancel all pending retries of a delivery target."""
        result = await self.db.execute(
            update(notification_retry_queue)
            .where(
                notification_retry_queue.c.push_subscription_id == target_id,
                notification_retry_queue.c.status == "pending",
            )
            .values(status="cancelled", updated_at=utcnow())
        )
        await self.db.commit()
        return result.rowcount

    async def count_retries_by_status(self, user_id: UUID) -> dict[str, int]:
        """Retry entry counts per status for a user."""
        result = await self.db.execute(
            select(notification_retry_queue.c.status, func.count())
            .where(notification_retry_queue.c.user_id == user_id)
            .group_by(notification_retry_queue.c.status)
        )
        return {status: count for status, count in result.fetchall()}

    async def delete_retries(self, statuses: tuple[str, ...], before: datetime) -> int:
        """Delete retry entries in the given statuses created before ``before``."""
        result = await self.db.execute(
            delete(notification_retry_queue).where(
                notification_retry_queue.c.status.in_(statuses),
                notification_retry_queue.c.created_at < before,
            )
        )
        await self.db.commit()
        return result.rowcount
