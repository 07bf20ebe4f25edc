"""Tests for the push retry manager."""

from datetime import timedelta
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from pydantic import ValidationError as PayloadValidationError

from slot_alerts.core.exceptions import PermanentChannelError, TransientChannelError
from slot_alerts.core.timeutils import as_utc, utcnow
from slot_alerts.schemas.notifications import PushNotification, PushPayload, PushResult

PAYLOAD = PushPayload(notification=PushNotification(title="Slots", body="10:00, 11:00"))


def close_to(value, expected, tolerance=timedelta(seconds=5)) -> bool:
    return abs(as_utc(value) - expected) <= tolerance


@pytest.fixture
def retries(notification_engine):
    return notification_engine.retries


@pytest.mark.parametrize(
    ("status_code", "permanent"),
    [
        (401, True),
        (404, True),
        (410, True),
        (408, False),
        (429, False),
        (500, False),
        (503, False),
        (418, False),
        (None, False),
    ],
)
def test_classify(retries, status_code, permanent):
    error = retries.classify(PushResult(delivered=False, status_code=status_code))
    expected = PermanentChannelError if permanent else TransientChannelError
    assert isinstance(error, expected)
    assert error.channel_status_code == status_code


def test_backoff_is_capped_at_last_interval(retries):
    assert retries.backoff(0) == timedelta(minutes=1)
    assert retries.backoff(1) == timedelta(minutes=5)
    assert retries.backoff(2) == timedelta(minutes=15)
    assert retries.backoff(7) == timedelta(minutes=15)


@pytest.mark.asyncio
async def test_failures_follow_backoff_then_escalate(retries, store, make_target, test_user):
    """Test three server errors: +1m, +5m, +15m, then failed with one health strike."""
    target_id = await make_target()

    retry_id = await retries.add_to_retry_queue(target_id, test_user["id"], PAYLOAD, "HTTP 500")
    entry = await store.get_retry(retry_id)
    assert entry["status"] == "pending"
    assert entry["retry_count"] == 0
    assert entry["max_retries"] == 3
    assert close_to(entry["next_retry_at"], utcnow() + timedelta(minutes=1))

    previous = as_utc(entry["next_retry_at"])
    for attempt, interval in ((1, timedelta(minutes=5)), (2, timedelta(minutes=15))):
        status = await retries.update_retry_entry(retry_id, success=False, error="HTTP 500")
        entry = await store.get_retry(retry_id)
        assert status == "pending"
        assert entry["retry_count"] == attempt
        assert close_to(entry["next_retry_at"], utcnow() + interval)
        assert as_utc(entry["next_retry_at"]) > previous
        previous = as_utc(entry["next_retry_at"])

    status = await retries.update_retry_entry(retry_id, success=False, error="HTTP 500")
    entry = await store.get_retry(retry_id)
    assert status == "failed"
    assert entry["retry_count"] == entry["max_retries"] == 3
    assert entry["last_error"] == "HTTP 500"

    target = await store.get_target(target_id)
    assert target["consecutive_failures"] == 1
    assert target["is_active"] is True


@pytest.mark.asyncio
async def test_success_resets_target_health(retries, store, make_target, test_user):
    target_id = await make_target(consecutive_failures=3)
    retry_id = await retries.add_to_retry_queue(target_id, test_user["id"], PAYLOAD, "timeout")

    assert await retries.update_retry_entry(retry_id, success=True) == "success"

    entry = await store.get_retry(retry_id)
    assert entry["status"] == "success"
    assert entry["last_error"] is None
    target = await store.get_target(target_id)
    assert target["consecutive_failures"] == 0
    assert target["last_used"] is not None


@pytest.mark.asyncio
async def test_missing_entry_is_ignored(retries):
    assert await retries.update_retry_entry(uuid4(), success=False, error="x") is None


@pytest.mark.asyncio
async def test_retry_claim_is_exclusive(retries, make_target, test_user):
    target_id = await make_target()
    retry_id = await retries.add_to_retry_queue(target_id, test_user["id"], PAYLOAD, "HTTP 503")

    assert await retries.mark_retry_as_processing(retry_id) is True
    assert await retries.mark_retry_as_processing(retry_id) is False


async def add_due_retry(retries, store, target_id, user_id):
    retry_id = await retries.add_to_retry_queue(target_id, user_id, PAYLOAD, "HTTP 503")
    await store.update_retry(retry_id, next_retry_at=utcnow() - timedelta(seconds=1))
    return retry_id


@pytest.mark.asyncio
async def test_pending_retries_skip_future_and_inactive_targets(
    retries, store, make_target, test_user
):
    active = await make_target(fcm_token="active")
    inactive = await make_target(fcm_token="inactive", is_active=False)
    due = await add_due_retry(retries, store, active, test_user["id"])
    await add_due_retry(retries, store, inactive, test_user["id"])
    await retries.add_to_retry_queue(active, test_user["id"], PAYLOAD, "not due yet")

    pending = await retries.get_pending_retries()

    assert [entry["id"] for entry in pending] == [due]
    assert pending[0]["target"]["fcm_token"] == "active"


@pytest.mark.asyncio
async def test_sweep_delivers_due_retries(retries, store, make_target, push_sender, test_user):
    target_id = await make_target(consecutive_failures=2)
    retry_id = await add_due_retry(retries, store, target_id, test_user["id"])

    result = await retries.sweep_retries()

    assert (result.attempted, result.succeeded) == (1, 1)
    assert (await store.get_retry(retry_id))["status"] == "success"
    assert (await store.get_target(target_id))["consecutive_failures"] == 0
    sent_target, sent_payload = push_sender.sent[0]
    assert sent_target.id == target_id
    assert sent_payload == PAYLOAD


@pytest.mark.asyncio
async def test_sweep_reschedules_transient_failures(
    retries, store, make_target, push_sender, test_user
):
    push_sender.result = PushResult(delivered=False, status_code=429)
    target_id = await make_target()
    retry_id = await add_due_retry(retries, store, target_id, test_user["id"])

    result = await retries.sweep_retries()

    assert result.rescheduled == 1
    entry = await store.get_retry(retry_id)
    assert entry["status"] == "pending"
    assert entry["retry_count"] == 1


@pytest.mark.asyncio
async def test_sweep_permanent_error_deactivates_and_cancels(
    retries, store, make_target, push_sender, test_user
):
    """Test a 404 during a sweep disables the target and cancels its other retries."""
    push_sender.result = PushResult(delivered=False, status_code=404, error="Not found")
    target_id = await make_target()
    retry_id = await add_due_retry(retries, store, target_id, test_user["id"])
    later_id = await retries.add_to_retry_queue(target_id, test_user["id"], PAYLOAD, "HTTP 503")

    result = await retries.sweep_retries()

    assert result.terminally_failed == 1
    entry = await store.get_retry(retry_id)
    assert entry["status"] == "failed"
    assert entry["retry_count"] == 0
    assert (await store.get_retry(later_id))["status"] == "cancelled"
    assert (await store.get_target(target_id))["is_active"] is False


@pytest.mark.asyncio
async def test_retry_stats(retries, store, make_target, test_user):
    target_id = await make_target()
    await retries.add_to_retry_queue(target_id, test_user["id"], PAYLOAD, "e")
    processing = await retries.add_to_retry_queue(target_id, test_user["id"], PAYLOAD, "e")
    succeeded = await retries.add_to_retry_queue(target_id, test_user["id"], PAYLOAD, "e")
    await retries.mark_retry_as_processing(processing)
    await retries.update_retry_entry(succeeded, success=True)

    stats = await retries.get_retry_stats(test_user["id"])

    assert (stats.pending, stats.failed, stats.succeeded) == (2, 0, 1)


@pytest.mark.asyncio
async def test_remove_target_cancels_pending_retries(
    notification_engine, retries, store, make_target, test_user
):
    target_id = await make_target()
    retry_id = await retries.add_to_retry_queue(target_id, test_user["id"], PAYLOAD, "e")

    assert await notification_engine.cancel_retries_for_target(target_id) == 1
    assert (await store.get_retry(retry_id))["status"] == "cancelled"

    assert await notification_engine.remove_target(target_id) is True
    assert await store.get_target(target_id) is None


def test_unknown_codes_are_retried(retries):
    assert retries.is_retryable_error(503) is True
    assert retries.is_retryable_error(418) is False
    assert retries.is_permanent_error(418) is False
    assert isinstance(
        retries.classify(PushResult(delivered=False, status_code=418)), TransientChannelError
    )


@pytest.mark.asyncio
async def test_cancelled_entry_ignores_late_failure_report(
    notification_engine, store, make_target, test_user
):
    """Test a cancelled retry is never moved back to pending."""
    target_id = await make_target()
    retry_id = await notification_engine.enqueue_retry(target_id, test_user["id"], PAYLOAD, "e")
    await notification_engine.cancel_retries_for_target(target_id)

    await notification_engine.record_retry_outcome(retry_id, False, "HTTP 503")
    await notification_engine.record_retry_outcome(retry_id, True)

    entry = await store.get_retry(retry_id)
    assert entry["status"] == "cancelled"
    assert entry["retry_count"] == 0
    assert (await store.get_target(target_id))["last_delivery_status"] is None


@pytest.mark.asyncio
async def test_failure_reports_after_exhaustion_are_ignored(
    notification_engine, store, make_target, test_user
):
    """Test a failed retry keeps its count and strikes the target only once."""
    target_id = await make_target()
    retry_id = await notification_engine.enqueue_retry(target_id, test_user["id"], PAYLOAD, "e")

    statuses = [
        await notification_engine.retries.update_retry_entry(retry_id, False, "HTTP 500")
        for _ in range(4)
    ]

    assert statuses == ["pending", "pending", "failed", None]
    entry = await store.get_retry(retry_id)
    assert entry["status"] == "failed"
    assert entry["retry_count"] == entry["max_retries"]
    assert (await store.get_target(target_id))["consecutive_failures"] == 1


@pytest.mark.asyncio
async def test_dict_payload_is_validated(retries, store, make_target, test_user):
    target_id = await make_target()

    with pytest.raises(PayloadValidationError):
        await retries.add_to_retry_queue(target_id, test_user["id"], {"title": "x"}, "e")

    retry_id = await retries.add_to_retry_queue(
        target_id,
        test_user["id"],
        {"notification": {"title": "Slots", "body": "10:00"}},
        "e",
    )
    entry = await store.get_retry(retry_id)
    assert entry["payload"]["notification"]["tag"] == "appointment-notification"


@pytest.mark.asyncio
async def test_sweep_releases_entry_when_replay_crashes(
    retries, store, db_session, make_target, push_sender, test_user, monkeypatch
):
    """Test a broken snapshot is counted as a failed attempt, not left claimed."""
    rollback = AsyncMock(wraps=db_session.rollback)
    monkeypatch.setattr(db_session, "rollback", rollback)
    target_id = await make_target()
    retry_id = await add_due_retry(retries, store, target_id, test_user["id"])
    await store.update_retry(retry_id, payload={"title": "x"})

    result = await retries.sweep_retries()

    assert (result.attempted, result.rescheduled, result.succeeded) == (1, 1, 0)
    entry = await store.get_retry(retry_id)
    assert entry["status"] == "pending"
    assert entry["retry_count"] == 1
    assert rollback.await_count >= 1
    assert push_sender.sent == []
