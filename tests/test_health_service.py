"""Tests for delivery target health tracking."""

from uuid import uuid4

import pytest

from slot_alerts.core.engine_config import EngineConfig
from slot_alerts.services.health_service import TargetHealthService


@pytest.fixture
def health(store) -> TargetHealthService:
    return TargetHealthService(store, EngineConfig(max_consecutive_failures=5))


@pytest.mark.asyncio
async def test_target_below_threshold_stays_active(health, store, make_target):
    target_id = await make_target(consecutive_failures=3)

    assert await health.increment_failures(target_id, "HTTP 503") is True

    target = await store.get_target(target_id)
    assert target["is_active"] is True
    assert target["consecutive_failures"] == 4
    assert target["last_delivery_status"] == "failed"
    assert target["last_failure_reason"] == "HTTP 503"


@pytest.mark.asyncio
async def test_target_at_threshold_is_deactivated(health, store, make_target):
    target_id = await make_target(consecutive_failures=4)

    assert await health.increment_failures(target_id, "HTTP 503") is False

    target = await store.get_target(target_id)
    assert target["is_active"] is False
    assert target["consecutive_failures"] == 5
    assert target["last_failure_reason"] == "Auto-disabled after 5 consecutive failures: HTTP 503"


@pytest.mark.asyncio
async def test_reset_failures(health, store, make_target):
    target_id = await make_target(consecutive_failures=4)
    await health.increment_failures(target_id, "HTTP 500")

    await health.reset_failures(target_id)

    target = await store.get_target(target_id)
    assert target["consecutive_failures"] == 0
    assert target["last_delivery_status"] == "success"
    assert target["last_failure_reason"] is None
    assert target["last_used"] is not None


@pytest.mark.asyncio
async def test_deactivate_is_immediate(health, store, make_target):
    target_id = await make_target()

    await health.deactivate(target_id, "HTTP 410")

    target = await store.get_target(target_id)
    assert target["is_active"] is False
    assert target["consecutive_failures"] == 0


@pytest.mark.asyncio
async def test_missing_target(health):
    assert await health.increment_failures(uuid4(), "gone") is False
