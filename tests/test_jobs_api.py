"""Tests for the job trigger and health endpoints."""

from datetime import date, timedelta
from unittest.mock import patch

import pytest
from httpx import AsyncClient

from slot_alerts.config import settings
from slot_alerts.core.timeutils import utcnow

JOBS_URL = f"{settings.api_v1_prefix}/jobs"


@pytest.fixture
def admin_headers() -> dict:
    return {"X-Admin-Secret": settings.admin_notification_secret}


@pytest.mark.asyncio
async def test_process_queue_job(
    client: AsyncClient, admin_headers, store, make_subscription, email_sender
):
    """Test the scheduler can drain the queue over HTTP."""
    subscription_id = await make_subscription("email")
    await store.insert_queue_entry(subscription_id, date(2026, 11, 2), ["10:00"])

    response = await client.post(
        f"{JOBS_URL}/process-queue", params={"max_items": 5}, headers=admin_headers
    )

    assert response.status_code == 200
    data = response.json()
    assert data["processed"] == 1
    assert data["failed"] == 0
    assert data["errors"] == []
    assert len(email_sender.sent) == 1


@pytest.mark.asyncio
async def test_sweep_retries_job(client: AsyncClient, admin_headers):
    response = await client.post(f"{JOBS_URL}/sweep-retries", headers=admin_headers)

    assert response.status_code == 200
    assert response.json() == {
        "attempted": 0,
        "succeeded": 0,
        "rescheduled": 0,
        "terminally_failed": 0,
    }


@pytest.mark.asyncio
async def test_maintenance_job(client: AsyncClient, admin_headers, store, make_subscription):
    subscription_id = await make_subscription("email")
    await store.insert_queue_entry(
        subscription_id,
        date(2026, 11, 2),
        ["10:00"],
        status="failed",
        created_at=utcnow() - timedelta(hours=2),
    )

    response = await client.post(f"{JOBS_URL}/maintenance", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["reset_failed_entries"] == 1


@pytest.mark.asyncio
async def test_wrong_secret_is_rejected(client: AsyncClient):
    response = await client.post(
        f"{JOBS_URL}/process-queue", headers={"X-Admin-Secret": "not-the-secret"}
    )

    assert response.status_code == 401
    assert response.json()["error"] == "UnauthorizedException"


@pytest.mark.asyncio
async def test_missing_secret_is_rejected(client: AsyncClient):
    response = await client.post(f"{JOBS_URL}/process-queue")

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_rate_limited_job(client: AsyncClient, admin_headers, mock_redis):
    mock_redis.pipeline.return_value.execute.return_value = [
        None,
        settings.job_rate_limit_per_minute + 1,
    ]

    response = await client.post(f"{JOBS_URL}/maintenance", headers=admin_headers)

    assert response.status_code == 429
    assert response.json()["error"] == "RateLimitException"


@pytest.mark.asyncio
async def test_invalid_batch_size(client: AsyncClient, admin_headers):
    response = await client.post(
        f"{JOBS_URL}/process-queue", params={"max_items": 0}, headers=admin_headers
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get(f"{settings.api_v1_prefix}/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_detailed_health_reports_degraded_dependencies(client: AsyncClient):
    with (
        patch(
            "slot_alerts.api.v1.endpoints.health.check_database_connection", return_value=True
        ),
        patch("slot_alerts.api.v1.endpoints.health.check_redis_connection", return_value=False),
    ):
        response = await client.get(f"{settings.api_v1_prefix}/health/detailed")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "degraded"
    assert data["database"] == "healthy"
    assert data["redis"] == "unhealthy"


@pytest.mark.asyncio
async def test_detailed_health_reports_channel_credentials(client: AsyncClient, monkeypatch):
    monkeypatch.setattr(settings, "smtp_user", "alerts@example.com")
    monkeypatch.setattr(settings, "smtp_password", "")
    monkeypatch.setattr(settings, "vapid_private_key", "vapid-key")
    with (
        patch(
            "slot_alerts.api.v1.endpoints.health.check_database_connection", return_value=True
        ),
        patch("slot_alerts.api.v1.endpoints.health.check_redis_connection", return_value=True),
        patch("slot_alerts.api.v1.endpoints.health.is_firebase_initialized", return_value=True),
    ):
        response = await client.get(f"{settings.api_v1_prefix}/health/detailed")

    data = response.json()
    assert data["status"] == "healthy"
    assert data["channels"] == {"email": False, "fcm": True, "web_push": True}


@pytest.mark.asyncio
async def test_ping(client: AsyncClient):
    response = await client.get(f"{settings.api_v1_prefix}/ping")

    assert response.json() == {"message": "pong"}


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: AsyncClient):
    response = await client.get(
        f"{settings.api_v1_prefix}/ping", headers={"X-Request-ID": "cron-42"}
    )

    assert response.headers["X-Request-ID"] == "cron-42"
