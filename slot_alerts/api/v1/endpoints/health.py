"""Health endpoints for the scheduler and load balancer."""

from fastapi import APIRouter, status
from pydantic import BaseModel

from slot_alerts.config import settings
from slot_alerts.core.firebase import is_firebase_initialized
from slot_alerts.core.redis_client import check_redis_connection
from slot_alerts.database import check_database_connection

router = APIRouter()


class HealthResponse(BaseModel):
    """Service liveness."""

    status: str
    version: str
    environment: str


class ChannelStatus(BaseModel):
    """Whether each delivery channel has its credentials."""

    email: bool
    fcm: bool
    web_push: bool


class DetailedHealthResponse(HealthResponse):
    """Liveness plus storage and delivery channel status."""

    database: str
    redis: str
    channels: ChannelStatus


def channel_status() -> ChannelStatus:
    """Report which delivery channels can send."""
    return ChannelStatus(
        email=bool(settings.smtp_user.strip() and settings.smtp_password.strip()),
        fcm=is_firebase_initialized(),
        web_push=bool(settings.vapid_private_key),
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Liveness check",
)
async def health_check() -> HealthResponse:
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Storage and channel check",
)
async def detailed_health_check() -> DetailedHealthResponse:
    """
    Check the database and Redis, and report the delivery channels.

    Only the database and Redis decide the overall status. Channels without
    credentials just report false, since the engine keeps delivering on the
    others.
    """
    db_healthy = await check_database_connection()
    redis_healthy = await check_redis_connection()

    return DetailedHealthResponse(
        status="healthy" if db_healthy and redis_healthy else "degraded",
        version=settings.app_version,
        environment=settings.environment,
        database="healthy" if db_healthy else "unhealthy",
        redis="healthy" if redis_healthy else "unhealthy",
        channels=channel_status(),
    )


@router.get(
    "/ping",
    status_code=status.HTTP_200_OK,
    summary="Ping",
)
async def ping() -> dict[str, str]:
    return {"message": "pong"}
