"""FastAPI dependencies."""

import hmac
from typing import Annotated

import redis
from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from slot_alerts.channels import (
    DirectMessageSender,
    PushSender,
    RoutingPushSender,
    SmtpEmailSender,
)
from slot_alerts.config import settings
from slot_alerts.core.engine_config import EngineConfig
from slot_alerts.core.exceptions import RateLimitException, UnauthorizedException
from slot_alerts.core.redis_client import RateLimiter, get_redis_client
from slot_alerts.database import get_db
from slot_alerts.services.engine import NotificationEngine


def get_email_sender() -> DirectMessageSender:
    """Direct message channel used by the engine."""
    return SmtpEmailSender()


def get_push_sender() -> PushSender:
    """Push channel used by the engine."""
    return RoutingPushSender()


def get_engine_config() -> EngineConfig:
    """Engine tunables from the application settings."""
    return EngineConfig.from_settings()


async def get_notification_engine(
    db: Annotated[AsyncSession, Depends(get_db)],
    email_sender: Annotated[DirectMessageSender, Depends(get_email_sender)],
    push_sender: Annotated[PushSender, Depends(get_push_sender)],
    config: Annotated[EngineConfig, Depends(get_engine_config)],
) -> NotificationEngine:
    """Notification engine bound to the request's database session."""
    return NotificationEngine(db, email_sender, push_sender, config)


async def verify_admin_secret(
    x_admin_secret: Annotated[str, Header()],
) -> None:
    """
    Check the job trigger secret.

    Raises:
        UnauthorizedException: If the secret does not match
    """
    if not hmac.compare_digest(x_admin_secret, settings.admin_notification_secret):
        raise UnauthorizedException("Invalid admin secret")


def rate_limit(job: str):
    """
    Build a dependency limiting how often a job may be triggered.

    Args:
        job: Job name used as the rate limit key

    Returns:
        Dependency raising RateLimitException when the limit is exceeded
    """

    async def check(
        redis_client: Annotated[redis.Redis, Depends(get_redis_client)],
    ) -> None:
        limiter = RateLimiter(redis_client)
        if not limiter.check_rate_limit(f"jobs:{job}", settings.job_rate_limit_per_minute):
            raise RateLimitException(f"Too many '{job}' triggers, try again later")

    return check


# Type aliases for dependency injection
Engine = Annotated[NotificationEngine, Depends(get_notification_engine)]
