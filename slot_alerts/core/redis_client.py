"""Redis client configuration and the job rate limiter."""

from typing import cast

import redis
import structlog

from slot_alerts.config import settings

logger = structlog.get_logger(__name__)

# Global Redis client instance
_redis_client: redis.Redis | None = None


def get_redis_client() -> redis.Redis:
    """
    Get or create Redis client instance.

    Returns:
        Redis client instance
    """
    global _redis_client

    if _redis_client is None:
        _redis_client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            username=settings.redis_username,
            password=settings.redis_password,
            decode_responses=settings.redis_decode_responses,
            socket_connect_timeout=5,
            socket_keepalive=True,
            health_check_interval=30,
        )

    return _redis_client


async def check_redis_connection() -> bool:
    """
    Check if Redis connection is healthy.

    Returns:
        True if connection is healthy, False otherwise
    """
    try:
        client = get_redis_client()
        client.ping()
        return True
    except Exception:
        return False


def close_redis_connection() -> None:
    """Close Redis connection."""
    global _redis_client

    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None


class RateLimiter:
    """Fixed-window counter per key, shared by all workers through Redis."""

    def __init__(self, redis_client: redis.Redis, prefix: str = "ratelimit"):
        """Initialize rate limiter with Redis client."""
        self.redis = redis_client
        self.prefix = prefix

    def check_rate_limit(
        self,
        key: str,
        limit: int,
        window: int = 60,
    ) -> bool:
        """
        Count one request and check it against the limit.

        The counter is created with its expiry (SET NX EX) and incremented in
        one pipeline, so a key never outlives its window.

        Args:
            key: Rate limit key (e.g., job name)
            limit: Maximum number of requests per window
            window: Time window in seconds

        Returns:
            True if within limit, False if exceeded
        """
        redis_key = f"{self.prefix}:{key}"
        try:
            pipe = self.redis.pipeline()
            pipe.set(redis_key, 0, ex=window, nx=True)
            pipe.incr(redis_key)
            _, count = pipe.execute()
        except redis.RedisError as e:
            # Fail open: the job endpoints stay usable while Redis is down
            logger.warning("rate_limiter_unavailable", key=redis_key, error=str(e))
            return True

        return cast(int, count) <= limit
