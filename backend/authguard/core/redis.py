"""Shared Redis connection used by the global login rate limiter."""

import redis.asyncio as redis

from authguard.core.config import settings

redis_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    """Return the process-wide client, connecting lazily on first use."""
    global redis_client
    if redis_client is None:
        redis_client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
            socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
        )
    return redis_client


async def close_redis() -> None:
    global redis_client
    if redis_client:
        await redis_client.close()
        redis_client = None
