"""
Global login rate limit.

Sliding window over a Redis sorted set, shared by every worker. Meant for
the gateway in front of the login endpoint; the per-identifier guard does
not consult it.
"""

import logging
import secrets
import time
from dataclasses import dataclass

from redis.asyncio import Redis
from redis.exceptions import RedisError

from authguard.core.exceptions import StorageError

logger = logging.getLogger(__name__)

KEY_PREFIX = "authguard:ratelimit:"


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    count: int
    retry_after_seconds: int = 0


class GlobalRateLimiter:
    def __init__(self, redis: Redis, max_requests: int = 200, window_seconds: int = 60):
        self.redis = redis
        self.max_requests = max_requests
        self.window_seconds = window_seconds

    async def hit(self, scope: str = "global", now: float | None = None) -> RateLimitDecision:
        """
        Count one login request against the window.

        Rejected requests are not added to the window.

        Raises:
            StorageError: If Redis is unavailable (callers deny the request)
        """
        now = time.time() if now is None else now
        window_start = now - self.window_seconds
        key = f"{KEY_PREFIX}{scope}"

        try:
            pipe = self.redis.pipeline()
            pipe.zremrangebyscore(key, 0, window_start)
            pipe.zcard(key)
            pipe.zrange(key, 0, 0, withscores=True)
            _, count, oldest = await pipe.execute()

            if count >= self.max_requests:
                retry_after = self.window_seconds
                if oldest:
                    retry_after = max(1, int(oldest[0][1] + self.window_seconds - now))
                logger.warning("Global login rate limit reached for %s: %d/%d", scope, count, self.max_requests)
                return RateLimitDecision(allowed=False, count=count, retry_after_seconds=retry_after)

            # Unique member so simultaneous hits do not collapse
            member = f"{now}:{secrets.token_hex(4)}"
            pipe = self.redis.pipeline()
            pipe.zadd(key, {member: now})
            pipe.expire(key, self.window_seconds + 10)
            await pipe.execute()

        except RedisError as e:
            raise StorageError("global_rate_limit", str(e)) from e

        return RateLimitDecision(allowed=True, count=count + 1)
