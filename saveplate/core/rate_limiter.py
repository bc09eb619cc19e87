"""
Redis-based rate limiting for the public auth endpoints.

Fixed window counters keyed by endpoint scope and client IP.
"""

import logging

from fastapi import Request
from redis.asyncio import Redis
from redis.exceptions import RedisError

from saveplate.core.config import settings
from saveplate.core.exceptions import RateLimitExceededError

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """
    Extract the client's IP address from the request.

    Handles X-Forwarded-For header for proxied requests.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # X-Forwarded-For can contain multiple IPs, take the first (client IP)
        return forwarded_for.split(",")[0].strip()

    return request.client.host if request.client else "unknown"


class RateLimiter:
    """
    Fixed window rate limiter.

    Fails open: if Redis is unreachable the request is allowed and the
    error is logged.
    """

    def __init__(self, redis_client: Redis):
        self.redis_client = redis_client

    async def check_rate_limit(
        self,
        key: str,
        max_requests: int,
        window_seconds: int,
        error_message: str = "Rate limit exceeded"
    ) -> None:
        """
        Count a request against `key` and reject it when over the limit.

        Raises:
            RateLimitExceededError: 429 if rate limit exceeded
        """
        try:
            count = await self.redis_client.incr(key)
            if count == 1:
                await self.redis_client.expire(key, window_seconds)
            if count > max_requests:
                ttl = await self.redis_client.ttl(key)
                raise RateLimitExceededError(f"{error_message}. Try again in {max(ttl, 1)} seconds.")
        except RedisError as e:
            logger.warning(f"Redis rate limiter error: {e}")

    async def reset_limit(self, key: str) -> None:
        try:
            await self.redis_client.delete(key)
        except RedisError as e:
            logger.warning(f"Redis reset error: {e}")


class RateLimit:
    """
    Endpoint dependency applying a per-IP limit.

    Usage:
        @router.post("/signin", dependencies=[Depends(RateLimit("signin", 5, 60))])
    """

    def __init__(self, scope: str, max_requests: int, window_seconds: int,
                 error_message: str = "Too many requests"):
        self.scope = scope
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.error_message = error_message

    async def __call__(self, request: Request) -> None:
        if not settings.RATE_LIMIT_ENABLED:
            return
        redis_client = getattr(request.app.state, "redis", None)
        if redis_client is None:
            logger.warning(f"Rate limiter for {self.scope} has no Redis client, skipping")
            return
        limiter = RateLimiter(redis_client)
        await limiter.check_rate_limit(
            key=f"rate_limit:{self.scope}:{get_client_ip(request)}",
            max_requests=self.max_requests,
            window_seconds=self.window_seconds,
            error_message=self.error_message,
        )
