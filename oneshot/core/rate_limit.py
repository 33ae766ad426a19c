"""
Rate limiting module using Redis for distributed rate limiting.
Implements a fixed one-minute window per client address.
"""
import logging
import time
from typing import Optional

import redis
from fastapi import HTTPException, Request, status

from oneshot.metrics import api_rate_limit_exceeded_total

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60


class RateLimitExceeded(HTTPException):
    """429 raised when a client is over its per-minute limit."""

    def __init__(self, limit: int, retry_after: int):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Rate limit exceeded. Limit: {limit} requests/minute",
            headers={
                "Retry-After": str(retry_after),
                "X-RateLimit-Limit": str(limit),
                "X-RateLimit-Remaining": "0",
            },
        )


class RedisRateLimiter:
    """
    Per-client fixed window rate limiter

    Features:
    - One counter per client address per minute (INCR + EXPIRE pipeline)
    - Fails open: requests are allowed while Redis is unreachable
    """

    def __init__(
        self,
        redis_url: Optional[str],
        limit_per_minute: int = 100,
        client: Optional[redis.Redis] = None,
    ):
        """
        Initialize the rate limiter

        Args:
            redis_url: Redis connection URL
            limit_per_minute: Requests allowed per client per minute
            client: Pre-built Redis client (the URL is ignored when given)
        """
        self.redis_url = redis_url
        self.limit_per_minute = limit_per_minute
        self._client = client

    def get_redis_client(self) -> Optional[redis.Redis]:
        """
        Get or create Redis client.

        Returns:
            redis.Redis client, or None if Redis is unavailable
        """
        if self._client is None and self.redis_url:
            try:
                client = redis.from_url(
                    self.redis_url,
                    decode_responses=True,
                    socket_connect_timeout=5,
                    socket_timeout=5,
                )
                # Test connection
                client.ping()
                self._client = client
                logger.info("Redis connection established for rate limiting")
            except redis.RedisError as e:
                logger.error(f"Failed to connect to Redis: {e}")

        return self._client

    def check(self, client_id: str, now: Optional[float] = None) -> int:
        """
        Count one request for a client.

        Args:
            client_id: Client address
            now: Unix time (defaults to time.time())

        Returns:
            Requests remaining in the current window

        Raises:
            RateLimitExceeded: If the client is over the limit
        """
        redis_client = self.get_redis_client()

        # If Redis is unavailable, allow request (fail open)
        if redis_client is None:
            logger.warning("Rate limiting bypassed - Redis unavailable")
            return self.limit_per_minute

        now = time.time() if now is None else now
        window = int(now // WINDOW_SECONDS)
        key = f"ratelimit:minute:{client_id}:{window}"

        try:
            pipeline = redis_client.pipeline()
            pipeline.incr(key)
            pipeline.expire(key, WINDOW_SECONDS)
            count, _ = pipeline.execute()
        except redis.RedisError as e:
            logger.warning(f"Rate limiting bypassed - Redis error: {e}")
            return self.limit_per_minute

        count = int(count)
        if count > self.limit_per_minute:
            api_rate_limit_exceeded_total.inc()
            retry_after = max(1, int((window + 1) * WINDOW_SECONDS - now))
            logger.info(f"Rate limit exceeded for {client_id}: {count}/{self.limit_per_minute}")
            raise RateLimitExceeded(self.limit_per_minute, retry_after)

        logger.debug(f"Rate limit check passed for {client_id}: {count}/{self.limit_per_minute}")
        return self.limit_per_minute - count

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


def client_address(request: Request) -> str:
    """Client IP as seen by the server."""
    if request.client is not None:
        return request.client.host
    return "unknown"


def enforce_rate_limit(request: Request) -> None:
    """
    FastAPI dependency applying the app's rate limiter, if one is configured.

    Raises:
        RateLimitExceeded: If the client is over the limit
    """
    limiter = request.app.state.context.rate_limiter
    if limiter is not None:
        limiter.check(client_address(request))
