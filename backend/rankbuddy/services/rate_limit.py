"""
rate_limit.py

Redis sliding-window limiter guarding outbound catalog calls.
The wildcard engine never retries internally: a rejected acquire surfaces to
the caller as CatalogUnavailable, which the user can retry.
"""
import time
import uuid
import logging
from typing import Any, Dict, Optional

from rankbuddy.core.config import settings

logger = logging.getLogger(__name__)

RATE_LIMITS = {
    "tmdb_api": {"limit": 40, "window": 10},  # 40 requests per 10 seconds
}


class RateLimitExceeded(Exception):
    """Raised when the sliding window is full."""

    def __init__(self, message: str, service: Optional[str] = None, status: Optional[Dict] = None):
        super().__init__(message)
        self.service = service
        self.status = status or {}


class AsyncLimiter:
    """Redis-based rate limiter with a sliding window."""

    def __init__(self, service: str, redis=None):
        if redis is None:
            from rankbuddy.core.redis_client import get_redis
            redis = get_redis()
        self.service = service
        self.redis = redis
        self.config = RATE_LIMITS.get(service, {"limit": 10, "window": 60})

    @property
    def key(self) -> str:
        return f"{settings.key_prefix}:rate_limit:{self.service}"

    async def acquire(self) -> bool:
        """Record one request; True if it fits in the window."""
        now = time.time()
        window = self.config["window"]
        limit = self.config["limit"]

        pipe = self.redis.pipeline()
        pipe.zremrangebyscore(self.key, 0, now - window)
        pipe.zadd(self.key, {f"{now}:{uuid.uuid4().hex[:8]}": now})
        pipe.zcard(self.key)
        pipe.expire(self.key, window)
        results = await pipe.execute()
        current_count = results[2]

        if current_count > limit:
            logger.warning(f"Rate limit exceeded for {self.service}: {current_count}/{limit}")
            return False
        return True

    async def get_status(self) -> Dict[str, Any]:
        limit = self.config["limit"]
        current_count = await self.redis.zcard(self.key)
        return {
            "service": self.service,
            "limit": limit,
            "remaining": max(0, limit - current_count),
            "reset_time": int(time.time()) + self.config["window"],
            "current_count": current_count,
        }

    async def check(self) -> None:
        if not await self.acquire():
            raise RateLimitExceeded(
                f"Rate limit exceeded for {self.service}",
                service=self.service,
                status=await self.get_status(),
            )
