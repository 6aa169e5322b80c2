import pytest

from rankbuddy.core.config import settings
from rankbuddy.services.rate_limit import AsyncLimiter, RateLimitExceeded


class FakePipeline:
    def __init__(self, redis):
        self.redis = redis

    def zremrangebyscore(self, key, *args):
        self.redis.keys.append(key)

    def zadd(self, key, *args):
        self.redis.keys.append(key)

    def zcard(self, key):
        self.redis.keys.append(key)

    def expire(self, key, *args):
        self.redis.keys.append(key)

    async def execute(self):
        return [0, 1, self.redis.count, True]


class FakeLimiterRedis:
    def __init__(self, count):
        self.count = count
        self.keys = []

    def pipeline(self):
        return FakePipeline(self)

    async def zcard(self, key):
        return self.count


@pytest.mark.asyncio
async def test_limiter_window():
    assert await AsyncLimiter("tmdb_api", redis=FakeLimiterRedis(40)).acquire()
    limiter = AsyncLimiter("tmdb_api", redis=FakeLimiterRedis(41))
    with pytest.raises(RateLimitExceeded) as exc:
        await limiter.check()
    assert exc.value.status["remaining"] == 0
    assert exc.value.service == "tmdb_api"


@pytest.mark.asyncio
async def test_window_key_is_namespaced():
    redis = FakeLimiterRedis(1)
    await AsyncLimiter("tmdb_api", redis=redis).acquire()
    assert set(redis.keys) == {f"{settings.key_prefix}:rate_limit:tmdb_api"}


def test_unknown_service_gets_default_window():
    limiter = AsyncLimiter("other", redis=FakeLimiterRedis(0))
    assert limiter.config == {"limit": 10, "window": 60}
