"""
kv_store.py

JSON key-value contract used by the wildcard engine, and its Redis-backed
implementation. Values are JSON-encoded on write and decoded on read.
Store errors are raised as PersistenceFailure; callers decide whether they
are fatal.
"""
import json
import logging
from typing import Any, Optional, Protocol

from redis.exceptions import RedisError

from rankbuddy.core.config import settings
from rankbuddy.core.exceptions import PersistenceFailure

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[Any]: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def remove(self, key: str) -> None: ...


class RedisKeyValueStore:
    """KeyValueStore on top of redis.asyncio, namespaced by a key prefix."""

    def __init__(self, redis=None, prefix: Optional[str] = None):
        if redis is None:
            from rankbuddy.core.redis_client import get_redis
            redis = get_redis()
        self.redis = redis
        self.prefix = prefix if prefix is not None else settings.key_prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}" if self.prefix else key

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self.redis.get(self._key(key))
        except RedisError as e:
            raise PersistenceFailure(f"read failed for {key}: {e}") from e
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Discarding undecodable value at {key}: {e}")
            return None

    async def set(self, key: str, value: Any) -> None:
        try:
            await self.redis.set(self._key(key), json.dumps(value))
        except RedisError as e:
            raise PersistenceFailure(f"write failed for {key}: {e}") from e

    async def remove(self, key: str) -> None:
        try:
            await self.redis.delete(self._key(key))
        except RedisError as e:
            raise PersistenceFailure(f"remove failed for {key}: {e}") from e
