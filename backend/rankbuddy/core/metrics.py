from __future__ import annotations
from typing import Dict

from rankbuddy.core.config import settings
from rankbuddy.core.redis_client import get_redis


def _counters_key() -> str:
    return f"{settings.key_prefix}:metrics:counters"


async def increment(name: str, amount: int = 1) -> None:
    r = get_redis()
    try:
        await r.hincrby(_counters_key(), name, amount)
    except Exception:
        pass


async def counters_snapshot() -> Dict[str, int]:
    r = get_redis()
    out: Dict[str, int] = {}
    try:
        data = await r.hgetall(_counters_key())
        for k, v in (data or {}).items():
            key = k.decode("utf-8") if isinstance(k, bytes) else str(k)
            try:
                out[key] = int(v)
            except (TypeError, ValueError):
                out[key] = 0
    except Exception:
        pass
    return out
