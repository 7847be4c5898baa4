"""Storage interfaces for the job queue and their Redis implementation."""

from __future__ import annotations

from typing import Protocol

# Count and delete the set atomically.
_CLEAR_SCRIPT = """
local count = redis.call("zcard", KEYS[1])
redis.call("del", KEYS[1])
return count
"""


class OrderedSetStore(Protocol):
    """A set of string members ordered by a numeric score (Redis ZSET semantics)."""

    async def add_scored(self, key: str, score: float, value: str) -> None: ...

    async def remove_by_value(self, key: str, value: str) -> int: ...

    async def range_by_score(
        self, key: str, min_score: float, max_score: float, limit: int
    ) -> list[str]: ...

    async def range_all(self, key: str, limit: int | None = None) -> list[str]: ...

    async def count(self, key: str) -> int: ...

    async def clear(self, key: str) -> int: ...


class DistributedLock(Protocol):
    """Mutual exclusion across worker processes."""

    async def acquire(self, key: str, ttl_ms: int) -> str | None: ...

    async def release(self, key: str, token: str) -> bool: ...


class RedisOrderedSetStore:
    """OrderedSetStore over a redis.asyncio client (decode_responses=True)."""

    def __init__(self, client):
        self._client = client

    async def add_scored(self, key: str, score: float, value: str) -> None:
        await self._client.zadd(key, {value: score})

    async def remove_by_value(self, key: str, value: str) -> int:
        return await self._client.zrem(key, value)

    async def range_by_score(
        self, key: str, min_score: float, max_score: float, limit: int
    ) -> list[str]:
        return await self._client.zrangebyscore(
            key, min_score, max_score, start=0, num=limit
        )

    async def range_all(self, key: str, limit: int | None = None) -> list[str]:
        end = -1 if limit is None else limit - 1
        return await self._client.zrange(key, 0, end)

    async def count(self, key: str) -> int:
        return await self._client.zcard(key)

    async def clear(self, key: str) -> int:
        return int(await self._client.eval(_CLEAR_SCRIPT, 1, key))
