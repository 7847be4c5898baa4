"""Redis-backed distributed locks (SET NX PX with owner-checked release)."""

from __future__ import annotations

import logging
import secrets

logger = logging.getLogger(__name__)

LOCK_KEY_PREFIX = "lock:"

# Delete the key only if it still holds our token.
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class RedisLock:
    """
    Distributed lock over a redis.asyncio client.

    acquire() returns an owner token, or None when the lock is held
    elsewhere. Locks expire after ttl_ms so a crashed holder cannot block
    the key forever.
    """

    def __init__(self, client, prefix: str = LOCK_KEY_PREFIX):
        self._client = client
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def acquire(self, key: str, ttl_ms: int) -> str | None:
        token = secrets.token_hex(16)
        acquired = await self._client.set(self._key(key), token, nx=True, px=ttl_ms)
        return token if acquired else None

    async def release(self, key: str, token: str) -> bool:
        released = await self._client.eval(_RELEASE_SCRIPT, 1, self._key(key), token)
        if not released:
            logger.warning("Lock %s expired or was taken over before release", key)
        return bool(released)
