"""Shared redis.asyncio client for the job queue and locks."""

from __future__ import annotations

import logging

from qcsat.core.config import settings

logger = logging.getLogger(__name__)

REDIS_DISABLED_URL = "memory://"
REDIS_CONNECT_TIMEOUT_SECONDS = 2.0
REDIS_SOCKET_TIMEOUT_SECONDS = 2.0
REDIS_HEALTH_CHECK_SECONDS = 30

_async_client = None


def get_redis_url() -> str | None:
    """Configured Redis URL, or None when REDIS_URL is empty or memory://."""
    url = (settings.REDIS_URL or "").strip()
    if not url or url.lower() == REDIS_DISABLED_URL:
        return None
    return url


def get_async_redis_client():
    """Pooled client, created on first use. None when Redis is disabled."""
    url = get_redis_url()
    if not url:
        return None

    global _async_client
    if _async_client is None:
        import redis.asyncio as redis

        # Queue members are JSON text; decode so the store deals in str.
        pool = redis.ConnectionPool.from_url(
            url,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            socket_connect_timeout=REDIS_CONNECT_TIMEOUT_SECONDS,
            socket_timeout=REDIS_SOCKET_TIMEOUT_SECONDS,
            health_check_interval=REDIS_HEALTH_CHECK_SECONDS,
            retry_on_timeout=True,
            decode_responses=True,
        )
        _async_client = redis.Redis(connection_pool=pool)
    return _async_client


async def redis_status(client=None) -> str:
    """Redis health for status endpoints: "ok", "error" or "disabled"."""
    client = client or get_async_redis_client()
    if client is None:
        return "disabled"
    try:
        await client.ping()
    except Exception as exc:
        logger.warning("Redis health check failed: %s", type(exc).__name__)
        return "error"
    return "ok"


async def close_async_redis_client() -> None:
    global _async_client
    if _async_client is not None:
        await _async_client.aclose()
        _async_client = None
