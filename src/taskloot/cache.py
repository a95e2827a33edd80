"""Redis pool and the best-effort read-through task cache.

The cache is an optimization only. Every call swallows transport errors and
logs them, so the engine behaves identically when Redis is down or when the
cache is built without a client.
"""

from __future__ import annotations

import json
from typing import Any

import redis.asyncio as redis
import structlog

logger = structlog.get_logger()

TASK_CACHE_KEY = "task:{task_id}"

_pool: redis.Redis | None = None


async def init_redis(url: str) -> None:
    """Initialize the Redis connection pool."""
    global _pool  # noqa: PLW0603
    _pool = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
    )


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _pool  # noqa: PLW0603
    if _pool:
        await _pool.aclose()
        _pool = None


def get_redis() -> redis.Redis | None:
    """Get the Redis client, or None when caching is not configured."""
    return _pool


def task_cache_key(task_id: str) -> str:
    return TASK_CACHE_KEY.format(task_id=task_id)


class TaskCache:
    """JSON read-through cache keyed by task id."""

    def __init__(self, client: Any | None, ttl_seconds: int = 300) -> None:
        self._client = client
        self._ttl = ttl_seconds

    async def get(self, task_id: str) -> dict[str, Any] | None:
        if self._client is None:
            return None
        try:
            raw = await self._client.get(task_cache_key(task_id))
        except Exception:
            logger.warning("cache_get_failed", task_id=task_id, exc_info=True)
            return None
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("cache_entry_corrupt", task_id=task_id)
            return None

    async def set(self, task_id: str, value: dict[str, Any]) -> None:
        if self._client is None:
            return
        try:
            await self._client.setex(task_cache_key(task_id), self._ttl, json.dumps(value, default=str))
        except Exception:
            logger.warning("cache_set_failed", task_id=task_id, exc_info=True)

    async def invalidate(self, task_id: str) -> None:
        """Drop the cached entry for a task. Called after every committed mutation."""
        if self._client is None:
            return
        try:
            await self._client.delete(task_cache_key(task_id))
        except Exception:
            logger.warning("cache_invalidate_failed", task_id=task_id, exc_info=True)
