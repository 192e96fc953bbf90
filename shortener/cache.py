"""Redis client management and the link cache layer.

This module owns the process-wide Redis client and wraps it in ``LinkCache``,
the key-value abstraction the link service talks to.

Flow Diagram — Redis Operations
=============================
::
    ┌─────────────┐
    │ LinkService │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ LinkCache   │
    │ get/set/... │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ redis.Redis  │
    │ (pooled)     │
    └──────┬──────┘
    ERROR?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌──────────────┐
│ Return  │  │ Raise         │
│ value   │  │ CacheUnavail- │
│         │  │ able          │
└─────────┘  └──────────────┘

How to Use
===========
**Step 1 — Build the cache on startup**::
    cache = LinkCache(await get_redis())

**Step 2 — Read and write**::
    url = await cache.get("abc123")
    await cache.set_default("abc123", "https://example.com")
    hits = await cache.increment(click_key("abc123"))

**Step 3 — Cleanup on shutdown**::
    await close_redis()

Key Behaviours
===============
- Redis client is created lazily on first access and reused across requests.
- The client's connection pool serializes access per connection, so any
  number of tasks may share one ``LinkCache``.
- Every Redis or transport failure surfaces as ``CacheUnavailable``.
- Empty batch operations return immediately without a round trip.
- UTF-8 encoding with decode_responses for string operations.

Functions:
    get_redis():  Process Redis client.
    close_redis():  Cleanup function for shutdown.
    url_key():  Cache key holding a short code's destination.
    click_key():  Cache key holding a short code's hit counter.
"""

import datetime
import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager

import redis.asyncio as redis
from redis.exceptions import RedisError

from shortener.config import get_settings
from shortener.errors import CacheUnavailable

__all__ = ["LinkCache", "DEFAULT_TTL", "click_key", "close_redis", "get_redis", "url_key"]

settings = get_settings()

logger = logging.getLogger("shortener.cache")

DEFAULT_TTL = datetime.timedelta(seconds=settings.CACHE_DEFAULT_TTL_SECONDS)

redis_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    global redis_client
    if redis_client is None:
        redis_client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
        )
    return redis_client


async def close_redis() -> None:
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None


def url_key(short_code: str) -> str:
    return short_code


def click_key(short_code: str) -> str:
    return f"{settings.CLICK_KEY_PREFIX}:{short_code}"


def _ttl_seconds(ttl: int | datetime.timedelta) -> int:
    if isinstance(ttl, datetime.timedelta):
        ttl = int(ttl.total_seconds())
    assert ttl > 0, f"ttl must be positive, got {ttl!r}"
    return ttl


@contextmanager
def _translate_errors(operation: str, key: str | None = None) -> Iterator[None]:
    try:
        yield
    except (RedisError, OSError) as exc:
        logger.debug(f"Redis {operation} failed for {key!r}: {exc}")
        raise CacheUnavailable(f"Cache {operation} failed: {exc}") from exc


class LinkCache:
    """Key-value cache with TTLs, counters and batch operations."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    async def get(self, key: str) -> str | None:
        with _translate_errors("get", key):
            return await self._client.get(key)

    async def set(self, key: str, value: str, ttl: int | datetime.timedelta) -> None:
        seconds = _ttl_seconds(ttl)
        with _translate_errors("set", key):
            await self._client.set(key, value, ex=seconds)

    async def set_default(self, key: str, value: str) -> None:
        await self.set(key, value, DEFAULT_TTL)

    async def increment(self, key: str) -> int:
        with _translate_errors("increment", key):
            return int(await self._client.incr(key))

    async def batch_get(self, keys: Sequence[str]) -> list[str | None]:
        if not keys:
            return []
        with _translate_errors("batch_get"):
            return list(await self._client.mget(list(keys)))

    async def batch_set(
        self, pairs: Sequence[tuple[str, str]], ttl: int | datetime.timedelta
    ) -> None:
        if not pairs:
            return
        seconds = _ttl_seconds(ttl)
        with _translate_errors("batch_set"):
            async with self._client.pipeline(transaction=False) as pipe:
                for key, value in pairs:
                    pipe.set(key, value, ex=seconds)
                await pipe.execute()

    async def exists(self, key: str) -> bool:
        with _translate_errors("exists", key):
            return bool(await self._client.exists(key))

    async def delete(self, key: str) -> int:
        with _translate_errors("delete", key):
            return int(await self._client.delete(key))
