"""Redis-backed cache tier for mapping lookups.

Sharing the cache through Redis makes invalidation cluster-wide: a mapping
written by one worker is invalidated for every worker at once.

Cache keys
----------
``{prefix}:{group}:id:{owner_id}``
    JSON list of an owner's mappings.

``{prefix}:{group}:domain:{domain}``
    JSON snapshot of one mapping, or ``notexists``.

Failure policy
--------------
Redis is never the source of truth.  Read and write failures are logged and
treated as misses so the stores fall back to the backing database.
Invalidation failures are re-raised: a missed invalidation would serve
stale routing until the TTL runs out.

Optional dependency
-------------------
The ``redis`` package is imported lazily and ships in the ``redis`` extra::

    pip install fastapi-mercator[redis]
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastapi_mercator.cache.base import MappingCache

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

logger = logging.getLogger(__name__)

_SCAN_BATCH = 100


def _require_redis() -> Any:
    """Return ``redis.asyncio``, naming the missing extra when it is not installed."""
    try:
        from redis import asyncio as aioredis  # noqa: PLC0415

    except ImportError as exc:
        raise ImportError(
            "RedisMappingCache requires the 'redis' extra:\n"
            "    pip install fastapi-mercator[redis]"
        ) from exc
    else:
        return aioredis


class RedisMappingCache(MappingCache):
    """Mapping cache stored in Redis with a fixed TTL.

    Args:
        redis_url: Redis connection URL (e.g. ``redis://localhost:6379/0``).
        ttl: Entry TTL in seconds.
        key_prefix: Prefix applied to all Redis keys.  Use a distinct prefix
            per deployment when sharing a Redis instance.
        client: Pre-built ``redis.asyncio.Redis`` client; *redis_url* is
            ignored when given.
    """

    def __init__(
        self,
        redis_url: str | None = None,
        ttl: int = 3600,
        key_prefix: str = "mercator",
        client: Any = None,
    ) -> None:
        if client is None:
            if not redis_url:
                msg = "RedisMappingCache needs either redis_url or client"
                raise ValueError(msg)
            aioredis = _require_redis()
            client = aioredis.from_url(redis_url, encoding="utf-8", decode_responses=False)
        self._redis: Any = client
        self._ttl = ttl
        self._prefix = key_prefix
        logger.info("RedisMappingCache initialised ttl=%ds prefix=%s", ttl, key_prefix)

    async def close(self) -> None:
        """Close the Redis connection pool."""
        await self._redis.aclose()
        logger.info("RedisMappingCache closed")

    ####################
    # Internal helpers #
    ####################

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    @staticmethod
    def _decode(raw: Any) -> str | None:
        if raw is None:
            return None
        if isinstance(raw, bytes):
            return raw.decode("utf-8")
        return str(raw)

    ########
    # Read #
    ########

    async def get(self, key: str) -> str | None:
        try:
            raw = await self._redis.get(self._key(key))
        except Exception as exc:
            logger.warning("Cache read failed for key=%s: %s, treating as miss", key, exc)
            return None
        return self._decode(raw)

    async def get_many(self, keys: Iterable[str]) -> list[str | None]:
        """Fetch all *keys* in one ``MGET`` round-trip."""
        keys = list(keys)
        if not keys:
            return []
        try:
            raws = await self._redis.mget([self._key(k) for k in keys])
        except Exception as exc:
            logger.warning("Cache read failed for %d keys: %s, treating as miss", len(keys), exc)
            return [None] * len(keys)
        return [self._decode(raw) for raw in raws]

    #########
    # Write #
    #########

    async def set(self, key: str, value: str) -> None:
        try:
            await self._redis.setex(self._key(key), self._ttl, value.encode("utf-8"))
        except Exception as exc:
            logger.warning("Cache write failed for key=%s: %s, operating without cache", key, exc)

    async def set_many(self, items: Mapping[str, str]) -> None:
        """Write every entry through a single pipeline."""
        if not items:
            return
        try:
            pipe = self._redis.pipeline()
            for key, value in items.items():
                pipe.setex(self._key(key), self._ttl, value.encode("utf-8"))
            await pipe.execute()
        except Exception as exc:
            logger.warning(
                "Cache write failed for %d keys: %s, operating without cache", len(items), exc
            )

    ################
    # Invalidation #
    ################

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        deleted: int = await self._redis.delete(*(self._key(k) for k in keys))
        logger.debug("Invalidated %d cache keys", deleted)
        return deleted

    async def clear(self) -> int:
        """Drop every key under this cache's prefix, in batches found by ``SCAN``."""
        deleted = 0
        batch: list[bytes] = []
        async for key in self._scan():
            batch.append(key)
            if len(batch) >= _SCAN_BATCH:
                deleted += await self._redis.delete(*batch)
                batch.clear()
        if batch:
            deleted += await self._redis.delete(*batch)
        logger.info("Cleared %d cache entries under prefix %s", deleted, self._prefix)
        return deleted

    async def stats(self) -> dict[str, Any]:
        total = 0
        async for _ in self._scan():
            total += 1
        return {"total_keys": total, "ttl_seconds": self._ttl, "key_prefix": self._prefix}

    def _scan(self) -> Any:
        return self._redis.scan_iter(match=f"{self._prefix}:*", count=_SCAN_BATCH)


__all__ = ["RedisMappingCache"]
