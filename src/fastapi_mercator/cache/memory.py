"""Per-process mapping cache.

:class:`InMemoryMappingCache` is used when no Redis URL is configured.  Each
worker holds its own copy, so a write made by another worker only becomes
visible here once the entry's ``ttl`` has run out.  Writers in this process
invalidate their own keys immediately.

Size is bounded by ``max_size``; inserting into a full cache drops the entry
that was read or written longest ago.  Expired entries are removed when they
are next read, or in bulk by :meth:`InMemoryMappingCache.purge_expired`.
"""

from __future__ import annotations

from collections import OrderedDict
import logging
import time

from fastapi_mercator.cache.base import MappingCache

logger = logging.getLogger(__name__)


class InMemoryMappingCache(MappingCache):
    """LRU mapping cache with a fixed TTL, local to one process.

    Example::

        cache = InMemoryMappingCache(max_size=500, ttl=300)
        await cache.set("domain_mapping:domain:example.com", NOT_EXISTS)
        await cache.get("domain_mapping:domain:example.com")  # "notexists"
    """

    def __init__(self, max_size: int = 10_000, ttl: int = 3600, key_prefix: str = "mercator") -> None:
        if max_size < 1 or ttl < 1:
            msg = f"max_size and ttl must both be positive (got {max_size}, {ttl})"
            raise ValueError(msg)

        self._max_size = max_size
        self._ttl = ttl
        self._prefix = key_prefix
        # full key -> (deadline on the monotonic clock, value); oldest first
        self._data: OrderedDict[str, tuple[float, str]] = OrderedDict()
        self._hits = 0
        self._misses = 0

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    async def get(self, key: str) -> str | None:
        full = self._key(key)
        item = self._data.get(full)
        if item is not None and time.monotonic() > item[0]:
            del self._data[full]
            item = None
        if item is None:
            self._misses += 1
            return None
        self._data.move_to_end(full)
        self._hits += 1
        return item[1]

    async def set(self, key: str, value: str) -> None:
        full = self._key(key)
        self._data.pop(full, None)
        while len(self._data) >= self._max_size:
            dropped, _ = self._data.popitem(last=False)
            logger.debug("Cache full, dropped %s", dropped)
        self._data[full] = (time.monotonic() + self._ttl, value)

    async def delete(self, *keys: str) -> int:
        found = [k for k in map(self._key, keys) if k in self._data]
        for full in found:
            del self._data[full]
        return len(found)

    async def clear(self) -> int:
        count = len(self._data)
        self._data.clear()
        logger.debug("InMemoryMappingCache cleared, %d entries dropped", count)
        return count

    def purge_expired(self) -> int:
        """Drop every expired entry now and return how many there were."""
        now = time.monotonic()
        stale = [k for k, (deadline, _) in self._data.items() if now > deadline]
        for full in stale:
            del self._data[full]
        return len(stale)

    def size(self) -> int:
        return len(self._data)

    async def stats(self) -> dict[str, int]:
        """Entry count, bounds and hit counters; ``hit_rate_pct`` is 0 before any read."""
        reads = self._hits + self._misses
        return {
            "size": len(self._data),
            "max_size": self._max_size,
            "ttl": self._ttl,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate_pct": self._hits * 100 // reads if reads else 0,
        }


__all__ = ["InMemoryMappingCache"]
