"""Unit tests — InMemoryMappingCache

Verified:
* get / set / delete / clear round trips
* TTL expiry (time.monotonic patched)
* LRU eviction order
* batch helpers preserve key order
* statistics and eager purging
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from fastapi_mercator.cache.base import NOT_EXISTS
from fastapi_mercator.cache.memory import InMemoryMappingCache

pytestmark = pytest.mark.unit


class TestConstruction:
    @pytest.mark.parametrize(("max_size", "ttl"), [(0, 10), (10, 0)])
    def test_invalid_bounds(self, max_size, ttl):
        with pytest.raises(ValueError):
            InMemoryMappingCache(max_size=max_size, ttl=ttl)


class TestReadWrite:
    async def test_miss_returns_none(self):
        cache = InMemoryMappingCache()
        assert await cache.get("domain_mapping:domain:nope.com") is None

    async def test_set_then_get(self):
        cache = InMemoryMappingCache()
        await cache.set("domain_mapping:domain:brand.com", NOT_EXISTS)
        assert await cache.get("domain_mapping:domain:brand.com") == NOT_EXISTS

    async def test_overwrite(self):
        cache = InMemoryMappingCache()
        await cache.set("k", "one")
        await cache.set("k", "two")
        assert await cache.get("k") == "two"
        assert cache.size() == 1

    async def test_get_many_keeps_order(self):
        cache = InMemoryMappingCache()
        await cache.set_many({"a": "1", "c": "3"})
        assert await cache.get_many(["a", "b", "c"]) == ["1", None, "3"]


class TestExpiry:
    async def test_entry_expires_after_ttl(self):
        cache = InMemoryMappingCache(ttl=60)
        with patch("fastapi_mercator.cache.memory.time") as fake_time:
            fake_time.monotonic.return_value = 1000.0
            await cache.set("k", "v")
            fake_time.monotonic.return_value = 1059.0
            assert await cache.get("k") == "v"
            fake_time.monotonic.return_value = 1061.0
            assert await cache.get("k") is None
        assert cache.size() == 0

    async def test_purge_expired(self):
        cache = InMemoryMappingCache(ttl=60)
        with patch("fastapi_mercator.cache.memory.time") as fake_time:
            fake_time.monotonic.return_value = 1000.0
            await cache.set("old", "v")
            fake_time.monotonic.return_value = 1050.0
            await cache.set("new", "v")
            fake_time.monotonic.return_value = 1070.0
            assert cache.purge_expired() == 1
        assert cache.size() == 1


class TestEviction:
    async def test_least_recently_used_goes_first(self):
        cache = InMemoryMappingCache(max_size=2)
        await cache.set("a", "1")
        await cache.set("b", "2")
        await cache.get("a")
        await cache.set("c", "3")
        assert await cache.get("b") is None
        assert await cache.get("a") == "1"
        assert await cache.get("c") == "3"


class TestInvalidation:
    async def test_delete_counts_existing_keys(self):
        cache = InMemoryMappingCache()
        await cache.set("a", "1")
        await cache.set("b", "2")
        assert await cache.delete("a", "b", "missing") == 2
        assert await cache.get("a") is None

    async def test_clear(self):
        cache = InMemoryMappingCache()
        await cache.set_many({"a": "1", "b": "2"})
        assert await cache.clear() == 2
        assert cache.size() == 0


class TestStats:
    async def test_hit_rate(self):
        cache = InMemoryMappingCache(max_size=50, ttl=30)
        await cache.set("a", "1")
        await cache.get("a")
        await cache.get("missing")
        stats = await cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate_pct"] == 50
        assert stats["max_size"] == 50
        assert stats["ttl"] == 30

    async def test_empty_stats(self):
        stats = await InMemoryMappingCache().stats()
        assert stats["hit_rate_pct"] == 0
        assert stats["size"] == 0
