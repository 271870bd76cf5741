"""Abstract cache contract shared by the mapping stores.

The stores serialise snapshots to JSON strings themselves, so a cache only
moves opaque strings around.  A lookup that confirmed a domain is absent is
stored as :data:`NOT_EXISTS` (negative caching).

Key layout
----------
The stores build keys as ``{group}:{kind}:{value}``, e.g.
``domain_mapping:domain:shop.example.com`` or ``network_mapping:id:3``.
Implementations prepend their own namespace prefix.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

#: Sentinel value recording "looked up, confirmed absent".
NOT_EXISTS = "notexists"


class MappingCache(ABC):
    """Abstract get / set / delete cache with namespaced string keys."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value under *key*, or ``None`` on miss or expiry."""

    async def get_many(self, keys: Iterable[str]) -> list[str | None]:
        """Return the values of *keys* in order.  Override to batch round-trips."""
        return [await self.get(key) for key in keys]

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store *value* under *key* with the cache's TTL."""

    async def set_many(self, items: Mapping[str, str]) -> None:
        """Store several entries.  Override to batch round-trips."""
        for key, value in items.items():
            await self.set(key, value)

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Remove *keys*; return how many existed."""

    @abstractmethod
    async def clear(self) -> int:
        """Drop every entry owned by this cache; return how many were removed."""

    async def close(self) -> None:  # noqa: B027
        """Release connections.  No-op by default."""

    async def stats(self) -> dict[str, Any]:
        """Return implementation-specific statistics."""
        return {}


__all__ = ["NOT_EXISTS", "MappingCache"]
