"""Cache tier for mapping lookups — in-process LRU or shared Redis."""

from fastapi_mercator.cache.base import NOT_EXISTS, MappingCache
from fastapi_mercator.cache.memory import InMemoryMappingCache

__all__ = ["NOT_EXISTS", "InMemoryMappingCache", "MappingCache"]
