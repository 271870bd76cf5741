"""Backing stores for mapping rows and network key / value attributes.

Backends
--------
:class:`~fastapi_mercator.storage.database.SQLAlchemyMappingBackend` /
:class:`~fastapi_mercator.storage.database.SQLAlchemyNetworkMetaBackend`
    Production backends sharing one :class:`~fastapi_mercator.storage.database.Database`.

:class:`~fastapi_mercator.storage.memory.InMemoryMappingBackend` /
:class:`~fastapi_mercator.storage.memory.InMemoryNetworkMetaBackend`
    Dictionary-backed stores for tests and local development.

Example::

    from fastapi_mercator.storage import Database, SQLAlchemyMappingBackend

    db = Database("sqlite+aiosqlite:///./mercator.db")
    await db.initialize()
    backend = SQLAlchemyMappingBackend(db)
"""

from fastapi_mercator.storage.backend import MappingBackend, MetaRow, NetworkMetaBackend
from fastapi_mercator.storage.database import (
    Database,
    SQLAlchemyMappingBackend,
    SQLAlchemyNetworkMetaBackend,
)
from fastapi_mercator.storage.memory import InMemoryMappingBackend, InMemoryNetworkMetaBackend

__all__ = [
    "Database",
    "InMemoryMappingBackend",
    "InMemoryNetworkMetaBackend",
    "MappingBackend",
    "MetaRow",
    "NetworkMetaBackend",
    "SQLAlchemyMappingBackend",
    "SQLAlchemyNetworkMetaBackend",
]
