"""In-memory backing stores for testing and development.

Warning:
    All rows live in Python dictionaries and are **lost when the process
    exits**.  Use these backends for unit tests, local development and demos;
    production deployments use the SQLAlchemy backends.

Design notes
------------
- No async I/O: operations complete synchronously, wrapped in ``async def``
  to satisfy the backend interfaces.
- ``provisioned=False`` simulates a fresh install whose table does not exist
  yet: reads return nothing and writes raise ``BackendUnavailableError``
  until :meth:`ensure_schema` is called.
- Mutating methods acquire ``_lock`` so interleaved coroutines cannot both
  pass the uniqueness check.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import TYPE_CHECKING, Any

from fastapi_mercator.core.exceptions import BackendUnavailableError, DomainExistsError
from fastapi_mercator.core.types import Mapping
from fastapi_mercator.storage.backend import (
    MappingBackend,
    MetaRow,
    NetworkMetaBackend,
    SchemaState,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)


class InMemoryMappingBackend(MappingBackend):
    """Dictionary-backed mapping table.

    As a pytest fixture::

        @pytest.fixture
        def backend():
            return InMemoryMappingBackend()
    """

    table = "domain_mapping"

    def __init__(self, provisioned: bool = True) -> None:
        self._rows: dict[int, Mapping] = {}
        self._ids = itertools.count(1)
        self._provisioned = provisioned
        self._lock = asyncio.Lock()

    async def ensure_schema(self) -> SchemaState:
        if self._provisioned:
            return "exists"
        self._provisioned = True
        logger.info("Created in-memory table %s", self.table)
        return "created"

    def _require_table(self) -> None:
        if not self._provisioned:
            raise BackendUnavailableError(self.table)

    ########
    # Read #
    ########

    async def get(self, mapping_id: int) -> Mapping | None:
        if not self._provisioned:
            return None
        return self._rows.get(mapping_id)

    async def list_by_tenant(self, tenant_id: int) -> list[Mapping]:
        if not self._provisioned:
            return []
        return sorted(
            (m for m in self._rows.values() if m.tenant_id == tenant_id),
            key=lambda m: m.id,
        )

    async def find_by_domains(self, domains: Sequence[str]) -> list[Mapping]:
        if not self._provisioned:
            return []
        wanted = set(domains)
        found = [m for m in self._rows.values() if m.domain in wanted]
        return sorted(found, key=lambda m: len(m.domain), reverse=True)

    #########
    # Write #
    #########

    async def insert(self, tenant_id: int, domain: str, active: bool) -> Mapping:
        async with self._lock:
            self._require_table()
            self._check_unique(domain)
            mapping = Mapping(id=next(self._ids), tenant_id=tenant_id, domain=domain, active=active)
            self._rows[mapping.id] = mapping
            return mapping

    async def update(self, mapping_id: int, values: dict[str, Any]) -> int:
        async with self._lock:
            self._require_table()
            current = self._rows.get(mapping_id)
            if current is None:
                return 0
            if "domain" in values:
                self._check_unique(values["domain"], exclude=mapping_id)
            self._rows[mapping_id] = current.model_copy(update=values)
            return 1

    async def delete(self, mapping_id: int) -> int:
        async with self._lock:
            self._require_table()
            return 1 if self._rows.pop(mapping_id, None) is not None else 0

    def _check_unique(self, domain: str, exclude: int | None = None) -> None:
        for row in self._rows.values():
            if row.domain == domain and row.id != exclude:
                raise DomainExistsError(domain, owner_id=row.tenant_id)

    def clear(self) -> None:
        """Drop every row (test helper)."""
        self._rows.clear()


class InMemoryNetworkMetaBackend(NetworkMetaBackend):
    """Dictionary-backed network key / value table."""

    table = "network_meta"

    def __init__(self, provisioned: bool = True) -> None:
        self._rows: dict[int, MetaRow] = {}
        self._ids = itertools.count(1)
        self._provisioned = provisioned
        self._lock = asyncio.Lock()

    async def ensure_schema(self) -> SchemaState:
        if self._provisioned:
            return "exists"
        self._provisioned = True
        logger.info("Created in-memory table %s", self.table)
        return "created"

    def _require_table(self) -> None:
        if not self._provisioned:
            raise BackendUnavailableError(self.table)

    async def get(self, meta_id: int) -> MetaRow | None:
        if not self._provisioned:
            return None
        return self._rows.get(meta_id)

    async def list_by_network(self, network_id: int, key_prefix: str) -> list[MetaRow]:
        if not self._provisioned:
            return []
        return sorted(
            (
                r
                for r in self._rows.values()
                if r.network_id == network_id and r.meta_key.startswith(key_prefix)
            ),
            key=lambda r: r.meta_id,
        )

    async def find_by_keys(self, keys: Sequence[str]) -> list[MetaRow]:
        if not self._provisioned:
            return []
        wanted = set(keys)
        return [r for r in self._rows.values() if r.meta_key in wanted]

    async def insert(self, network_id: int, meta_key: str, meta_value: str) -> MetaRow:
        async with self._lock:
            self._require_table()
            self._check_unique(meta_key)
            row = MetaRow(
                meta_id=next(self._ids),
                network_id=network_id,
                meta_key=meta_key,
                meta_value=meta_value,
            )
            self._rows[row.meta_id] = row
            return row

    async def update(self, meta_id: int, meta_key: str, meta_value: str) -> int:
        async with self._lock:
            self._require_table()
            current = self._rows.get(meta_id)
            if current is None:
                return 0
            self._check_unique(meta_key, exclude=meta_id)
            self._rows[meta_id] = current.model_copy(
                update={"meta_key": meta_key, "meta_value": meta_value}
            )
            return 1

    async def delete(self, meta_id: int) -> int:
        async with self._lock:
            self._require_table()
            return 1 if self._rows.pop(meta_id, None) is not None else 0

    def _check_unique(self, meta_key: str, exclude: int | None = None) -> None:
        for row in self._rows.values():
            if row.meta_key == meta_key and row.meta_id != exclude:
                raise DomainExistsError(meta_key, owner_id=row.network_id)


__all__ = ["InMemoryMappingBackend", "InMemoryNetworkMetaBackend"]
