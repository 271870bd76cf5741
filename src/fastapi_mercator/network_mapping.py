"""Network-level mapping store.

Network mappings are stored in the network meta table, one row per alias::

    meta_key   = "<prefix>" + sha1(domain)
    meta_value = {"domain": "brand.com", "active": true}

The JSON blob is parsed into a :class:`NetworkMapping` at this boundary; the
rest of the library never sees the serialized form.  Only rows whose key
carries the configured prefix are network mappings; other meta rows belong to
the application.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, ValidationError

from fastapi_mercator.core.exceptions import InvalidIdError, MappingNotFoundError
from fastapi_mercator.core.types import MappingScope, NetworkMapping
from fastapi_mercator.mapping import BaseMappingStore
from fastapi_mercator.utils.domains import key_for_domain, normalize_domain

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from fastapi_mercator.cache.base import MappingCache
    from fastapi_mercator.core.types import Network
    from fastapi_mercator.events import MappingEventListener
    from fastapi_mercator.platform import TenantPlatform
    from fastapi_mercator.storage.backend import MetaRow, NetworkMetaBackend, SchemaState

logger = logging.getLogger(__name__)


class _MappingBlob(BaseModel):
    model_config = ConfigDict(extra="ignore")

    domain: str
    active: bool = False


class NetworkMappingStore(BaseMappingStore[NetworkMapping]):
    """Cache-aside store of network aliases.

    Args:
        backend: Network meta table.
        cache: Shared cache tier; entries live under ``network_mapping:``.
        key_prefix: Meta key prefix marking network mapping rows.
        listener: Event sink.
    """

    scope = MappingScope.NETWORK
    cache_group = "network_mapping"
    owner_kind = "network"
    model = NetworkMapping

    def __init__(
        self,
        backend: NetworkMetaBackend,
        cache: MappingCache,
        key_prefix: str = "mercator_",
        listener: MappingEventListener | None = None,
    ) -> None:
        super().__init__(cache, listener)
        self._backend = backend
        self._prefix = key_prefix

    def key_for(self, domain: str) -> str:
        return key_for_domain(domain, self._prefix)

    async def get_by_network(self, network_id: Any) -> list[NetworkMapping]:
        """Return every alias of *network_id* (cache-aside)."""
        return await self.get_by_owner(network_id)

    async def delete_by_network(self, network_id: Any) -> int:
        return await self.delete_by_owner(network_id)

    async def get_active_by_domain(self, domains: str | Iterable[str]) -> NetworkMapping | None:
        """Return the longest *active* alias among *domains*.

        Each candidate is looked up on its own so an inactive alias for a long
        suffix does not hide an active one for a shorter suffix.
        """
        if isinstance(domains, str):
            domains = [domains]
        best: NetworkMapping | None = None
        for candidate in domains:
            mapping = await self.get_by_domain([candidate])
            if mapping is None or not mapping.active:
                continue
            if best is None or len(mapping.domain) > len(best.domain):
                best = mapping
        return best

    ###################
    # Blob boundary   #
    ###################

    def _parse(self, row: MetaRow) -> NetworkMapping | None:
        try:
            blob = _MappingBlob.model_validate_json(row.meta_value)
        except ValidationError:
            logger.warning("Unreadable network mapping blob meta_id=%s", row.meta_id)
            return None
        return NetworkMapping(
            id=row.meta_id,
            network_id=row.network_id,
            domain=normalize_domain(blob.domain),
            active=blob.active,
        )

    def _parse_all(self, rows: Iterable[MetaRow]) -> list[NetworkMapping]:
        return [m for m in (self._parse(row) for row in rows) if m is not None]

    @staticmethod
    def _serialize(domain: str, active: bool) -> str:
        return _MappingBlob(domain=domain, active=active).model_dump_json()

    ###################
    # Backend hooks   #
    ###################

    async def _fetch(self, mapping_id: int) -> NetworkMapping | None:
        row = await self._backend.get(mapping_id)
        if row is None:
            return None
        if not row.meta_key.startswith(self._prefix):
            raise InvalidIdError(mapping_id, "network mapping")
        return self._parse(row)

    async def _fetch_by_owner(self, owner_id: int) -> list[NetworkMapping]:
        rows = await self._backend.list_by_network(owner_id, self._prefix)
        return self._parse_all(rows)

    async def _fetch_by_domains(self, domains: Sequence[str]) -> list[NetworkMapping]:
        rows = await self._backend.find_by_keys([self.key_for(d) for d in domains])
        found = self._parse_all(rows)
        found.sort(key=lambda m: len(m.domain), reverse=True)
        return found

    async def _insert(self, owner_id: int, domain: str, active: bool) -> NetworkMapping:
        row = await self._backend.insert(owner_id, self.key_for(domain), self._serialize(domain, active))
        return NetworkMapping(id=row.meta_id, network_id=owner_id, domain=domain, active=active)

    async def _write(self, mapping: NetworkMapping, values: dict[str, Any]) -> int:
        updated = mapping.model_copy(update=values)
        return await self._backend.update(
            mapping.id,
            self.key_for(updated.domain),
            self._serialize(updated.domain, updated.active),
        )

    async def _remove(self, mapping: NetworkMapping) -> int:
        return await self._backend.delete(mapping.id)

    async def _ensure_schema(self) -> SchemaState:
        return await self._backend.ensure_schema()

    async def _canonical_domain(self, platform: TenantPlatform, owner_id: int) -> str:
        network = await platform.get_network(owner_id)
        if network is None:
            raise MappingNotFoundError(owner_id, {"kind": "network"})
        return network.domain

    async def _promote(self, platform: TenantPlatform, owner_id: int, domain: str) -> Network:
        return await platform.update_network_domain(owner_id, domain)


__all__ = ["NetworkMappingStore"]
