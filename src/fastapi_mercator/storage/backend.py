"""Abstract backing-store contracts — the repository pattern.

Two shapes of storage sit behind the mapping stores:

``MappingBackend``
    A row-oriented table of ``(id, tenant_id, domain, active)``.

``NetworkMetaBackend``
    A generic key / value attribute table ``(meta_id, network_id, meta_key,
    meta_value)``.  Network mappings are stored in it as JSON blobs; the
    backend never interprets ``meta_value``.

Contract shared by both
-----------------------
- Every method is a coroutine.
- Reads never raise for a missing table; they return ``None`` / ``[]``
  so resolution degrades to "no mapping" on a fresh install.
- Writes report a missing table with ``BackendUnavailableError``; the
  store then calls :meth:`ensure_schema` and retries once.
- The backend enforces domain uniqueness and reports it as
  ``DomainExistsError``.  The store's check-before-write is only a fast path.
- ``update`` and ``delete`` return affected-row counts so
  callers can tell "nothing matched" from success.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fastapi_mercator.core.types import Mapping

SchemaState = Literal["exists", "created"]


class MetaRow(BaseModel):
    """One row of the network key / value attribute table."""

    model_config = ConfigDict(frozen=True)

    meta_id: int
    network_id: int
    meta_key: str
    meta_value: str


class MappingBackend(ABC):
    """Row store for tenant-level mappings."""

    @abstractmethod
    async def ensure_schema(self) -> SchemaState:
        """Create the mapping table if it is missing.

        Returns:
            ``"created"`` when the table had to be created, ``"exists"``
            otherwise.
        """

    @abstractmethod
    async def get(self, mapping_id: int) -> Mapping | None:
        """Return the row with primary key *mapping_id*, or ``None``."""

    @abstractmethod
    async def list_by_tenant(self, tenant_id: int) -> list[Mapping]:
        """Return every mapping owned by *tenant_id*, ordered by id."""

    @abstractmethod
    async def find_by_domains(self, domains: Sequence[str]) -> list[Mapping]:
        """Return rows whose domain is in *domains*, longest domain first."""

    @abstractmethod
    async def insert(self, tenant_id: int, domain: str, active: bool) -> Mapping:
        """Insert a row and return it with its assigned id.

        Raises:
            DomainExistsError: When another row already holds *domain*.
            BackendUnavailableError: When the table does not exist.
            InsertFailedError: On any other write failure.
        """

    @abstractmethod
    async def update(self, mapping_id: int, values: dict[str, Any]) -> int:
        """Write *values* (``domain`` and / or ``active``) to one row.

        Returns:
            Number of rows affected.

        Raises:
            DomainExistsError: When the new domain is held by another row.
            UpdateFailedError: On any other write failure.
        """

    @abstractmethod
    async def delete(self, mapping_id: int) -> int:
        """Delete one row and return the number of rows affected.

        Raises:
            DeleteFailedError: On write failure.
        """

    async def close(self) -> None:  # noqa: B027
        """Release resources.  No-op by default."""


class NetworkMetaBackend(ABC):
    """Key / value attribute store for network-level mappings."""

    @abstractmethod
    async def ensure_schema(self) -> SchemaState:
        """Create the meta table if it is missing."""

    @abstractmethod
    async def get(self, meta_id: int) -> MetaRow | None:
        """Return the row with primary key *meta_id*, or ``None``."""

    @abstractmethod
    async def list_by_network(self, network_id: int, key_prefix: str) -> list[MetaRow]:
        """Return the rows of *network_id* whose key starts with *key_prefix*."""

    @abstractmethod
    async def find_by_keys(self, keys: Sequence[str]) -> list[MetaRow]:
        """Return the rows whose key is in *keys*."""

    @abstractmethod
    async def insert(self, network_id: int, meta_key: str, meta_value: str) -> MetaRow:
        """Insert a row.

        Raises:
            DomainExistsError: When *meta_key* is already taken.
            BackendUnavailableError: When the table does not exist.
            InsertFailedError: On any other write failure.
        """

    @abstractmethod
    async def update(self, meta_id: int, meta_key: str, meta_value: str) -> int:
        """Rewrite the key and value of one row; return rows affected."""

    @abstractmethod
    async def delete(self, meta_id: int) -> int:
        """Delete one row; return rows affected."""

    async def close(self) -> None:  # noqa: B027
        """Release resources.  No-op by default."""


__all__ = ["MappingBackend", "MetaRow", "NetworkMetaBackend", "SchemaState"]
