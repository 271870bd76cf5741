"""Cache-aside mapping stores.

:class:`BaseMappingStore` implements everything the site-level and the
network-level stores have in common: id validation, the by-owner and
by-domain cache namespaces, negative caching, the create / update / delete
flows with their cache invalidation, event emission, and the multi-step
``make_primary`` promotion.  Subclasses only say how rows are read and
written.

:class:`MappingStore` is the site-level store over a row table.

Cache architecture
------------------
::

    get_by_domain(["www.shop.com", "shop.com"])
        │
        ├── every candidate cached "notexists"  ──→ None (no query)
        ├── cached record covering the longest unknown candidate ──→ record
        │
        └── otherwise
                │
                ▼
            backend.find_by_domains(candidates)   (longest domain first)
                │
                ▼
            cache: positive entry per row, "notexists" per absent candidate

Known race
----------
The uniqueness check in :meth:`BaseMappingStore.create` is not atomic with the
insert.  Two concurrent creates for one domain can both pass the check; the
backend's unique constraint rejects the loser, which then re-reads the winner
and either returns it (same owner) or raises ``DomainExistsError``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import logging
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

from pydantic import TypeAdapter, ValidationError

from fastapi_mercator.cache.base import NOT_EXISTS
from fastapi_mercator.core.exceptions import (
    BackendUnavailableError,
    DeleteFailedError,
    DomainExistsError,
    InsertFailedError,
    InvalidIdError,
    MappingNotFoundError,
    MercatorError,
    UpdateFailedError,
)
from fastapi_mercator.core.types import (
    Mapping,
    MappingEvent,
    MappingEventType,
    MappingScope,
    NetworkMapping,
    Tenant,
)
from fastapi_mercator.events import LoggingEventListener
from fastapi_mercator.utils.domains import assert_valid_domain, normalize_domain

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from fastapi_mercator.cache.base import MappingCache
    from fastapi_mercator.events import MappingEventListener
    from fastapi_mercator.platform import TenantPlatform
    from fastapi_mercator.storage.backend import MappingBackend, SchemaState

logger = logging.getLogger(__name__)

M = TypeVar("M", Mapping, NetworkMapping)


def validate_id(value: Any, kind: str = "mapping") -> int:
    """Coerce *value* to a positive integer id.

    Accepts ints and digit-only strings, mirroring how ids arrive from forms
    and query strings.

    Raises:
        InvalidIdError: For anything else (including booleans).
    """
    if isinstance(value, bool):
        raise InvalidIdError(value, kind)
    if isinstance(value, int):
        number = value
    elif isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
    else:
        raise InvalidIdError(value, kind)
    if number < 1:
        raise InvalidIdError(value, kind)
    return number


class BaseMappingStore(ABC, Generic[M]):
    """Shared cache-aside logic of the site and network mapping stores.

    Args:
        cache: Cache tier holding the by-owner and by-domain namespaces.
        listener: Receives a :class:`MappingEvent` after every committed
            change.  Defaults to :class:`LoggingEventListener`.
    """

    scope: ClassVar[MappingScope]
    cache_group: ClassVar[str]
    owner_kind: ClassVar[str]
    model: ClassVar[type[Mapping] | type[NetworkMapping]]

    def __init__(self, cache: MappingCache, listener: MappingEventListener | None = None) -> None:
        self._cache = cache
        self._listener = listener or LoggingEventListener()
        self._one: TypeAdapter[M] = TypeAdapter(self.model)
        self._many: TypeAdapter[list[M]] = TypeAdapter(list[self.model])  # type: ignore[name-defined]

    #########################
    # Backend hooks         #
    #########################

    @abstractmethod
    async def _fetch(self, mapping_id: int) -> M | None: ...

    @abstractmethod
    async def _fetch_by_owner(self, owner_id: int) -> list[M]: ...

    @abstractmethod
    async def _fetch_by_domains(self, domains: Sequence[str]) -> list[M]:
        """Return stored mappings for *domains*, longest domain first."""

    @abstractmethod
    async def _insert(self, owner_id: int, domain: str, active: bool) -> M: ...

    @abstractmethod
    async def _write(self, mapping: M, values: dict[str, Any]) -> int: ...

    @abstractmethod
    async def _remove(self, mapping: M) -> int: ...

    @abstractmethod
    async def _ensure_schema(self) -> SchemaState: ...

    @abstractmethod
    async def _canonical_domain(self, platform: TenantPlatform, owner_id: int) -> str: ...

    @abstractmethod
    async def _promote(self, platform: TenantPlatform, owner_id: int, domain: str) -> Any: ...

    ####################
    # Cache helpers    #
    ####################

    def _owner_key(self, owner_id: int) -> str:
        return f"{self.cache_group}:id:{owner_id}"

    def _domain_key(self, domain: str) -> str:
        return f"{self.cache_group}:domain:{domain}"

    def _load_one(self, raw: str) -> M | None:
        try:
            return self._one.validate_json(raw)
        except ValidationError:
            logger.warning("Corrupt %s cache entry, treating as miss", self.cache_group)
            return None

    def _load_many(self, raw: str) -> list[M] | None:
        try:
            return self._many.validate_json(raw)
        except ValidationError:
            logger.warning("Corrupt %s cache entry, treating as miss", self.cache_group)
            return None

    def _dump_one(self, mapping: M) -> str:
        return self._one.dump_json(mapping).decode("utf-8")

    def _dump_many(self, mappings: list[M]) -> str:
        return self._many.dump_json(mappings).decode("utf-8")

    async def _invalidate(self, mapping: M) -> None:
        await self._cache.delete(self._owner_key(mapping.owner_id), self._domain_key(mapping.domain))

    async def _emit(
        self,
        event_type: MappingEventType,
        mapping: M,
        previous: M | None = None,
        alias: M | None = None,
    ) -> None:
        await self._listener.emit(
            MappingEvent(
                type=event_type,
                scope=self.scope,
                mapping=mapping,
                previous=previous,
                alias=alias,
            )
        )

    ###################
    # Read operations #
    ###################

    async def get(self, mapping_id: Any) -> M:
        """Return the mapping with *mapping_id*.

        Raises:
            InvalidIdError: When *mapping_id* is not a positive integer.
            MappingNotFoundError: When no such mapping exists.
        """
        number = validate_id(mapping_id)
        mapping = await self._fetch(number)
        if mapping is None:
            raise MappingNotFoundError(number)
        return mapping

    async def get_by_owner(self, owner_id: Any) -> list[M]:
        """Return every mapping of an owner, cache-aside on the by-owner key."""
        owner = validate_id(owner_id, self.owner_kind)
        key = self._owner_key(owner)
        raw = await self._cache.get(key)
        if raw:
            cached = self._load_many(raw)
            if cached:
                logger.debug("Cache HIT %s", key)
                return cached
        logger.debug("Cache MISS %s", key)
        mappings = await self._fetch_by_owner(owner)
        if mappings:
            await self._cache.set(key, self._dump_many(mappings))
        return mappings

    async def get_by_domain(self, domains: str | Iterable[str]) -> M | None:
        """Return the longest stored mapping among *domains*, or ``None``.

        Candidates are normalised and de-duplicated, order preserved.  A cached
        record is returned without a query when no longer candidate is still
        unknown; a fully negative cache short-circuits to ``None``.
        """
        candidates = _prepare_candidates(domains)
        if not candidates:
            return None

        cached = await self._cache.get_many([self._domain_key(d) for d in candidates])
        hits: list[M] = []
        unknown: list[str] = []
        for domain, raw in zip(candidates, cached, strict=True):
            if raw is None:
                unknown.append(domain)
            elif raw != NOT_EXISTS:
                record = self._load_one(raw)
                if record is None:
                    unknown.append(domain)
                else:
                    hits.append(record)

        if hits:
            best = max(hits, key=lambda m: len(m.domain))
            if all(len(d) <= len(best.domain) for d in unknown):
                logger.debug("Cache HIT %s domain=%s", self.cache_group, best.domain)
                return best
        elif not unknown:
            logger.debug("Negative cache HIT %s candidates=%s", self.cache_group, candidates)
            return None

        found = await self._fetch_by_domains(candidates)
        by_domain = {m.domain: m for m in found}
        entries = {
            self._domain_key(d): (self._dump_one(by_domain[d]) if d in by_domain else NOT_EXISTS)
            for d in candidates
        }
        await self._cache.set_many(entries)
        return found[0] if found else None

    ####################
    # Write operations #
    ####################

    async def create(self, owner_id: Any, domain: str, active: bool = False) -> M:
        """Map *domain* to an owner.

        Full URLs are reduced to their host.  Creating a mapping the owner
        already holds returns the existing mapping unchanged.

        Raises:
            InvalidIdError: When *owner_id* is malformed.
            InvalidDomainError: When *domain* fails validation.
            DomainExistsError: When another owner holds *domain*.
            InsertFailedError: When the row could not be written, including
                after one lazy schema provisioning attempt.
        """
        owner = validate_id(owner_id, self.owner_kind)
        domain = assert_valid_domain(domain)

        existing = await self.get_by_domain([domain])
        if existing is not None:
            if existing.owner_id != owner:
                raise DomainExistsError(domain, existing.owner_id)
            return existing

        try:
            mapping = await self._insert_with_retry(owner, domain, bool(active))
        except DomainExistsError:
            await self._cache.delete(self._domain_key(domain))
            winners = await self._fetch_by_domains([domain])
            if winners and winners[0].owner_id == owner:
                return winners[0]
            raise DomainExistsError(domain, winners[0].owner_id if winners else None) from None

        await self._cache.delete(self._owner_key(owner))
        await self._cache.set(self._domain_key(domain), self._dump_one(mapping))
        await self._emit(MappingEventType.CREATED, mapping)
        return mapping

    async def _insert_with_retry(self, owner: int, domain: str, active: bool) -> M:
        try:
            return await self._insert(owner, domain, active)
        except BackendUnavailableError as exc:
            state = await self._ensure_schema()
            if state != "created":
                raise InsertFailedError(exc.message, {"domain": domain}) from exc
            logger.info("Provisioned %s table, retrying insert of %s", self.cache_group, domain)
        try:
            return await self._insert(owner, domain, active)
        except BackendUnavailableError as exc:
            raise InsertFailedError(exc.message, {"domain": domain}) from exc

    async def update(
        self,
        mapping: M,
        *,
        domain: str | None = None,
        active: bool | None = None,
    ) -> M | None:
        """Change the domain and / or active flag of *mapping*.

        Only fields that differ from the snapshot are written.

        Returns:
            The updated snapshot, or ``None`` when nothing changed.

        Raises:
            InvalidDomainError: When the new domain fails validation.
            DomainExistsError: When the new domain belongs to another mapping.
            UpdateFailedError: When the write fails or the row vanished.
        """
        values: dict[str, Any] = {}
        if domain is not None:
            new_domain = assert_valid_domain(domain)
            if new_domain != mapping.domain:
                existing = await self.get_by_domain([new_domain])
                if existing is not None and existing.id != mapping.id:
                    raise DomainExistsError(new_domain, existing.owner_id)
                values["domain"] = new_domain
        if active is not None and bool(active) != mapping.active:
            values["active"] = bool(active)
        if not values:
            return None

        try:
            affected = await self._write(mapping, values)
        except DomainExistsError:
            raise DomainExistsError(values.get("domain", mapping.domain)) from None
        if not affected:
            raise UpdateFailedError("mapping no longer exists", {"mapping_id": mapping.id})

        updated = mapping.model_copy(update=values)
        await self._invalidate(mapping)
        await self._cache.set(self._domain_key(updated.domain), self._dump_one(updated))
        await self._emit(MappingEventType.UPDATED, updated, previous=mapping)
        return updated

    async def set_active(self, mapping: M, active: bool) -> M | None:
        return await self.update(mapping, active=active)

    async def set_domain(self, mapping: M, domain: str) -> M | None:
        return await self.update(mapping, domain=domain)

    async def delete(self, mapping: M) -> bool:
        """Remove *mapping*.

        Raises:
            DeleteFailedError: When the write fails or the row was already gone.
        """
        affected = await self._remove(mapping)
        if not affected:
            raise DeleteFailedError("mapping no longer exists", {"mapping_id": mapping.id})
        await self._invalidate(mapping)
        await self._emit(MappingEventType.DELETED, mapping)
        return True

    async def delete_by_owner(self, owner_id: Any) -> int:
        """Delete every mapping of a removed owner; return how many went."""
        owner = validate_id(owner_id, self.owner_kind)
        removed = 0
        for mapping in await self._fetch_by_owner(owner):
            await self.delete(mapping)
            removed += 1
        await self._cache.delete(self._owner_key(owner))
        return removed

    async def make_primary(self, mapping: M, platform: TenantPlatform) -> Any:
        """Promote *mapping*'s domain to its owner's canonical domain.

        Steps, in order:

        1. Map the owner's current canonical domain as an active alias.
        2. Switch the owner's canonical domain to ``mapping.domain``.
        3. Delete ``mapping``, now redundant.

        The steps are not atomic.  If step 2 fails, an alias created in
        step 1 is deleted again and ``UpdateFailedError`` is raised.  If step
        3 fails, the owner is already promoted and the leftover mapping
        duplicates its canonical domain; the ``DeleteFailedError`` is
        re-raised and deleting the mapping again completes the operation.

        Returns:
            The updated owner (``Tenant`` or ``Network``).
        """
        owner = mapping.owner_id
        old_domain = await self._canonical_domain(platform, owner)

        created_alias = False
        alias = await self.get_by_domain([old_domain])
        if alias is not None and alias.owner_id == owner:
            if not alias.active:
                alias = await self.update(alias, active=True) or alias
        else:
            alias = await self.create(owner, old_domain, active=True)
            created_alias = True

        try:
            promoted = await self._promote(platform, owner, mapping.domain)
        except Exception as exc:
            logger.error(
                "make_primary: canonical domain of %s %s unchanged: %s",
                self.owner_kind,
                owner,
                exc,
            )
            if created_alias:
                try:
                    await self.delete(alias)
                except MercatorError:
                    logger.exception(
                        "make_primary: could not remove alias %s after failed promotion",
                        old_domain,
                    )
            raise UpdateFailedError(
                f"could not change canonical domain: {exc}",
                {"owner_id": owner, "domain": mapping.domain},
            ) from exc

        try:
            await self.delete(mapping)
        except MercatorError:
            logger.error(
                "make_primary: %s %s promoted to %s but mapping id=%s was not removed",
                self.owner_kind,
                owner,
                mapping.domain,
                mapping.id,
            )
            raise

        await self._emit(MappingEventType.MADE_PRIMARY, mapping, alias=alias)
        return promoted


def _prepare_candidates(domains: str | Iterable[str]) -> list[str]:
    if isinstance(domains, str):
        domains = [domains]
    seen: list[str] = []
    for raw in domains:
        domain = normalize_domain(raw)
        if domain and domain not in seen:
            seen.append(domain)
    return seen


class MappingStore(BaseMappingStore[Mapping]):
    """Site-level mapping store over a :class:`MappingBackend` row table.

    Example::

        store = MappingStore(SQLAlchemyMappingBackend(db), InMemoryMappingCache())

        mapping = await store.create(tenant_id=7, domain="brand.com")
        await store.set_active(mapping, True)
        await store.get_by_domain(["www.brand.com", "brand.com"])
    """

    scope = MappingScope.SITE
    cache_group = "domain_mapping"
    owner_kind = "tenant"
    model = Mapping

    def __init__(
        self,
        backend: MappingBackend,
        cache: MappingCache,
        listener: MappingEventListener | None = None,
    ) -> None:
        super().__init__(cache, listener)
        self._backend = backend

    async def get_by_tenant(self, tenant_id: Any) -> list[Mapping]:
        """Return every mapping of *tenant_id* (cache-aside)."""
        return await self.get_by_owner(tenant_id)

    async def delete_by_tenant(self, tenant_id: Any) -> int:
        return await self.delete_by_owner(tenant_id)

    async def _fetch(self, mapping_id: int) -> Mapping | None:
        return await self._backend.get(mapping_id)

    async def _fetch_by_owner(self, owner_id: int) -> list[Mapping]:
        return await self._backend.list_by_tenant(owner_id)

    async def _fetch_by_domains(self, domains: Sequence[str]) -> list[Mapping]:
        return await self._backend.find_by_domains(domains)

    async def _insert(self, owner_id: int, domain: str, active: bool) -> Mapping:
        return await self._backend.insert(owner_id, domain, active)

    async def _write(self, mapping: Mapping, values: dict[str, Any]) -> int:
        return await self._backend.update(mapping.id, values)

    async def _remove(self, mapping: Mapping) -> int:
        return await self._backend.delete(mapping.id)

    async def _ensure_schema(self) -> SchemaState:
        return await self._backend.ensure_schema()

    async def _canonical_domain(self, platform: TenantPlatform, owner_id: int) -> str:
        tenant = await platform.get_tenant(owner_id)
        if tenant is None:
            raise MappingNotFoundError(owner_id, {"kind": "tenant"})
        return tenant.domain

    async def _promote(self, platform: TenantPlatform, owner_id: int, domain: str) -> Tenant:
        return await platform.update_tenant_domain(owner_id, domain)


__all__ = ["BaseMappingStore", "MappingStore", "validate_id"]
