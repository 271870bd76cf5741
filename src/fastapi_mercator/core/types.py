"""Domain types, enumerations, and data models for fastapi-mercator.

This module is the single source of truth for the library's public domain
vocabulary.  All other modules import *from* this module, never the reverse.

Design notes
------------
* Enumerations use :class:`~enum.StrEnum` so values serialise to plain
  strings in JSON, logs, and database rows without extra conversion.
* Every model is a Pydantic ``frozen=True`` model.  Stores hand out snapshots;
  a mutation always goes through the owning store and yields a new instance
  via :meth:`~pydantic.BaseModel.model_copy`.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
import json

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class MappingScope(StrEnum):
    """Level a mapping attaches a domain to.

    SITE
        The domain is an alias of a single tenant (site).
    NETWORK
        The domain is an alias of a whole network of tenants.  Only used
        when multi-network support is enabled.
    """

    SITE = "site"
    NETWORK = "network"


class MappingEventType(StrEnum):
    """Kinds of change a mapping store reports to its listener."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    MADE_PRIMARY = "made_primary"


class BulkAction(StrEnum):
    """Built-in actions accepted by :meth:`MercatorManager.bulk_action`."""

    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"
    DELETE = "delete"
    MAKE_PRIMARY = "make_primary"


# ---------------------------------------------------------------------------
# Domain models
# ---------------------------------------------------------------------------


class Mapping(BaseModel):
    """A tenant-level domain alias.

    Attributes:
        id: Store-assigned primary key.
        tenant_id: Owning tenant (site).
        domain: Bare host name, lowercase, without port.
        active: Whether requests for ``domain`` are routed to the tenant.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., ge=1, description="Store-assigned mapping id.")
    tenant_id: int = Field(..., ge=1, description="Owning tenant id.")
    domain: str = Field(..., min_length=1, max_length=255, description="Mapped host name.")
    active: bool = Field(default=False, description="Whether the alias is live.")

    @property
    def owner_id(self) -> int:
        """Return the owning tenant id."""
        return self.tenant_id


class NetworkMapping(BaseModel):
    """A network-level domain alias.

    Persisted as a JSON blob in the network meta table; ``id`` is the meta
    row id, ``domain`` and ``active`` live inside the blob.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., ge=1, description="Meta row id.")
    network_id: int = Field(..., ge=1, description="Owning network id.")
    domain: str = Field(..., min_length=1, max_length=255)
    active: bool = Field(default=False)

    @property
    def owner_id(self) -> int:
        """Return the owning network id."""
        return self.network_id


class Tenant(BaseModel):
    """A site hosted on the platform.

    Attributes:
        id: Numeric site id.
        domain: Canonical domain of record.
        path: Path prefix the site lives under (``"/"`` for domain installs).
        network_id: Network the site belongs to.
        name: Optional display name.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., ge=1)
    domain: str = Field(..., min_length=1, max_length=255)
    path: str = Field(default="/")
    network_id: int = Field(default=1, ge=1)
    name: str | None = None


class Network(BaseModel):
    """A group of tenants sharing a canonical domain.

    Attributes:
        id: Numeric network id.
        domain: Canonical network domain.
        path: Path prefix of the network's main site.
        cookie_domain: Explicit cookie domain; derived from ``domain`` when unset.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., ge=1)
    domain: str = Field(..., min_length=1, max_length=255)
    path: str = Field(default="/")
    cookie_domain: str | None = None


class LoginToken(BaseModel):
    """Payload of a one-time cross-domain login token.

    Attributes:
        back: URL the browser returns to once logged in.
        site: Tenant id the token was issued for.
        user: User id to authenticate.
        time: Unix timestamp of issuance.
    """

    model_config = ConfigDict(frozen=True)

    back: str
    site: int
    user: int
    time: int

    def canonical_json(self) -> str:
        """Serialise with sorted keys so equal payloads hash identically."""
        return json.dumps(self.model_dump(), sort_keys=True, separators=(",", ":"))

    def is_expired(self, now: float, duration: int) -> bool:
        """Return ``True`` once ``duration`` seconds have elapsed since issuance."""
        return now >= self.time + duration


class ResolutionPolicy(BaseModel):
    """Knobs of domain candidate generation.

    Injected into resolvers and stores instead of global hooks.

    Attributes:
        host_segments: How many leading labels may be stripped from the host
            when building suffix candidates in multi-network mode.
        honor_www: Expand every suffix candidate with its www / no-www twin.
    """

    model_config = ConfigDict(frozen=True)

    host_segments: int = Field(default=2, ge=1)
    honor_www: bool = Field(default=True)


class AliasParameters(BaseModel):
    """Validated input of an add / edit alias form."""

    model_config = ConfigDict(frozen=True)

    domain: str
    owner_id: int = Field(..., ge=1)
    active: bool = False
    scope: MappingScope = MappingScope.SITE


class MappingEvent(BaseModel):
    """Change notification emitted by the mapping stores.

    Attributes:
        type: What happened.
        scope: Site or network mapping.
        mapping: Snapshot after the change (before it, for deletions).
        previous: Snapshot before an update.
        alias: Alias created for the old canonical domain by ``make_primary``.
        timestamp: When the change was committed (UTC).
    """

    model_config = ConfigDict(frozen=True)

    type: MappingEventType
    scope: MappingScope
    mapping: Mapping | NetworkMapping
    previous: Mapping | NetworkMapping | None = None
    alias: Mapping | NetworkMapping | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


__all__ = [
    "AliasParameters",
    "BulkAction",
    "LoginToken",
    "Mapping",
    "MappingEvent",
    "MappingEventType",
    "MappingScope",
    "Network",
    "NetworkMapping",
    "ResolutionPolicy",
    "Tenant",
]
