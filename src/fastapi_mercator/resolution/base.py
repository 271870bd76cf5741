"""Abstract base class for host resolution strategies.

A resolver turns a request host into a :class:`Resolution`, or ``None`` when
it has no opinion and the platform's default tenant resolution should apply.
Resolvers never raise for an unknown or inactive host; backing-store failures
are logged and also answered with ``None``.

Extension pattern::

    class ParkedDomainResolver(BaseDomainResolver):
        async def resolve(self, host: str, path: str = "/") -> Resolution | None:
            if host not in self._parked:
                return None
            tenant = await self._platform.get_tenant(self._parked[host])
            return Resolution(tenant=tenant, lookup_host=tenant.domain)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from fastapi_mercator.core.types import Mapping, Network, NetworkMapping, ResolutionPolicy, Tenant

if TYPE_CHECKING:
    from fastapi_mercator.platform import TenantPlatform

logger = logging.getLogger(__name__)


class Resolution(BaseModel):
    """Outcome of a successful host lookup.

    Attributes:
        tenant: Tenant serving the request; ``None`` when only the network
            could be determined.
        network: Network of the request, when known.
        mapping: Site-level alias that matched.
        network_mapping: Network-level alias that matched.
        lookup_host: Canonical host handed to the platform.
    """

    model_config = ConfigDict(frozen=True)

    tenant: Tenant | None = None
    network: Network | None = None
    mapping: Mapping | None = None
    network_mapping: NetworkMapping | None = None
    lookup_host: str | None = None


class BaseDomainResolver(ABC):
    """Abstract base class for domain resolvers.

    Args:
        platform: Tenant directory used to load owners of matched aliases.
        policy: Candidate generation knobs; library defaults when ``None``.
    """

    def __init__(self, platform: TenantPlatform, policy: ResolutionPolicy | None = None) -> None:
        self._platform = platform
        self._policy = policy or ResolutionPolicy()
        logger.debug("Initialised %s policy=%s", type(self).__name__, self._policy)

    @property
    def policy(self) -> ResolutionPolicy:
        return self._policy

    @abstractmethod
    def candidates(self, host: str) -> list[str]:
        """Return the ordered lookup candidates for *host*."""

    @abstractmethod
    async def resolve(self, host: str, path: str = "/") -> Resolution | None:
        """Resolve normalised *host* (and request *path*).

        Returns:
            A :class:`Resolution`, or ``None`` for "no opinion".
        """


__all__ = ["BaseDomainResolver", "Resolution"]
