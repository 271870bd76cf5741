"""The host platform as seen by fastapi-mercator.

Mercator does not own tenants or networks; the application does.
:class:`TenantPlatform` is the narrow interface the library calls into: look
up tenants and networks, resolve a canonical ``host + path`` to a tenant,
rewrite a tenant's canonical domain (for ``make_primary``), and build
absolute URLs for a tenant.

Applications implement it over their own models.  :class:`InMemoryTenantPlatform`
is a dictionary-backed implementation for tests, demos and small deployments
whose tenant list is static.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
import logging
from typing import TYPE_CHECKING

from fastapi_mercator.core.exceptions import MappingNotFoundError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from fastapi_mercator.core.types import Network, Tenant

logger = logging.getLogger(__name__)


class TenantPlatform(ABC):
    """Abstract tenant / network directory."""

    @abstractmethod
    async def get_tenant(self, tenant_id: int) -> Tenant | None:
        """Return the tenant with *tenant_id*, or ``None``."""

    @abstractmethod
    async def get_network(self, network_id: int) -> Network | None:
        """Return the network with *network_id*, or ``None``."""

    @abstractmethod
    async def resolve_tenant_by_host(self, host: str, path: str = "/") -> Tenant | None:
        """Return the tenant served at canonical *host* + *path*, or ``None``.

        This is the platform's default resolution, used after a mapping has
        translated an alias back to the canonical domain.
        """

    @abstractmethod
    async def update_tenant_domain(self, tenant_id: int, domain: str) -> Tenant:
        """Make *domain* the canonical domain of *tenant_id*.

        Raises:
            MappingNotFoundError: When the tenant does not exist.
        """

    @abstractmethod
    async def update_network_domain(self, network_id: int, domain: str) -> Network:
        """Make *domain* the canonical domain of *network_id*."""

    @abstractmethod
    async def get_main_network(self) -> Network | None:
        """Return the primary network of the installation."""

    async def get_main_site(self, network_id: int | None = None) -> Tenant | None:
        """Return the site living at the network's own domain and path.

        Args:
            network_id: Network to inspect; the main network when ``None``.
        """
        network = (
            await self.get_main_network() if network_id is None else await self.get_network(network_id)
        )
        if network is None:
            return None
        return await self.resolve_tenant_by_host(network.domain, network.path)

    def tenant_url(self, tenant: Tenant, path: str = "/", scheme: str = "https") -> str:
        """Build an absolute URL for *path* on *tenant*'s canonical domain."""
        base = tenant.path.rstrip("/")
        if not path.startswith("/"):
            path = "/" + path
        return f"{scheme}://{tenant.domain}{base}{path}"


class InMemoryTenantPlatform(TenantPlatform):
    """Dictionary-backed platform.

    Example::

        platform = InMemoryTenantPlatform(
            networks=[Network(id=1, domain="example.com")],
            tenants=[
                Tenant(id=1, domain="example.com"),
                Tenant(id=2, domain="t.example.com"),
            ],
        )
    """

    def __init__(
        self,
        tenants: Iterable[Tenant] = (),
        networks: Iterable[Network] = (),
        main_network_id: int | None = None,
    ) -> None:
        self._tenants: dict[int, Tenant] = {t.id: t for t in tenants}
        self._networks: dict[int, Network] = {n.id: n for n in networks}
        self._main_network_id = main_network_id
        self._lock = asyncio.Lock()

    ###########
    # Seeding #
    ###########

    def add_tenant(self, tenant: Tenant) -> Tenant:
        self._tenants[tenant.id] = tenant
        return tenant

    def add_network(self, network: Network) -> Network:
        self._networks[network.id] = network
        return network

    def remove_tenant(self, tenant_id: int) -> Tenant | None:
        return self._tenants.pop(tenant_id, None)

    def remove_network(self, network_id: int) -> Network | None:
        return self._networks.pop(network_id, None)

    ###########
    # Lookups #
    ###########

    async def get_tenant(self, tenant_id: int) -> Tenant | None:
        return self._tenants.get(tenant_id)

    async def get_network(self, network_id: int) -> Network | None:
        return self._networks.get(network_id)

    async def resolve_tenant_by_host(self, host: str, path: str = "/") -> Tenant | None:
        """Match *host* exactly and pick the longest tenant path prefixing *path*."""
        best: Tenant | None = None
        for tenant in self._tenants.values():
            if tenant.domain != host:
                continue
            prefix = tenant.path.rstrip("/") + "/"
            if not (path + "/").startswith(prefix):
                continue
            if best is None or len(tenant.path) > len(best.path):
                best = tenant
        return best

    async def get_main_network(self) -> Network | None:
        if self._main_network_id is not None:
            return self._networks.get(self._main_network_id)
        if not self._networks:
            return None
        return self._networks[min(self._networks)]

    ##########
    # Writes #
    ##########

    async def update_tenant_domain(self, tenant_id: int, domain: str) -> Tenant:
        async with self._lock:
            tenant = self._tenants.get(tenant_id)
            if tenant is None:
                raise MappingNotFoundError(tenant_id, {"kind": "tenant"})
            updated = tenant.model_copy(update={"domain": domain})
            self._tenants[tenant_id] = updated
        logger.info("Tenant %s canonical domain %s -> %s", tenant_id, tenant.domain, domain)
        return updated

    async def update_network_domain(self, network_id: int, domain: str) -> Network:
        async with self._lock:
            network = self._networks.get(network_id)
            if network is None:
                raise MappingNotFoundError(network_id, {"kind": "network"})
            updated = network.model_copy(update={"domain": domain})
            self._networks[network_id] = updated
        logger.info("Network %s canonical domain %s -> %s", network_id, network.domain, domain)
        return updated


__all__ = ["InMemoryTenantPlatform", "TenantPlatform"]
