"""Multi-network resolution by suffix matching.

For ``blog.brand.com`` with a network alias ``brand.com`` pointing at the
network whose canonical domain is ``network.org``::

    candidates   blog.brand.com, www.blog.brand.com, brand.com, www.brand.com
    match        brand.com (active, longest)
    lookup host  blog.network.org
    tenant       platform.resolve_tenant_by_host("blog.network.org", path)

When the network matches but no site lives at the derived host, the
resolution still carries the network so the platform can render its
"site not found" page under the right network.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi_mercator.core.exceptions import MercatorError
from fastapi_mercator.resolution.base import BaseDomainResolver, Resolution
from fastapi_mercator.utils.domains import host_suffix_candidates, substitute_suffix, www_variants

if TYPE_CHECKING:
    from fastapi_mercator.core.types import Network, ResolutionPolicy
    from fastapi_mercator.network_mapping import NetworkMappingStore
    from fastapi_mercator.platform import TenantPlatform

logger = logging.getLogger(__name__)


class NetworkDomainResolver(BaseDomainResolver):
    """Resolve a host through active network-level mappings."""

    def __init__(
        self,
        store: NetworkMappingStore,
        platform: TenantPlatform,
        policy: ResolutionPolicy | None = None,
    ) -> None:
        super().__init__(platform, policy)
        self._store = store

    def candidates(self, host: str) -> list[str]:
        return host_suffix_candidates(host, self._policy.host_segments, self._policy.honor_www)

    async def resolve(self, host: str, path: str = "/") -> Resolution | None:
        candidates = self.candidates(host)
        try:
            mapping = await self._store.get_active_by_domain(candidates)
        except MercatorError as exc:
            logger.warning("Network mapping lookup failed for host=%s: %s", host, exc)
            return None
        if mapping is None:
            logger.debug("No active network mapping for host=%s candidates=%s", host, candidates)
            return None

        network = await self._platform.get_network(mapping.network_id)
        if network is None:
            logger.warning(
                "Network mapping id=%s points at missing network %s", mapping.id, mapping.network_id
            )
            return None

        lookup = substitute_suffix(host, mapping.domain, network.domain)
        tenant = await self._platform.resolve_tenant_by_host(lookup, path)
        logger.debug(
            "Resolved host=%s via network mapping %s to lookup=%s tenant=%s",
            host,
            mapping.domain,
            lookup,
            tenant.id if tenant else None,
        )
        return Resolution(tenant=tenant, network=network, network_mapping=mapping, lookup_host=lookup)

    async def resolve_network(self, host: str) -> Network | None:
        """Return the network *host* (or its www twin) is an active alias of."""
        try:
            mapping = await self._store.get_active_by_domain(www_variants(host))
        except MercatorError as exc:
            logger.warning("Network mapping lookup failed for host=%s: %s", host, exc)
            return None
        if mapping is None:
            return None
        return await self._platform.get_network(mapping.network_id)


__all__ = ["NetworkDomainResolver"]
