"""Single-network resolution: exact host or its www twin."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi_mercator.core.exceptions import MercatorError
from fastapi_mercator.resolution.base import BaseDomainResolver, Resolution
from fastapi_mercator.utils.domains import www_variants

if TYPE_CHECKING:
    from fastapi_mercator.core.types import ResolutionPolicy
    from fastapi_mercator.mapping import MappingStore
    from fastapi_mercator.platform import TenantPlatform

logger = logging.getLogger(__name__)


class SiteDomainResolver(BaseDomainResolver):
    """Resolve a host through site-level mappings.

    Exactly two candidates are tried: the host as given, then its
    complementary www / no-www form.  The stored mapping with the longest
    domain wins; an inactive one means "no opinion".

    Args:
        store: Site mapping store.
        platform: Tenant directory.
        policy: Accepted for symmetry with the network resolver.
    """

    def __init__(
        self,
        store: MappingStore,
        platform: TenantPlatform,
        policy: ResolutionPolicy | None = None,
    ) -> None:
        super().__init__(platform, policy)
        self._store = store

    def candidates(self, host: str) -> list[str]:
        return www_variants(host)

    async def resolve(self, host: str, path: str = "/") -> Resolution | None:
        try:
            mapping = await self._store.get_by_domain(self.candidates(host))
        except MercatorError as exc:
            logger.warning("Site mapping lookup failed for host=%s: %s", host, exc)
            return None

        if mapping is None:
            logger.debug("No site mapping for host=%s", host)
            return None
        if not mapping.active:
            logger.debug("Site mapping id=%s for host=%s is inactive", mapping.id, host)
            return None

        tenant = await self._platform.get_tenant(mapping.tenant_id)
        if tenant is None:
            logger.warning("Site mapping id=%s points at missing tenant %s", mapping.id, mapping.tenant_id)
            return None
        network = await self._platform.get_network(tenant.network_id)

        logger.debug("Resolved host=%s to tenant=%s via mapping id=%s", host, tenant.id, mapping.id)
        return Resolution(tenant=tenant, network=network, mapping=mapping, lookup_host=tenant.domain)


__all__ = ["SiteDomainResolver"]
