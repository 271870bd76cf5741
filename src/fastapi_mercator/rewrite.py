"""Outbound URL rewriting for mapped requests.

Links generated by the application point at the canonical domain.  While a
request is served through an alias those links are rewritten onto the alias
so the visitor stays on the domain they came in on::

    ctx.tenant.domain  = "t.example.com"
    ctx.mapping.domain = "t-alias.com"

    rewriter.rewrite("https://t.example.com/about?x=1", ctx)
    # → "https://t-alias.com/about?x=1"

In multi-network mode the network's canonical suffix is replaced instead,
so every site of the network follows the alias::

    ctx.network.domain         = "network.org"
    ctx.network_mapping.domain = "www.brand.com"

    rewriter.rewrite("https://blog.network.org/", ctx)
    # → "https://blog.brand.com/"
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import SplitResult, urlsplit, urlunsplit

from fastapi_mercator.utils.domains import strip_www

if TYPE_CHECKING:
    from fastapi_mercator.core.context import RequestContext

logger = logging.getLogger(__name__)


def _with_host(parts: SplitResult, host: str) -> str:
    netloc = host
    if parts.port is not None:
        netloc = f"{host}:{parts.port}"
    if "@" in parts.netloc:
        netloc = parts.netloc.rsplit("@", 1)[0] + "@" + netloc
    return urlunsplit(parts._replace(netloc=netloc))


class UrlRewriter:
    """Rewrite canonical URLs onto the alias of the current request.

    Args:
        multinetwork: Also rewrite through network-level aliases.
    """

    def __init__(self, multinetwork: bool = False) -> None:
        self._multinetwork = multinetwork

    def rewrite(
        self,
        url: str,
        ctx: RequestContext,
        site_id: int | None = None,
        network_id: int | None = None,
    ) -> str:
        """Return *url* with its host swapped for the active alias, or unchanged.

        Args:
            url: Absolute URL built for the canonical domain.
            ctx: Context of the current request.
            site_id: Site the URL was generated for; must match the mapped site.
            network_id: Network the URL was generated for; must match the
                mapped network.
        """
        parts = urlsplit(url)
        host = (parts.hostname or "").lower()
        if not host:
            return url

        rewritten = self._rewrite_site(parts, host, ctx, site_id)
        if rewritten is None and self._multinetwork:
            rewritten = self._rewrite_network(parts, host, ctx, network_id)
        return url if rewritten is None else rewritten

    def _rewrite_site(
        self,
        parts: SplitResult,
        host: str,
        ctx: RequestContext,
        site_id: int | None,
    ) -> str | None:
        mapping, tenant = ctx.mapping, ctx.tenant
        if mapping is None or not mapping.active or tenant is None:
            return None
        if site_id is not None and site_id != mapping.tenant_id:
            return None
        if host != tenant.domain:
            return None
        return _with_host(parts, mapping.domain)

    def _rewrite_network(
        self,
        parts: SplitResult,
        host: str,
        ctx: RequestContext,
        network_id: int | None,
    ) -> str | None:
        mapping, network = ctx.network_mapping, ctx.network
        if mapping is None or not mapping.active or network is None:
            return None
        if network_id is not None and network_id != mapping.network_id:
            return None

        canonical = strip_www(network.domain)
        alias = strip_www(mapping.domain)
        bare = strip_www(host)
        if bare == canonical:
            return _with_host(parts, alias)
        if host.endswith("." + canonical):
            return _with_host(parts, host[: -len(canonical)] + alias)
        return None


__all__ = ["UrlRewriter"]
