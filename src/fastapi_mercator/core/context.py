"""Explicit per-request mapping context.

The middleware resolves the request host once and stores a
:class:`RequestContext` on ``request.state``.  The URL rewriter, the login
handshake and route dependencies all receive that object explicitly; nothing
in the library reads ambient per-request state.

Usage in route handlers::

    @app.get("/")
    async def home(ctx: RequestContext = Depends(get_request_context)):
        if ctx.mapping is not None:
            ...
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from fastapi_mercator.core.types import Mapping, Network, NetworkMapping, Tenant

#: Key under which the middleware stores the context in ``scope["state"]``.
STATE_KEY = "mercator"

_DEFAULT_PORTS = {"http": 80, "https": 443}


class RequestContext(BaseModel):
    """Everything the library learned about the current request.

    Attributes:
        host: Normalised request host (lowercase, no port).
        port: Explicit port from the ``Host`` header, if any.
        scheme: ``"http"`` or ``"https"``.
        path: Request path.
        query_string: Raw query string without the leading ``?``.
        tenant: Tenant selected for the request, when one was resolved.
        network: Network of the request, when known.
        mapping: Active site-level mapping that matched the host.
        network_mapping: Active network-level mapping that matched the host.
        user_id: Authenticated viewer, filled in by the session layer.
        metadata: Free-form per-request values for application use.
    """

    model_config = ConfigDict(validate_assignment=True)

    host: str
    port: int | None = None
    scheme: str = "http"
    path: str = "/"
    query_string: str = ""
    tenant: Tenant | None = None
    network: Network | None = None
    mapping: Mapping | None = None
    network_mapping: NetworkMapping | None = None
    user_id: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def request_uri(self) -> str:
        """Path plus query string, as sent by the client."""
        if self.query_string:
            return f"{self.path}?{self.query_string}"
        return self.path

    @property
    def authority(self) -> str:
        """Host plus ``:port`` unless the port is the scheme's default."""
        if self.port is None or self.port == _DEFAULT_PORTS.get(self.scheme):
            return self.host
        return f"{self.host}:{self.port}"

    @property
    def current_url(self) -> str:
        """Absolute URL of the current request."""
        return f"{self.scheme}://{self.authority}{self.request_uri}"

    @property
    def is_mapped(self) -> bool:
        """``True`` when the host matched a site or network alias."""
        return self.mapping is not None or self.network_mapping is not None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


__all__ = ["STATE_KEY", "RequestContext"]
