"""Raw ASGI domain mapping middleware.

Why raw ASGI instead of ``BaseHTTPMiddleware``
----------------------------------------------
``BaseHTTPMiddleware`` buffers the whole response body, which breaks
Server-Sent Events and streaming endpoints on mapped domains.  This
implementation uses the ASGI 3 callable directly and adds no buffering.

ASGI lifecycle
--------------
::

    Client                        Middleware                      App
      │                               │                            │
      │── HTTP request ──────────────►│                            │
      │                           read Host (keep the port)        │
      │                           manager.build_context()          │
      │                           scope["state"]["mercator"] = ctx │
      │                               ├── await app() ────────────►│
      │◄── response ──────────────────┼◄── response ───────────────│

Resolution never blocks a request: an unknown host, an inactive alias or a
failing backing store all leave the platform's default behaviour in charge.

Excluded paths
--------------
::

    app.add_middleware(
        DomainMappingMiddleware,
        manager=manager,
        excluded_paths=["/health", "/metrics"],
    )
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastapi_mercator.core.context import STATE_KEY, RequestContext
from fastapi_mercator.core.exceptions import MercatorError
from fastapi_mercator.utils.domains import host_port, normalize_domain

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Receive, Scope, Send

    from fastapi_mercator.manager import MercatorManager

logger = logging.getLogger(__name__)


def _header(scope: Scope, name: bytes) -> str | None:
    for key, value in scope.get("headers") or []:
        if key.lower() == name:
            return value.decode("latin-1")
    return None


class DomainMappingMiddleware:
    """Resolve the request host and attach a :class:`RequestContext`.

    Args:
        app: The downstream ASGI application.
        manager: The configured :class:`~fastapi_mercator.manager.MercatorManager`.
        excluded_paths: URL path prefixes that skip resolution.
    """

    def __init__(
        self,
        app: ASGIApp,
        manager: MercatorManager,
        excluded_paths: list[str] | None = None,
    ) -> None:
        self._app = app
        self._manager = manager
        self._excluded: list[str] = excluded_paths or []

    def _is_excluded(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self._excluded)

    def _host(self, scope: Scope) -> str:
        host = None
        if self._manager.config.trust_forwarded_host:
            forwarded = _header(scope, b"x-forwarded-host")
            if forwarded:
                host = forwarded.split(",")[0].strip()
        if not host:
            host = _header(scope, b"host")
        if not host and scope.get("server"):
            host = scope["server"][0]
        return host or ""

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Handle ``http`` and ``websocket`` scopes; pass everything else through."""
        if scope["type"] not in ("http", "websocket"):
            await self._app(scope, receive, send)
            return

        path: str = scope.get("path", "/")
        if self._is_excluded(path):
            await self._app(scope, receive, send)
            return

        ctx = await self._context(scope, path)

        if "state" not in scope:
            scope["state"] = {}
        state: Any = scope["state"]
        if isinstance(state, dict):
            state[STATE_KEY] = ctx
        else:
            setattr(state, STATE_KEY, ctx)

        await self._app(scope, receive, send)

    async def _context(self, scope: Scope, path: str) -> RequestContext:
        raw = self._host(scope)
        host = normalize_domain(raw)
        scheme = "https" if scope.get("scheme") in ("https", "wss") else "http"
        query = (scope.get("query_string") or b"").decode("latin-1")
        bare = RequestContext(host=host, port=host_port(raw), scheme=scheme, path=path, query_string=query)
        if not host:
            return bare
        try:
            return await self._manager.build_context(raw, scheme=scheme, path=path, query_string=query)
        except MercatorError as exc:
            logger.warning("Domain resolution failed for host=%s: %s", host, exc)
            return bare


__all__ = ["DomainMappingMiddleware"]
