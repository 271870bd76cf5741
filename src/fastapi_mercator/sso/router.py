"""FastAPI router serving the login handshake endpoints.

::

    app.include_router(create_sso_router(manager, session=MySessions()))

``GET  {sso_bootstrap_path}``  bootstrap script (``application/javascript``)
``GET|POST {sso_login_path}``  request leg on the main domain, response leg elsewhere

Responses are either a ``302`` redirect or a bare status code with an empty
body.  Requires :class:`~fastapi_mercator.middleware.DomainMappingMiddleware`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse, Response

from fastapi_mercator.core.exceptions import ConfigurationError
from fastapi_mercator.dependencies import get_request_context

if TYPE_CHECKING:
    from fastapi_mercator.core.context import RequestContext
    from fastapi_mercator.manager import MercatorManager
    from fastapi_mercator.sso.protocol import SSOResult
    from fastapi_mercator.sso.session import SessionBackend

logger = logging.getLogger(__name__)

_NO_STORE = {"cache-control": "no-store, private"}


def create_sso_router(manager: MercatorManager, session: SessionBackend) -> APIRouter:
    """Build the router for *manager*'s handshake.

    Raises:
        ConfigurationError: When SSO is disabled in the configuration.
    """
    sso = manager.sso
    if sso is None:
        raise ConfigurationError(parameter="sso_enabled", reason="SSO router requires sso_enabled=True")

    router = APIRouter(tags=["mercator-sso"])

    async def _context(request: Request) -> RequestContext:
        ctx = get_request_context(request)
        user_id = await session.get_user_id(request)
        return ctx.model_copy(update={"user_id": user_id})

    async def _respond(request: Request, ctx: RequestContext, result: SSOResult) -> Response:
        if result.location is not None:
            response = RedirectResponse(result.location, status_code=result.status_code, headers=_NO_STORE)
            if result.authenticate_user is not None:
                await session.login(
                    request, response, result.authenticate_user, cookie_domain=sso.cookie_domain(ctx)
                )
            return response
        return Response(
            content=result.body,
            status_code=result.status_code,
            media_type=result.media_type,
            headers=_NO_STORE,
        )

    @router.get(sso.bootstrap_path, include_in_schema=False)
    async def sso_bootstrap(request: Request) -> Response:
        ctx = await _context(request)
        result = await sso.bootstrap_script(ctx, dict(request.query_params))
        return await _respond(request, ctx, result)

    @router.api_route(sso.login_path, methods=["GET", "POST"], include_in_schema=False)
    async def sso_login(request: Request) -> Response:
        ctx = await _context(request)
        result = await sso.handle_login(ctx, dict(request.query_params))
        return await _respond(request, ctx, result)

    logger.debug("SSO router ready bootstrap=%s login=%s", sso.bootstrap_path, sso.login_path)
    return router


__all__ = ["create_sso_router"]
