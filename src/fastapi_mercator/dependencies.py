"""FastAPI dependencies exposing the per-request mapping context.

Usage::

    from fastapi_mercator.dependencies import ContextDep, MappedTenantDep

    @app.get("/")
    async def home(ctx: ContextDep):
        return {"host": ctx.host, "mapped": ctx.is_mapped}

    @app.get("/about")
    async def about(tenant: MappedTenantDep):
        return {"site": tenant.id}

Both dependencies require :class:`~fastapi_mercator.middleware.DomainMappingMiddleware`.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from fastapi_mercator.core.context import STATE_KEY, RequestContext
from fastapi_mercator.core.types import Tenant


def get_request_context(request: Request) -> RequestContext:
    """Return the context stored by the middleware.

    Raises:
        RuntimeError: When the middleware is not installed.
    """
    ctx = getattr(request.state, STATE_KEY, None)
    if ctx is None:
        raise RuntimeError(
            "No mapping context on this request. "
            "Add DomainMappingMiddleware to the application."
        )
    return ctx


def get_mapped_tenant(ctx: Annotated[RequestContext, Depends(get_request_context)]) -> Tenant:
    """Return the tenant of the request.

    Raises:
        HTTPException: ``404`` when neither an alias nor the platform resolved one.
    """
    if ctx.tenant is None:
        raise HTTPException(status_code=404, detail="Site not found")
    return ctx.tenant


ContextDep = Annotated[RequestContext, Depends(get_request_context)]
MappedTenantDep = Annotated[Tenant, Depends(get_mapped_tenant)]


__all__ = [
    "ContextDep",
    "MappedTenantDep",
    "get_mapped_tenant",
    "get_request_context",
]
