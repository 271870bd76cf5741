"""ASGI middleware."""

from fastapi_mercator.middleware.mapping import DomainMappingMiddleware

__all__ = ["DomainMappingMiddleware"]
