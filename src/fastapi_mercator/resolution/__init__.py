"""Host resolution strategies."""

from fastapi_mercator.resolution.base import BaseDomainResolver, Resolution
from fastapi_mercator.resolution.network import NetworkDomainResolver
from fastapi_mercator.resolution.site import SiteDomainResolver

__all__ = [
    "BaseDomainResolver",
    "NetworkDomainResolver",
    "Resolution",
    "SiteDomainResolver",
]
