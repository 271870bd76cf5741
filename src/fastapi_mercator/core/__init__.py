"""Core abstractions — types, config, request context, and exceptions."""

from fastapi_mercator.core.config import MercatorConfig
from fastapi_mercator.core.context import STATE_KEY, RequestContext
from fastapi_mercator.core.exceptions import (
    ConfigurationError,
    DomainExistsError,
    InvalidDomainError,
    InvalidIdError,
    MappingNotFoundError,
    MercatorError,
    SSOError,
)
from fastapi_mercator.core.types import (
    Mapping,
    MappingScope,
    Network,
    NetworkMapping,
    ResolutionPolicy,
    Tenant,
)

__all__ = [
    # Config
    "MercatorConfig",
    # Context
    "STATE_KEY",
    "RequestContext",
    # Exceptions
    "MercatorError",
    "InvalidIdError",
    "InvalidDomainError",
    "DomainExistsError",
    "MappingNotFoundError",
    "ConfigurationError",
    "SSOError",
    # Types
    "Mapping",
    "MappingScope",
    "Network",
    "NetworkMapping",
    "ResolutionPolicy",
    "Tenant",
]
