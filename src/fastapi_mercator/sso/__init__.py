"""Cross-domain single sign-on."""

from fastapi_mercator.sso.nonce import SharedNonce
from fastapi_mercator.sso.protocol import SingleSignOn, SSOResult
from fastapi_mercator.sso.session import SessionBackend
from fastapi_mercator.sso.tokens import (
    InMemoryLoginTokenStore,
    LoginTokenStore,
    SQLAlchemyLoginTokenStore,
)

__all__ = [
    "InMemoryLoginTokenStore",
    "LoginTokenStore",
    "SQLAlchemyLoginTokenStore",
    "SSOResult",
    "SessionBackend",
    "SharedNonce",
    "SingleSignOn",
]
