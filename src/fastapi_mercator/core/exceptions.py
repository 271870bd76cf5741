"""Custom exceptions for fastapi-mercator.

All exceptions derive from ``MercatorError`` so callers can catch the entire
family with a single ``except MercatorError`` clause while still handling
individual sub-types where the distinction matters.

Exception hierarchy::

    MercatorError
    ├── InvalidIdError
    ├── InvalidDomainError
    ├── DomainExistsError
    ├── MappingNotFoundError
    ├── StorageWriteError
    │   ├── InsertFailedError
    │   ├── UpdateFailedError
    │   └── DeleteFailedError
    ├── BackendUnavailableError
    ├── ConfigurationError
    └── SSOError
        ├── NotAuthenticatedError
        ├── NonceInvalidError
        │   └── NonceExpiredError
        ├── TokenNotFoundError
        ├── TokenConsumedError
        ├── TokenExpiredError
        ├── TokenMismatchError
        └── TokenIssueError

Store errors are meant for operators and admin tooling and carry readable
messages.  ``SSOError`` subclasses additionally carry the bare HTTP status
the login handshake answers with; their messages are never sent to clients.
"""

from __future__ import annotations

from typing import Any


class MercatorError(Exception):
    """Base exception for all fastapi-mercator errors.

    Attributes:
        message: Human-readable description of the error.
        details: Supplementary key-value context.  Safe to log; must never
            contain secrets, nonces, or login token keys.
    """

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.details: dict[str, Any] = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        """Return ``human-readable`` string."""
        if self.details:
            return f"{self.message} | details={self.details}"
        return self.message

    def __repr__(self) -> str:
        """Return ``repr`` string for debugging purpose."""
        return f"{type(self).__name__}(message={self.message!r})"


class InvalidIdError(MercatorError):
    """Raised when a tenant, network or mapping identifier is malformed.

    Attributes:
        value: The rejected identifier.
        kind: What the identifier was supposed to name (``"tenant"``,
            ``"network"``, ``"mapping"``).
    """

    def __init__(
        self,
        value: Any,
        kind: str = "mapping",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(f"Invalid {kind} id: {value!r}", details)
        self.value = value
        self.kind = kind


class InvalidDomainError(MercatorError):
    """Raised when a domain fails the ``[a-z0-9-.]`` character-class check."""

    def __init__(self, domain: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(f"Invalid domain: {domain!r}", details)
        self.domain = domain


class DomainExistsError(MercatorError):
    """Raised when a domain is already claimed by a different owner.

    Also raised when the backing store's unique constraint rejects a write,
    which is how a lost check-then-insert race surfaces.

    Attributes:
        domain: The contested domain.
        owner_id: ID of the tenant / network that holds it, when known.
    """

    def __init__(
        self,
        domain: str,
        owner_id: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        message = f"Domain already mapped: {domain!r}"
        if owner_id is not None:
            message += f" (owner: {owner_id})"
        super().__init__(message, details)
        self.domain = domain
        self.owner_id = owner_id


class MappingNotFoundError(MercatorError):
    """Raised when a mapping (or the tenant / network it points at) does not exist."""

    def __init__(
        self,
        identifier: Any = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        message = (
            f"Mapping not found: {identifier!r}" if identifier is not None else "Mapping not found"
        )
        super().__init__(message, details)
        self.identifier = identifier


class StorageWriteError(MercatorError):
    """Base class for backing-store write failures.

    Attributes:
        operation: ``"insert"``, ``"update"`` or ``"delete"``.
        reason: Short operator-readable cause.
    """

    operation = "write"

    def __init__(self, reason: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(f"Could not {self.operation} mapping: {reason}", details)
        self.reason = reason


class InsertFailedError(StorageWriteError):
    """Raised when a new mapping row could not be written."""

    operation = "insert"


class UpdateFailedError(StorageWriteError):
    """Raised when an existing mapping row could not be updated."""

    operation = "update"


class DeleteFailedError(StorageWriteError):
    """Raised when a mapping row could not be removed."""

    operation = "delete"


class BackendUnavailableError(MercatorError):
    """Raised by a backend when its table does not exist yet.

    Stores react by provisioning the schema once and retrying.

    Attributes:
        table: Name of the missing table.
    """

    def __init__(self, table: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(f"Backing table unavailable: {table!r}", details)
        self.table = table


class ConfigurationError(MercatorError):
    """Raised when the library is wired with an invalid or inconsistent value.

    Attributes:
        parameter: The name of the offending setting or argument.
        reason: Why the current value is invalid.
    """

    def __init__(
        self,
        parameter: str,
        reason: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(f"Invalid configuration for {parameter!r}: {reason}", details)
        self.parameter = parameter
        self.reason = reason


##############
# SSO errors #
##############


class SSOError(MercatorError):
    """Base class for failures of the cross-domain login handshake.

    Attributes:
        status_code: Bare HTTP status the handshake terminates with.
    """

    status_code = 400
    default_message = "Login handshake rejected"

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message or self.default_message, details)


class NotAuthenticatedError(SSOError):
    """The request leg was reached without an authenticated session."""

    status_code = 401
    default_message = "Viewer is not logged in"


class NonceInvalidError(SSOError):
    """The supplied nonce matches neither the current nor the previous tick."""

    status_code = 403
    default_message = "Invalid nonce"


class NonceExpiredError(NonceInvalidError):
    """The supplied nonce was valid once but its tick window has passed."""

    default_message = "Nonce expired"


class TokenNotFoundError(SSOError):
    """No user holds a login token under the supplied key."""

    status_code = 404
    default_message = "Login token not found"


class TokenConsumedError(SSOError):
    """The login token was already used by an earlier response leg."""

    status_code = 404
    default_message = "Login token already consumed"


class TokenExpiredError(SSOError):
    """The login token outlived its configured duration."""

    status_code = 403
    default_message = "Login token expired"


class TokenMismatchError(SSOError):
    """The login token was issued for a different site."""

    status_code = 400
    default_message = "Login token issued for another site"


class TokenIssueError(SSOError):
    """A login token could not be persisted on the request leg."""

    status_code = 500
    default_message = "Could not issue login token"


__all__ = [
    "BackendUnavailableError",
    "ConfigurationError",
    "DeleteFailedError",
    "DomainExistsError",
    "InsertFailedError",
    "InvalidDomainError",
    "InvalidIdError",
    "MappingNotFoundError",
    "MercatorError",
    "NonceExpiredError",
    "NonceInvalidError",
    "NotAuthenticatedError",
    "SSOError",
    "StorageWriteError",
    "TokenConsumedError",
    "TokenExpiredError",
    "TokenIssueError",
    "TokenMismatchError",
    "TokenNotFoundError",
    "UpdateFailedError",
]
