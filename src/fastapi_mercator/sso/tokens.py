"""One-time login token stores.

A token is attached to a user under ``mercator_sso_<key>`` where ``key`` is a
keyed hash of the token payload.  The response leg finds the user holding the
key, reads the payload and consumes it.  Consumption is a delete whose
affected-row count decides the winner when two requests race for one key.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError

from fastapi_mercator.core.exceptions import BackendUnavailableError, InsertFailedError
from fastapi_mercator.core.types import LoginToken
from fastapi_mercator.storage.database import LoginTokenModel

if TYPE_CHECKING:
    from sqlalchemy import Table

    from fastapi_mercator.storage.backend import SchemaState
    from fastapi_mercator.storage.database import Database

logger = logging.getLogger(__name__)

KEY_PREFIX = "mercator_sso_"


def meta_key(key: str) -> str:
    """Return the user meta key storing the token with *key*."""
    return KEY_PREFIX + key


class LoginTokenStore(ABC):
    """Per-user storage of pending login tokens."""

    @abstractmethod
    async def add(self, user_id: int, key: str, token: LoginToken) -> None:
        """Attach *token* to *user_id* under *key*.

        Raises:
            InsertFailedError: When the token could not be stored.
        """

    @abstractmethod
    async def find_users(self, key: str) -> list[int]:
        """Return the ids of users holding a token under *key*."""

    @abstractmethod
    async def get(self, user_id: int, key: str) -> LoginToken | None:
        """Return the payload, or ``None`` once consumed."""

    @abstractmethod
    async def consume(self, user_id: int, key: str) -> int:
        """Delete the token and return how many records went (``0`` or ``1``)."""

    @abstractmethod
    async def purge_expired(self, before: int) -> int:
        """Delete every token issued before Unix time *before*."""


class InMemoryLoginTokenStore(LoginTokenStore):
    """Dictionary-backed token store for tests and single-process apps."""

    def __init__(self) -> None:
        self._tokens: dict[tuple[int, str], LoginToken] = {}
        self._lock = asyncio.Lock()

    async def add(self, user_id: int, key: str, token: LoginToken) -> None:
        async with self._lock:
            self._tokens[(user_id, meta_key(key))] = token

    async def find_users(self, key: str) -> list[int]:
        wanted = meta_key(key)
        return sorted(user for user, k in self._tokens if k == wanted)

    async def get(self, user_id: int, key: str) -> LoginToken | None:
        return self._tokens.get((user_id, meta_key(key)))

    async def consume(self, user_id: int, key: str) -> int:
        async with self._lock:
            return 1 if self._tokens.pop((user_id, meta_key(key)), None) is not None else 0

    async def purge_expired(self, before: int) -> int:
        async with self._lock:
            stale = [k for k, token in self._tokens.items() if token.time < before]
            for k in stale:
                del self._tokens[k]
        return len(stale)


class SQLAlchemyLoginTokenStore(LoginTokenStore):
    """``sso_tokens`` table accessed through SQLAlchemy.

    The table is provisioned on the first write when the application skipped
    :meth:`Database.initialize`; until then reads find no tokens.  A key is
    a hash of the whole payload, so inserting a key the user already holds
    stores nothing new and succeeds.
    """

    def __init__(self, database: Database) -> None:
        self._db = database
        self._table: Table = LoginTokenModel.__table__  # type: ignore[assignment]

    async def ensure_schema(self) -> SchemaState:
        return await self._db.ensure_table(self._table)

    async def _run(self, query: Any, *, write: bool = False) -> Any:
        """Execute *query*; ``None`` when the table does not exist yet."""
        async with self._db.session_factory() as session:
            try:
                result = await session.execute(query)
                if write:
                    await session.commit()
            except (OperationalError, ProgrammingError) as exc:
                if not self._db.is_missing_table(exc):
                    raise
                logger.debug("sso_tokens table missing, nothing to read or delete")
                return None
            return result

    ########
    # Read #
    ########

    async def find_users(self, key: str) -> list[int]:
        result = await self._run(
            select(LoginTokenModel.user_id)
            .where(LoginTokenModel.meta_key == meta_key(key))
            .order_by(LoginTokenModel.user_id)
        )
        return [] if result is None else list(result.scalars().all())

    async def get(self, user_id: int, key: str) -> LoginToken | None:
        result = await self._run(
            select(LoginTokenModel.meta_value).where(
                LoginTokenModel.user_id == user_id,
                LoginTokenModel.meta_key == meta_key(key),
            )
        )
        raw = None if result is None else result.scalar_one_or_none()
        if not raw:
            return None
        try:
            return LoginToken.model_validate_json(raw)
        except ValidationError:
            logger.warning("Unreadable login token for user=%s", user_id)
            return None

    #########
    # Write #
    #########

    async def add(self, user_id: int, key: str, token: LoginToken) -> None:
        try:
            await self._insert(user_id, key, token)
            return
        except BackendUnavailableError as exc:
            state = await self.ensure_schema()
            if state != "created":
                raise InsertFailedError(exc.message, {"user_id": user_id}) from exc
            logger.info("Provisioned %s table, retrying login token insert", self._table.name)
        try:
            await self._insert(user_id, key, token)
        except BackendUnavailableError as exc:
            raise InsertFailedError(exc.message, {"user_id": user_id}) from exc

    async def _insert(self, user_id: int, key: str, token: LoginToken) -> None:
        async with self._db.session_factory() as session:
            session.add(
                LoginTokenModel(
                    user_id=user_id,
                    meta_key=meta_key(key),
                    meta_value=token.model_dump_json(),
                    issued_at=token.time,
                )
            )
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                # key is a hash of the payload, so the row already holds this token
                logger.debug("Login token already pending for user=%s", user_id)
            except Exception as exc:
                await session.rollback()
                if self._db.is_missing_table(exc):
                    raise BackendUnavailableError(self._table.name) from exc
                raise InsertFailedError(str(exc), {"user_id": user_id}) from exc

    async def consume(self, user_id: int, key: str) -> int:
        result = await self._run(
            delete(LoginTokenModel).where(
                LoginTokenModel.user_id == user_id,
                LoginTokenModel.meta_key == meta_key(key),
            ),
            write=True,
        )
        return 0 if result is None else result.rowcount or 0

    async def purge_expired(self, before: int) -> int:
        result = await self._run(delete(LoginTokenModel).where(LoginTokenModel.issued_at < before), write=True)
        removed = 0 if result is None else result.rowcount or 0
        if removed:
            logger.info("Purged %d expired login tokens", removed)
        return removed


__all__ = [
    "InMemoryLoginTokenStore",
    "KEY_PREFIX",
    "LoginTokenStore",
    "SQLAlchemyLoginTokenStore",
    "meta_key",
]
