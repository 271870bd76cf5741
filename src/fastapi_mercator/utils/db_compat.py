"""Dialect-dependent decisions of the SQLAlchemy backends.

Two things depend on the database behind ``database_url``: the connection
pool (in-memory SQLite needs a single shared connection) and how a driver
reports a table that was never created.  The second one drives lazy schema
provisioning in the mapping stores.
"""

from __future__ import annotations

from enum import StrEnum
import re


class DbDialect(StrEnum):
    """Database families the backends know how to talk to."""

    POSTGRESQL = "postgresql"
    SQLITE = "sqlite"
    MYSQL = "mysql"
    MSSQL = "mssql"
    UNKNOWN = "unknown"


# Keyed by the scheme before any "+driver" suffix.
_FAMILIES: dict[str, DbDialect] = {
    "postgresql": DbDialect.POSTGRESQL,
    "postgres": DbDialect.POSTGRESQL,
    "asyncpg": DbDialect.POSTGRESQL,
    "sqlite": DbDialect.SQLITE,
    "aiosqlite": DbDialect.SQLITE,
    "mysql": DbDialect.MYSQL,
    "mariadb": DbDialect.MYSQL,
    "mssql": DbDialect.MSSQL,
}

_URL_SCHEME = re.compile(r"^\s*([a-z][a-z0-9]*)(?:\+[a-z0-9_]+)?://", re.IGNORECASE)

_MISSING_TABLE: dict[DbDialect, re.Pattern[str]] = {
    DbDialect.SQLITE: re.compile(r"no such table", re.IGNORECASE),
    DbDialect.POSTGRESQL: re.compile(r"relation .* does not exist|UndefinedTable", re.IGNORECASE),
    DbDialect.MYSQL: re.compile(r"\b1146\b|table .* doesn't exist", re.IGNORECASE),
    DbDialect.MSSQL: re.compile(r"invalid object name", re.IGNORECASE),
}


def detect_dialect(database_url: str) -> DbDialect:
    """Return the dialect family named by the scheme of *database_url*.

    ``"sqlite+aiosqlite:///:memory:"`` and ``"sqlite:///x.db"`` both give
    ``DbDialect.SQLITE``; anything unrecognised gives ``DbDialect.UNKNOWN``.
    """
    match = _URL_SCHEME.match(database_url or "")
    if match is None:
        return DbDialect.UNKNOWN
    return _FAMILIES.get(match.group(1).lower(), DbDialect.UNKNOWN)


def requires_static_pool(dialect: DbDialect) -> bool:
    """SQLite gets ``StaticPool``: a ``:memory:`` database lives on one connection only."""
    return dialect is DbDialect.SQLITE


def is_missing_table_error(dialect: DbDialect, error: BaseException) -> bool:
    """Return ``True`` when *error* says the table does not exist yet.

    Unknown dialects are matched against every known wording.
    """
    text = str(error)
    pattern = _MISSING_TABLE.get(dialect)
    if pattern is None:
        return any(p.search(text) for p in _MISSING_TABLE.values())
    return bool(pattern.search(text))


__all__ = [
    "DbDialect",
    "detect_dialect",
    "is_missing_table_error",
    "requires_static_pool",
]
