"""Unit tests — in-memory platform, dialect helpers and the logging listener"""

from __future__ import annotations

import logging

import pytest

from fastapi_mercator.core.exceptions import MappingNotFoundError
from fastapi_mercator.core.types import Mapping, MappingEvent, MappingEventType, MappingScope, Network
from fastapi_mercator.events import LoggingEventListener, MappingEventListener
from fastapi_mercator.utils.db_compat import (
    DbDialect,
    detect_dialect,
    is_missing_table_error,
    requires_static_pool,
)

pytestmark = pytest.mark.unit


class TestInMemoryTenantPlatform:
    async def test_resolve_picks_longest_path(self, platform):
        assert (await platform.resolve_tenant_by_host("example.com", "/")).id == 1
        assert (await platform.resolve_tenant_by_host("example.com", "/blog")).id == 3
        assert (await platform.resolve_tenant_by_host("example.com", "/blog/post")).id == 3
        assert (await platform.resolve_tenant_by_host("example.com", "/blogroll")).id == 1
        assert await platform.resolve_tenant_by_host("other.com", "/") is None

    async def test_main_network_and_site(self, platform):
        assert (await platform.get_main_network()).id == 1
        assert (await platform.get_main_site()).id == 1
        assert await platform.get_main_site(42) is None

    async def test_tenant_url(self, platform):
        blog = await platform.get_tenant(3)
        assert platform.tenant_url(blog, "sso-login", scheme="http") == "http://example.com/blog/sso-login"

    async def test_update_domains(self, platform):
        assert (await platform.update_tenant_domain(2, "brand.com")).domain == "brand.com"
        assert (await platform.update_network_domain(1, "example.net")).domain == "example.net"
        with pytest.raises(MappingNotFoundError):
            await platform.update_tenant_domain(99, "brand.com")

    async def test_main_network_is_lowest_id(self, platform):
        platform.add_network(Network(id=2, domain="network.org"))
        assert (await platform.get_main_network()).id == 1
        platform.remove_network(1)
        assert (await platform.get_main_network()).id == 2


class TestDialects:
    @pytest.mark.parametrize(
        ("url", "dialect"),
        [
            ("postgresql+asyncpg://u:p@db/platform", DbDialect.POSTGRESQL),
            ("sqlite+aiosqlite:///:memory:", DbDialect.SQLITE),
            ("mysql+aiomysql://u:p@db/platform", DbDialect.MYSQL),
            ("mssql+aioodbc://u:p@db/platform", DbDialect.MSSQL),
            ("not a url", DbDialect.UNKNOWN),
        ],
    )
    def test_detect(self, url, dialect):
        assert detect_dialect(url) is dialect

    def test_static_pool_only_for_sqlite(self):
        assert requires_static_pool(DbDialect.SQLITE)
        assert not requires_static_pool(DbDialect.POSTGRESQL)

    def test_missing_table_messages(self):
        assert is_missing_table_error(DbDialect.SQLITE, Exception("no such table: domain_mapping"))
        assert is_missing_table_error(
            DbDialect.POSTGRESQL, Exception('relation "domain_mapping" does not exist')
        )
        assert is_missing_table_error(DbDialect.UNKNOWN, Exception("Invalid object name 'network_meta'"))
        assert not is_missing_table_error(DbDialect.SQLITE, Exception("database is locked"))


class TestLoggingEventListener:
    def test_satisfies_protocol(self):
        assert isinstance(LoggingEventListener(), MappingEventListener)

    async def test_logs_event(self, caplog):
        event = MappingEvent(
            type=MappingEventType.UPDATED,
            scope=MappingScope.SITE,
            mapping=Mapping(id=5, tenant_id=2, domain="brand.com", active=True),
            previous=Mapping(id=5, tenant_id=2, domain="old.com", active=True),
        )
        with caplog.at_level(logging.INFO, logger="fastapi_mercator.events"):
            await LoggingEventListener().emit(event)
        assert "domain=brand.com" in caplog.text
        assert "previous=old.com" in caplog.text
