"""Shared pytest fixtures for the fastapi-mercator test suite.

Hierarchy
---------
secret                  server secret shared by config and nonce tests
clock                   FakeClock frozen at T0, advanced explicitly by tests
platform                InMemoryTenantPlatform: network example.com, tenants
                        1 (example.com), 2 (t.example.com), 3 (example.com/blog/)
cache                   fresh InMemoryMappingCache per test
listener                RecordingListener collecting every MappingEvent
mapping_backend         InMemoryMappingBackend
network_backend         InMemoryNetworkMetaBackend
store                   MappingStore over mapping_backend + cache + listener
network_store           NetworkMappingStore over network_backend + cache + listener
database                Database backed by SQLite :memory:, tables created
config                  MercatorConfig with in-memory SQLite and a test secret
manager                 MercatorManager over the in-memory backends
app_factory             build_app(manager, sessions) for custom managers
sessions                CookieSessions reading / writing a plain "uid" cookie
asgi_app                FastAPI + DomainMappingMiddleware + SSO router + demo routes
http_client             httpx.AsyncClient → asgi_app (base URL http://example.com)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse
from httpx import ASGITransport, AsyncClient
import pytest
import pytest_asyncio

from fastapi_mercator.cache.memory import InMemoryMappingCache
from fastapi_mercator.core.config import MercatorConfig
from fastapi_mercator.core.types import Network, Tenant
from fastapi_mercator.dependencies import ContextDep, MappedTenantDep
from fastapi_mercator.manager import MercatorManager
from fastapi_mercator.mapping import MappingStore
from fastapi_mercator.middleware.mapping import DomainMappingMiddleware
from fastapi_mercator.network_mapping import NetworkMappingStore
from fastapi_mercator.platform import InMemoryTenantPlatform
from fastapi_mercator.sso.router import create_sso_router
from fastapi_mercator.sso.tokens import InMemoryLoginTokenStore
from fastapi_mercator.storage.database import Database
from fastapi_mercator.storage.memory import InMemoryMappingBackend, InMemoryNetworkMetaBackend

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi_mercator.core.types import MappingEvent

SECRET = "test-secret-0123456789abcdef0123456789abcdef"
T0 = 1_700_000_000.0


###########
# Helpers #
###########


class FakeClock:
    """Callable clock returning a settable Unix time."""

    def __init__(self, now: float = T0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingListener:
    """Event listener that keeps every event in memory."""

    def __init__(self) -> None:
        self.events: list[MappingEvent] = []

    async def emit(self, event: MappingEvent) -> None:
        self.events.append(event)

    @property
    def types(self) -> list[str]:
        return [event.type.value for event in self.events]


class CookieSessions:
    """Minimal session layer: the user id lives in a plain ``uid`` cookie."""

    cookie = "uid"

    def __init__(self) -> None:
        self.logins: list[tuple[int, str | None]] = []

    async def get_user_id(self, request: Request) -> int | None:
        raw = request.cookies.get(self.cookie)
        return int(raw) if raw and raw.isdigit() else None

    async def login(
        self, request: Request, response: Any, user_id: int, cookie_domain: str | None = None
    ) -> None:
        self.logins.append((user_id, cookie_domain))
        response.set_cookie(self.cookie, str(user_id), domain=cookie_domain)


############
# Platform #
############


@pytest.fixture
def secret() -> str:
    return SECRET


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def platform() -> InMemoryTenantPlatform:
    return InMemoryTenantPlatform(
        networks=[Network(id=1, domain="example.com")],
        tenants=[
            Tenant(id=1, domain="example.com", name="Main"),
            Tenant(id=2, domain="t.example.com", name="Shop"),
            Tenant(id=3, domain="example.com", path="/blog/", name="Blog"),
        ],
    )


##########
# Stores #
##########


@pytest.fixture
def cache() -> InMemoryMappingCache:
    return InMemoryMappingCache()


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def mapping_backend() -> InMemoryMappingBackend:
    return InMemoryMappingBackend()


@pytest.fixture
def network_backend() -> InMemoryNetworkMetaBackend:
    return InMemoryNetworkMetaBackend()


@pytest.fixture
def store(
    mapping_backend: InMemoryMappingBackend,
    cache: InMemoryMappingCache,
    listener: RecordingListener,
) -> MappingStore:
    return MappingStore(mapping_backend, cache, listener)


@pytest.fixture
def network_store(
    network_backend: InMemoryNetworkMetaBackend,
    cache: InMemoryMappingCache,
    listener: RecordingListener,
) -> NetworkMappingStore:
    return NetworkMappingStore(network_backend, cache, listener=listener)


@pytest_asyncio.fixture
async def database() -> AsyncIterator[Database]:
    db = Database("sqlite+aiosqlite:///:memory:")
    await db.initialize()
    yield db
    await db.close()


###########
# Manager #
###########


@pytest.fixture
def config() -> MercatorConfig:
    return MercatorConfig(database_url="sqlite+aiosqlite:///:memory:", secret_key=SECRET)


@pytest_asyncio.fixture
async def manager(
    config: MercatorConfig,
    platform: InMemoryTenantPlatform,
    cache: InMemoryMappingCache,
    mapping_backend: InMemoryMappingBackend,
    network_backend: InMemoryNetworkMetaBackend,
    listener: RecordingListener,
    clock: FakeClock,
) -> AsyncIterator[MercatorManager]:
    m = MercatorManager(
        config,
        platform,
        cache=cache,
        mapping_backend=mapping_backend,
        network_backend=network_backend,
        token_store=InMemoryLoginTokenStore(),
        listener=listener,
        clock=clock,
    )
    await m.initialize()
    yield m
    await m.close()


#############
# ASGI app  #
#############


@pytest.fixture
def sessions() -> CookieSessions:
    return CookieSessions()


def build_app(manager: MercatorManager, sessions: CookieSessions) -> FastAPI:
    """FastAPI app exercising the middleware, the dependencies and the SSO router."""
    app = FastAPI()
    app.add_middleware(DomainMappingMiddleware, manager=manager, excluded_paths=["/health"])
    if manager.sso is not None:
        app.include_router(create_sso_router(manager, sessions))

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/whoami")
    async def whoami(ctx: ContextDep):
        return {
            "host": ctx.host,
            "url": ctx.current_url,
            "tenant": ctx.tenant.id if ctx.tenant else None,
            "network": ctx.network.id if ctx.network else None,
            "mapped": ctx.is_mapped,
            "mapping": ctx.mapping.domain if ctx.mapping else None,
            "network_mapping": ctx.network_mapping.domain if ctx.network_mapping else None,
        }

    @app.get("/site")
    async def site(tenant: MappedTenantDep):
        return {"id": tenant.id, "domain": tenant.domain}

    @app.get("/page")
    async def page(request: Request, ctx: ContextDep):
        ctx = ctx.model_copy(update={"user_id": await sessions.get_user_id(request)})
        head = await manager.sso.head_script(ctx) if manager.sso is not None else ""
        link = ""
        if ctx.tenant is not None:
            link = manager.rewrite_url(f"{ctx.scheme}://{ctx.tenant.domain}/about", ctx)
        return HTMLResponse(f"<html><head>{head}</head><body><a href=\"{link}\">about</a></body></html>")

    return app


@pytest.fixture
def app_factory():
    """Return the app builder so tests can wire a differently configured manager."""
    return build_app


@pytest.fixture
def asgi_app(manager: MercatorManager, sessions: CookieSessions) -> FastAPI:
    return build_app(manager, sessions)


@pytest_asyncio.fixture
async def http_client(asgi_app: FastAPI) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(
        transport=ASGITransport(app=asgi_app),
        base_url="http://example.com",
    ) as client:
        yield client
