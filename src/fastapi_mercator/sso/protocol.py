"""Cross-domain single sign-on handshake.

A session cookie set on the canonical domain is invisible on a mapped alias.
Instead of sharing cookies, the alias asks the canonical domain who the
viewer is and receives a one-time login token in return::

    Browser on alias                 Canonical (main) domain
    ────────────────                 ───────────────────────
    page <head>
      <script src=bootstrap?host&back&site&nonce>  ──►  bootstrap leg
                                                        logged in? nonce ok?
      MercatorSSO() ◄──────────────── JS redirecting to login?host&back&site&nonce
      cookie probe, then redirect ──────────────────►  request leg
                                                        mint token (key)
      login?key&nonce  ◄───────────── 302 to alias
    response leg
      consume token, log in, 302 back

Every rejected leg ends in a bare status code with an empty body so nothing
about tokens, users or nonces is echoed to an unauthenticated party.

Nothing here touches request globals: each entry point receives the
:class:`~fastapi_mercator.core.context.RequestContext` built by the
middleware, with ``user_id`` filled in by the session layer.
"""

from __future__ import annotations

from collections.abc import Callable
import html
import json
import logging
import re
import time
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict

from fastapi_mercator.core.exceptions import (
    MercatorError,
    NotAuthenticatedError,
    SSOError,
    TokenConsumedError,
    TokenExpiredError,
    TokenIssueError,
    TokenMismatchError,
    TokenNotFoundError,
)
from fastapi_mercator.core.types import LoginToken
from fastapi_mercator.sso.nonce import SharedNonce
from fastapi_mercator.utils.domains import get_cookie_domain, strip_www
from fastapi_mercator.utils.security import keyed_hash

if TYPE_CHECKING:
    from collections.abc import Mapping

    from fastapi_mercator.core.config import MercatorConfig
    from fastapi_mercator.core.context import RequestContext
    from fastapi_mercator.core.types import Network, Tenant
    from fastapi_mercator.platform import TenantPlatform
    from fastapi_mercator.sso.tokens import LoginTokenStore

logger = logging.getLogger(__name__)

ACTION_BOOTSTRAP = "mercator-sso"
ACTION_LOGIN = "mercator-sso-login"
JAVASCRIPT = "application/javascript"

_HOST_CHARS = re.compile(r"[^a-z0-9.:\-]+", re.IGNORECASE)
_COOKIE_CHARS = re.compile(r"[^A-Za-z0-9_\-]+")

_HEAD_TEMPLATE = """\
<script src="%(src)s"></script>
<script type="text/javascript">
    if ( 'function' === typeof MercatorSSO ) {
        document.cookie = "%(cookie)s=Cookie check; path=/";
        if ( document.cookie.match( /(;|^)\\s*%(cookie)s\\=/ ) ) {
            MercatorSSO();
        }
    }
</script>
"""

_BOOTSTRAP_TEMPLATE = """\
window.MercatorSSO = function() {
    if ( typeof document.location.host != 'undefined' && document.location.host != %(host)s ) {
        return;
    }

    document.write('<body>');
    document.body.style.display='none';
    window.location = %(url)s + '&fragment=' + encodeURIComponent(document.location.hash);
};
"""


class SSOResult(BaseModel):
    """Framework-neutral outcome of a handshake leg.

    Attributes:
        status_code: HTTP status to send.
        location: Redirect target for ``302`` results.
        body: Response body (script source for the bootstrap leg).
        media_type: Content type of ``body``.
        authenticate_user: User the session layer must log in before
            sending the redirect.
    """

    model_config = ConfigDict(frozen=True)

    status_code: int = 200
    location: str | None = None
    body: str = ""
    media_type: str | None = None
    authenticate_user: int | None = None

    @classmethod
    def redirect(cls, location: str, authenticate_user: int | None = None) -> SSOResult:
        return cls(status_code=302, location=location, authenticate_user=authenticate_user)

    @classmethod
    def status(cls, status_code: int) -> SSOResult:
        return cls(status_code=status_code)

    @classmethod
    def script(cls, body: str = "") -> SSOResult:
        return cls(status_code=200, body=body, media_type=JAVASCRIPT)


def _absint(value: Any) -> int:
    try:
        return abs(int(str(value).strip()))
    except (TypeError, ValueError):
        return 0


def bootstrap_action(site: int, host: str, back: str) -> str:
    """Nonce action protecting the bootstrap and request legs."""
    return f"{ACTION_BOOTSTRAP}|{site}|{host}|{back}"


def login_action(key: str) -> str:
    """Nonce action protecting the response leg."""
    return f"{ACTION_LOGIN}|{key}"


class SingleSignOn:
    """The handshake state machine.

    Args:
        platform: Tenant directory (main site lookup, URL building).
        tokens: One-time login token store.
        nonce: Nonce generator shared by both domains.
        secret: Key used to derive login token keys.
        expiration: Seconds a login token stays valid.
        bootstrap_path: Path of the bootstrap endpoint.
        login_path: Path of the login endpoint.
        test_cookie: Cookie written by the browser-side cookie probe.
        multinetwork: Run the handshake against the main network.
        static_cookiehash: Networks share one cookie name, so a network that
            is a subdomain of the main network is covered by its cookies.
        clock: Returns the current Unix time.
    """

    def __init__(
        self,
        platform: TenantPlatform,
        tokens: LoginTokenStore,
        nonce: SharedNonce,
        secret: str,
        *,
        expiration: int = 300,
        bootstrap_path: str = "/sso-bootstrap",
        login_path: str = "/sso-login",
        test_cookie: str = "mercator_test_cookie",
        multinetwork: bool = False,
        static_cookiehash: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._platform = platform
        self._tokens = tokens
        self._nonce = nonce
        self._secret = secret
        self._expiration = expiration
        self.bootstrap_path = bootstrap_path
        self.login_path = login_path
        self._test_cookie = _COOKIE_CHARS.sub("", test_cookie)
        self._multinetwork = multinetwork
        self._static_cookiehash = static_cookiehash
        self._clock = clock

    @classmethod
    def from_config(
        cls,
        config: MercatorConfig,
        platform: TenantPlatform,
        tokens: LoginTokenStore,
        clock: Callable[[], float] = time.time,
    ) -> SingleSignOn:
        return cls(
            platform,
            tokens,
            SharedNonce(config.secret_key, config.nonce_lifetime, clock),
            config.secret_key,
            expiration=config.sso_expiration,
            bootstrap_path=config.sso_bootstrap_path,
            login_path=config.sso_login_path,
            test_cookie=config.sso_test_cookie,
            multinetwork=config.sso_multinetwork_enabled,
            static_cookiehash=config.static_cookiehash,
            clock=clock,
        )

    @property
    def nonce(self) -> SharedNonce:
        return self._nonce

    @property
    def tokens(self) -> LoginTokenStore:
        return self._tokens

    ###################
    # Domain checks   #
    ###################

    @staticmethod
    def network_cookie_domain(network: Network) -> str:
        return get_cookie_domain(network.domain, network.cookie_domain)

    def cookie_domain(self, ctx: RequestContext) -> str | None:
        """Cookie domain a mapped request must log in under.

        The matched alias without ``www.``; ``None`` for unmapped requests,
        which keep the platform default.
        """
        mapping = ctx.mapping or ctx.network_mapping
        if mapping is None:
            return None
        return strip_www(mapping.domain)

    async def _reference_network(self, ctx: RequestContext) -> Network | None:
        if self._multinetwork:
            return await self._platform.get_main_network() or ctx.network
        return ctx.network or await self._platform.get_main_network()

    async def is_main_domain(self, ctx: RequestContext, host: str | None = None) -> bool:
        """Return ``True`` when *host* lives under the reference network's cookie domain.

        The reference network is the request's network, or the main network
        when multi-network SSO is on.  A network whose cookie domain is a
        subdomain of the main one only counts as main with a shared cookie
        hash.
        """
        host = host or ctx.host
        network = await self._reference_network(ctx)
        if network is None:
            return not ctx.is_mapped

        cookie = self.network_cookie_domain(network)
        if len(cookie) > len(host):
            is_main = cookie.startswith(".") and cookie[1:] == host
        else:
            is_main = host.endswith(cookie)

        current = ctx.network
        if is_main and self._multinetwork and current is not None and current.id != network.id:
            current_cookie = self.network_cookie_domain(current)
            if len(current_cookie) >= len(cookie) and current_cookie.endswith(cookie):
                return self._static_cookiehash
        return is_main

    async def main_site(self, ctx: RequestContext) -> Tenant | None:
        """Site serving the handshake endpoints."""
        if self._multinetwork:
            main = await self._platform.get_main_network()
            return await self._platform.get_main_site(main.id if main else None)
        return await self._platform.get_main_site(ctx.network.id if ctx.network else None)

    async def action_url(self, ctx: RequestContext, path: str, params: Mapping[str, Any]) -> str | None:
        """Absolute URL of *path* on the main site with *params* encoded."""
        site = await self.main_site(ctx)
        if site is None:
            logger.warning("No main site for network=%s; SSO disabled for host=%s", ctx.network, ctx.host)
            return None
        return f"{self._platform.tenant_url(site, path, scheme=ctx.scheme)}?{urlencode(params)}"

    ###################
    # Mapped domain   #
    ###################

    async def head_script(self, ctx: RequestContext) -> str:
        """Markup to place first in ``<head>`` of pages on a mapped domain.

        Empty for authenticated viewers, for unresolved requests and on the
        main domain.
        """
        if ctx.is_authenticated or ctx.tenant is None:
            return ""
        if await self.is_main_domain(ctx):
            return ""

        back = ctx.current_url
        site = ctx.tenant.id
        params = {
            "host": ctx.authority,
            "back": back,
            "site": site,
            "nonce": self._nonce.create(bootstrap_action(site, ctx.authority, back)),
        }
        url = await self.action_url(ctx, self.bootstrap_path, params)
        if url is None:
            return ""
        return _HEAD_TEMPLATE % {"src": html.escape(url), "cookie": self._test_cookie}

    async def bootstrap_script(self, ctx: RequestContext, params: Mapping[str, str]) -> SSOResult:
        """Serve the bootstrap script from the main domain.

        Anonymous viewers and bad nonces get an empty script.  The nonce is
        re-created so a handshake started near a tick boundary keeps the full
        window for the next leg.
        """
        if not ctx.is_authenticated:
            return SSOResult.script()

        host = _HOST_CHARS.sub("", params.get("host") or "")
        back = params.get("back") or ""
        site = _absint(params.get("site"))
        action = bootstrap_action(site, host, back)
        if not self._nonce.verify(params.get("nonce"), action):
            logger.debug("Bootstrap nonce rejected host=%s site=%s", host, site)
            return SSOResult.script()

        url = await self.action_url(
            ctx,
            self.login_path,
            {"host": host, "back": back, "site": site, "nonce": self._nonce.create(action)},
        )
        if url is None:
            return SSOResult.script()
        return SSOResult.script(_BOOTSTRAP_TEMPLATE % {"host": json.dumps(host), "url": json.dumps(url)})

    ###################
    # Login endpoint  #
    ###################

    async def handle_login(self, ctx: RequestContext, params: Mapping[str, str]) -> SSOResult:
        """Dispatch to the request leg on the main domain, the response leg elsewhere."""
        try:
            if await self.is_main_domain(ctx):
                return await self.login_request(ctx, params)
            return await self.login_response(ctx, params)
        except SSOError as exc:
            logger.warning(
                "SSO leg rejected host=%s status=%s reason=%s",
                ctx.host,
                exc.status_code,
                exc.message,
            )
            return SSOResult.status(exc.status_code)

    async def login_request(self, ctx: RequestContext, params: Mapping[str, str]) -> SSOResult:
        """Request leg: vouch for the logged-in viewer and bounce back with a token.

        Raises:
            NonceInvalidError: Bad or missing nonce.
            NotAuthenticatedError: No session on the main domain.
            TokenIssueError: The token could not be stored.
        """
        host = params.get("host") or ""
        back = params.get("back") or ""
        fragment = params.get("fragment") or ""
        site = _absint(params.get("site"))

        self._nonce.check(params.get("nonce"), bootstrap_action(site, host, back))
        if ctx.user_id is None:
            raise NotAuthenticatedError

        if fragment:
            if not fragment.startswith("#"):
                back += "#"
            back += fragment

        url = await self.get_login_url(ctx.user_id, host=host, back=back, site=site, scheme=ctx.scheme)
        return SSOResult.redirect(url)

    async def get_login_url(
        self,
        user_id: int,
        *,
        host: str,
        back: str,
        site: int,
        scheme: str = "https",
    ) -> str:
        """Mint a login token for *user_id* and return the URL redeeming it on *host*.

        Whoever follows the URL is logged in as *user_id*; only call this for
        an authenticated viewer.

        Raises:
            TokenIssueError: When the token store rejects the write.
        """
        token = LoginToken(back=back, site=site, user=user_id, time=int(self._clock()))
        key = keyed_hash(f"sso-token|{token.canonical_json()}", self._secret)
        try:
            await self._tokens.add(user_id, key, token)
        except MercatorError as exc:
            raise TokenIssueError(details={"user_id": user_id, "site": site}) from exc

        tenant = await self._platform.get_tenant(site)
        prefix = tenant.path.rstrip("/") if tenant is not None else ""
        query = urlencode({"key": key, "nonce": self._nonce.create(login_action(key))})
        return f"{scheme}://{host}{prefix}{self.login_path}?{query}"

    async def login_response(self, ctx: RequestContext, params: Mapping[str, str]) -> SSOResult:
        """Response leg: redeem the token on the mapped domain.

        The token is consumed before expiry and site checks so a rejected
        token can never be replayed.

        Raises:
            NonceInvalidError: Bad or missing nonce.
            TokenNotFoundError: No user holds the key.
            TokenConsumedError: The token was already redeemed.
            TokenExpiredError: The token outlived ``expiration``.
            TokenMismatchError: The token belongs to another site.
        """
        key = params.get("key") or ""
        self._nonce.check(params.get("nonce"), login_action(key))

        users = await self._tokens.find_users(key) if key else []
        if not users:
            raise TokenNotFoundError
        user = users[0]

        token = await self._tokens.get(user, key)
        if token is None:
            raise TokenConsumedError
        if not await self._tokens.consume(user, key):
            raise TokenConsumedError

        if token.is_expired(self._clock(), self._expiration):
            raise TokenExpiredError
        if ctx.tenant is None or token.site != ctx.tenant.id:
            raise TokenMismatchError

        if ctx.user_id == token.user:
            return SSOResult.redirect(token.back)

        logger.info("SSO login user=%s site=%s host=%s", token.user, token.site, ctx.host)
        return SSOResult.redirect(token.back, authenticate_user=token.user)

    async def purge_expired_tokens(self) -> int:
        """Drop tokens that can no longer be redeemed."""
        return await self._tokens.purge_expired(int(self._clock()) - self._expiration)


__all__ = [
    "ACTION_BOOTSTRAP",
    "ACTION_LOGIN",
    "SSOResult",
    "SingleSignOn",
    "bootstrap_action",
    "login_action",
]
