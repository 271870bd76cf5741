"""Bridge between the login handshake and the application's session layer.

Mercator never reads or writes session cookies itself.  The application
supplies a :class:`SessionBackend` telling the router who is logged in and
how to log a user in on the current origin.

Example::

    class CookieSessions:
        async def get_user_id(self, request: Request) -> int | None:
            return await sessions.user_for(request.cookies.get("sid"))

        async def login(
            self, request: Request, response: Response, user_id: int, cookie_domain: str | None = None
        ) -> None:
            sid = await sessions.open(user_id)
            response.set_cookie("sid", sid, domain=cookie_domain, httponly=True, secure=True)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from starlette.requests import Request
    from starlette.responses import Response


@runtime_checkable
class SessionBackend(Protocol):
    """Application session hooks used by the SSO router."""

    async def get_user_id(self, request: Request) -> int | None:
        """Return the authenticated user of *request*, or ``None``."""
        ...

    async def login(
        self,
        request: Request,
        response: Response,
        user_id: int,
        cookie_domain: str | None = None,
    ) -> None:
        """Establish a session for *user_id* on the current origin.

        Cookies must be written to *response*, which is the redirect sent
        back to the browser.  *cookie_domain* is the matched alias without
        ``www.``; ``None`` keeps the application's default cookie domain.
        """
        ...


__all__ = ["SessionBackend"]
