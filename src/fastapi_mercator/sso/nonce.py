"""User-independent, tick-windowed nonces.

Session-bound nonces cannot be used here: the mapped domain and the canonical
domain do not share a session.  The protected context (site, host, return
URL, token key) is folded into the action string instead, and validity is
bounded by time alone.

Time is cut into ticks of ``lifetime / 2`` seconds.  A nonce minted during
tick ``T`` verifies during ``T`` (result ``1``) and ``T + 1`` (result ``2``)
and is rejected from ``T + 2`` on.
"""

from __future__ import annotations

from collections.abc import Callable
import logging
import math
import time

from fastapi_mercator.core.exceptions import NonceExpiredError, NonceInvalidError
from fastapi_mercator.utils.security import constant_time_compare, keyed_hash

logger = logging.getLogger(__name__)

#: Width of the emitted token.
NONCE_LENGTH = 10


class SharedNonce:
    """Create and verify nonces under a server secret.

    Args:
        secret: Server-side key.
        lifetime: Seconds a nonce stays valid at most (two ticks).
        clock: Returns the current Unix time; injectable for tests.
    """

    def __init__(
        self,
        secret: str,
        lifetime: int = 86_400,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if lifetime < 2:
            raise ValueError("nonce lifetime must be at least 2 seconds")
        self._secret = secret
        self._lifetime = lifetime
        self._clock = clock

    @property
    def lifetime(self) -> int:
        return self._lifetime

    def tick(self, now: float | None = None) -> int:
        """Return the tick index of *now* (defaults to the clock)."""
        if now is None:
            now = self._clock()
        return math.ceil(now / (self._lifetime / 2))

    def create(self, action: str, tick: int | None = None) -> str:
        """Return the nonce of *action* for *tick* (the current one by default)."""
        if tick is None:
            tick = self.tick()
        digest = keyed_hash(f"nonce|{tick}|{action}", self._secret)
        return digest[-12 : -12 + NONCE_LENGTH]

    def verify(self, nonce: str | None, action: str) -> int:
        """Return ``1`` (current tick), ``2`` (previous tick) or ``0`` (invalid)."""
        if not nonce:
            return 0
        tick = self.tick()
        if constant_time_compare(self.create(action, tick), nonce):
            return 1
        if constant_time_compare(self.create(action, tick - 1), nonce):
            return 2
        return 0

    def check(self, nonce: str | None, action: str) -> int:
        """Like :meth:`verify` but raise on failure.

        Raises:
            NonceExpiredError: The nonce belonged to the tick before the window.
            NonceInvalidError: Any other mismatch, including a missing nonce.
        """
        result = self.verify(nonce, action)
        if result:
            return result
        if nonce and constant_time_compare(self.create(action, self.tick() - 2), nonce):
            raise NonceExpiredError
        raise NonceInvalidError


__all__ = ["NONCE_LENGTH", "SharedNonce"]
