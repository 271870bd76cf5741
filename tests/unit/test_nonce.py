"""Unit tests — SharedNonce tick windows

A nonce minted in tick T verifies in T (1) and T+1 (2) and fails from T+2 on.
Ticks are ``lifetime / 2`` seconds long, so advancing the clock by one tick
length moves exactly one tick forward.
"""

from __future__ import annotations

import pytest

from fastapi_mercator.core.exceptions import NonceExpiredError, NonceInvalidError
from fastapi_mercator.sso.nonce import NONCE_LENGTH, SharedNonce

pytestmark = pytest.mark.unit

LIFETIME = 86_400
TICK = LIFETIME // 2
ACTION = "mercator-sso|2|t-alias.com|http://t-alias.com/"


@pytest.fixture
def nonce(secret, clock) -> SharedNonce:
    return SharedNonce(secret, LIFETIME, clock)


class TestTick:
    def test_tick_rounds_up(self, nonce):
        assert nonce.tick(TICK * 10) == 10
        assert nonce.tick(TICK * 10 - 1) == 10
        assert nonce.tick(TICK * 10 + 1) == 11

    def test_defaults_to_clock(self, nonce, clock):
        clock.now = TICK * 5 + 3
        assert nonce.tick() == 6

    def test_lifetime_below_two_rejected(self, secret):
        with pytest.raises(ValueError, match="at least 2"):
            SharedNonce(secret, lifetime=1)

    def test_lifetime_property(self, nonce):
        assert nonce.lifetime == LIFETIME


class TestCreate:
    def test_fixed_width_hex(self, nonce):
        value = nonce.create(ACTION)
        assert len(value) == NONCE_LENGTH
        int(value, 16)

    def test_deterministic_within_tick(self, nonce):
        assert nonce.create(ACTION) == nonce.create(ACTION)

    def test_bound_to_action(self, nonce):
        assert nonce.create(ACTION) != nonce.create(ACTION + "x")

    def test_bound_to_secret(self, clock):
        one = SharedNonce("a" * 32, LIFETIME, clock)
        two = SharedNonce("b" * 32, LIFETIME, clock)
        assert one.create(ACTION) != two.create(ACTION)

    def test_bound_to_tick(self, nonce):
        assert nonce.create(ACTION, tick=100) != nonce.create(ACTION, tick=101)


class TestVerify:
    def test_current_tick(self, nonce):
        assert nonce.verify(nonce.create(ACTION), ACTION) == 1

    def test_previous_tick(self, nonce, clock):
        value = nonce.create(ACTION)
        clock.advance(TICK)
        assert nonce.verify(value, ACTION) == 2

    def test_two_ticks_later_rejected(self, nonce, clock):
        value = nonce.create(ACTION)
        clock.advance(2 * TICK)
        assert nonce.verify(value, ACTION) == 0

    def test_minted_at_tick_end_still_valid_next_tick(self, nonce, clock):
        clock.now = TICK * 10
        value = nonce.create(ACTION)
        clock.advance(1)
        assert nonce.tick() == 11
        assert nonce.verify(value, ACTION) == 2

    @pytest.mark.parametrize("value", [None, "", "0000000000", "not-a-nonce"])
    def test_garbage_rejected(self, nonce, value):
        assert nonce.verify(value, ACTION) == 0

    def test_other_action_rejected(self, nonce):
        assert nonce.verify(nonce.create(ACTION), "mercator-sso-login|key") == 0


class TestCheck:
    def test_returns_verify_result(self, nonce, clock):
        value = nonce.create(ACTION)
        assert nonce.check(value, ACTION) == 1
        clock.advance(TICK)
        assert nonce.check(value, ACTION) == 2

    def test_expired_nonce(self, nonce, clock):
        value = nonce.create(ACTION)
        clock.advance(2 * TICK)
        with pytest.raises(NonceExpiredError) as exc_info:
            nonce.check(value, ACTION)
        assert exc_info.value.status_code == 403

    def test_long_expired_nonce_is_plain_invalid(self, nonce, clock):
        value = nonce.create(ACTION)
        clock.advance(3 * TICK)
        with pytest.raises(NonceInvalidError) as exc_info:
            nonce.check(value, ACTION)
        assert type(exc_info.value) is NonceInvalidError

    def test_missing_nonce(self, nonce):
        with pytest.raises(NonceInvalidError) as exc_info:
            nonce.check(None, ACTION)
        assert type(exc_info.value) is NonceInvalidError
        assert exc_info.value.status_code == 403
