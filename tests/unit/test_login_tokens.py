"""Unit tests — InMemoryLoginTokenStore and the token payload model"""

from __future__ import annotations

import json

import pytest

from fastapi_mercator.core.types import LoginToken
from fastapi_mercator.sso.tokens import KEY_PREFIX, InMemoryLoginTokenStore, meta_key

pytestmark = pytest.mark.unit


def _token(time: int = 1000, site: int = 2) -> LoginToken:
    return LoginToken(back="http://t-alias.com/", site=site, user=7, time=time)


class TestLoginToken:
    def test_canonical_json_is_sorted_and_compact(self):
        text = _token().canonical_json()
        assert text == json.dumps(json.loads(text), sort_keys=True, separators=(",", ":"))
        assert list(json.loads(text)) == ["back", "site", "time", "user"]

    def test_expiry_boundary(self):
        token = _token(time=1000)
        assert token.is_expired(1299, 300) is False
        assert token.is_expired(1300, 300) is True


class TestInMemoryLoginTokenStore:
    def test_meta_key(self):
        assert meta_key("abc") == KEY_PREFIX + "abc"

    async def test_add_find_get(self):
        store = InMemoryLoginTokenStore()
        token = _token()
        await store.add(7, "abc", token)
        assert await store.find_users("abc") == [7]
        assert await store.get(7, "abc") == token
        assert await store.get(8, "abc") is None

    async def test_consume_once(self):
        store = InMemoryLoginTokenStore()
        await store.add(7, "abc", _token())
        assert await store.consume(7, "abc") == 1
        assert await store.consume(7, "abc") == 0
        assert await store.find_users("abc") == []

    async def test_purge_expired(self):
        store = InMemoryLoginTokenStore()
        await store.add(7, "old", _token(time=100))
        await store.add(7, "new", _token(time=500))
        assert await store.purge_expired(before=200) == 1
        assert await store.find_users("old") == []
        assert await store.find_users("new") == [7]
