"""Unit tests — NetworkMappingStore (JSON blobs in the network meta table)"""

from __future__ import annotations

import json

import pytest

from fastapi_mercator.core.exceptions import DomainExistsError, InvalidIdError, MappingNotFoundError
from fastapi_mercator.core.types import MappingEventType, MappingScope, Network
from fastapi_mercator.network_mapping import NetworkMappingStore
from fastapi_mercator.utils.domains import key_for_domain

pytestmark = pytest.mark.unit


class TestStorageFormat:
    async def test_row_holds_hashed_key_and_json_blob(self, network_store, network_backend):
        mapping = await network_store.create(1, "brand.com", active=True)
        row = await network_backend.get(mapping.id)
        assert row.meta_key == key_for_domain("brand.com")
        assert json.loads(row.meta_value) == {"domain": "brand.com", "active": True}

    async def test_custom_key_prefix(self, network_backend, cache):
        store = NetworkMappingStore(network_backend, cache, key_prefix="nm_")
        mapping = await store.create(1, "brand.com")
        row = await network_backend.get(mapping.id)
        assert row.meta_key.startswith("nm_")

    async def test_foreign_meta_row_rejected(self, network_store, network_backend):
        row = await network_backend.insert(1, "site_name", '"My Network"')
        with pytest.raises(InvalidIdError):
            await network_store.get(row.meta_id)

    async def test_corrupt_blob_skipped(self, network_store, network_backend):
        good = await network_store.create(1, "brand.com")
        await network_backend.insert(1, key_for_domain("broken.com"), "not json")
        assert await network_store.get_by_network(1) == [good]
        assert await network_store.get_by_domain(["broken.com"]) is None

    async def test_other_application_rows_not_listed(self, network_store, network_backend):
        await network_backend.insert(1, "site_name", '"My Network"')
        assert await network_store.get_by_network(1) == []


class TestReadWrite:
    async def test_create_and_get(self, network_store, listener):
        mapping = await network_store.create(1, "Brand.com")
        assert mapping.network_id == 1
        assert mapping.domain == "brand.com"
        assert await network_store.get(mapping.id) == mapping
        assert listener.events[0].scope is MappingScope.NETWORK

    async def test_conflict_between_networks(self, network_store):
        await network_store.create(1, "brand.com")
        with pytest.raises(DomainExistsError):
            await network_store.create(2, "brand.com")

    async def test_domain_update_rewrites_key(self, network_store, network_backend):
        mapping = await network_store.create(1, "old.com", active=True)
        updated = await network_store.set_domain(mapping, "new.com")
        row = await network_backend.get(mapping.id)
        assert row.meta_key == key_for_domain("new.com")
        assert json.loads(row.meta_value) == {"domain": "new.com", "active": True}
        assert await network_store.get_by_domain(["new.com"]) == updated
        assert await network_store.get_by_domain(["old.com"]) is None

    async def test_delete_by_network(self, network_store):
        await network_store.create(1, "one.com")
        await network_store.create(1, "two.com")
        assert await network_store.delete_by_network(1) == 2
        assert await network_store.get_by_network(1) == []


class TestGetActiveByDomain:
    async def test_longest_active_match(self, network_store):
        await network_store.create(1, "brand.com", active=True)
        deep = await network_store.create(1, "shop.brand.com", active=True)
        assert await network_store.get_active_by_domain(["x.shop.brand.com", "shop.brand.com", "brand.com"]) == deep

    async def test_inactive_longer_alias_does_not_hide_shorter(self, network_store):
        short = await network_store.create(1, "brand.com", active=True)
        await network_store.create(2, "shop.brand.com", active=False)
        assert await network_store.get_active_by_domain(["shop.brand.com", "brand.com"]) == short

    async def test_nothing_active(self, network_store):
        await network_store.create(1, "brand.com", active=False)
        assert await network_store.get_active_by_domain("brand.com") is None


class TestMakePrimary:
    async def test_network_domain_promoted(self, network_store, platform, listener):
        platform.add_network(Network(id=2, domain="network.org"))
        mapping = await network_store.create(2, "brand.com", active=True)
        promoted = await network_store.make_primary(mapping, platform)
        assert promoted.domain == "brand.com"
        alias = await network_store.get_by_domain(["network.org"])
        assert alias is not None
        assert alias.active is True
        assert listener.types[-1] == MappingEventType.MADE_PRIMARY.value

    async def test_missing_network(self, network_store, platform):
        mapping = await network_store.create(42, "brand.com", active=True)
        with pytest.raises(MappingNotFoundError):
            await network_store.make_primary(mapping, platform)
