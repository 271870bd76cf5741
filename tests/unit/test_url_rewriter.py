"""Unit tests — UrlRewriter"""

from __future__ import annotations

import pytest

from fastapi_mercator.core.context import RequestContext
from fastapi_mercator.core.types import Mapping, Network, NetworkMapping, Tenant
from fastapi_mercator.rewrite import UrlRewriter

pytestmark = pytest.mark.unit

_TENANT = Tenant(id=2, domain="t.example.com")
_NETWORK = Network(id=1, domain="www.network.org")


def _site_ctx(active: bool = True) -> RequestContext:
    return RequestContext(
        host="t-alias.com",
        tenant=_TENANT,
        network=_NETWORK,
        mapping=Mapping(id=5, tenant_id=2, domain="t-alias.com", active=active),
    )


def _network_ctx() -> RequestContext:
    return RequestContext(
        host="blog.brand.com",
        tenant=Tenant(id=11, domain="blog.network.org"),
        network=_NETWORK,
        network_mapping=NetworkMapping(id=9, network_id=1, domain="www.brand.com", active=True),
    )


class TestSiteRewrite:
    def test_canonical_host_swapped(self):
        rewriter = UrlRewriter()
        assert rewriter.rewrite("https://t.example.com/about?x=1#top", _site_ctx()) == (
            "https://t-alias.com/about?x=1#top"
        )

    def test_port_and_userinfo_preserved(self):
        rewriter = UrlRewriter()
        assert rewriter.rewrite("http://user:pw@t.example.com:8080/a", _site_ctx()) == (
            "http://user:pw@t-alias.com:8080/a"
        )

    def test_other_host_untouched(self):
        url = "https://cdn.example.com/logo.png"
        assert UrlRewriter().rewrite(url, _site_ctx()) == url

    def test_inactive_mapping_untouched(self):
        url = "https://t.example.com/about"
        assert UrlRewriter().rewrite(url, _site_ctx(active=False)) == url

    def test_site_id_must_match(self):
        url = "https://t.example.com/about"
        rewriter = UrlRewriter()
        assert rewriter.rewrite(url, _site_ctx(), site_id=3) == url
        assert rewriter.rewrite(url, _site_ctx(), site_id=2) == "https://t-alias.com/about"

    def test_unmapped_request_untouched(self):
        url = "https://t.example.com/about"
        ctx = RequestContext(host="t.example.com", tenant=_TENANT)
        assert UrlRewriter().rewrite(url, ctx) == url

    def test_relative_url_untouched(self):
        assert UrlRewriter().rewrite("/about", _site_ctx()) == "/about"


class TestNetworkRewrite:
    def test_subdomain_follows_alias(self):
        rewriter = UrlRewriter(multinetwork=True)
        assert rewriter.rewrite("https://blog.network.org/post", _network_ctx()) == (
            "https://blog.brand.com/post"
        )

    @pytest.mark.parametrize("url", ["https://network.org/", "https://www.network.org/"])
    def test_network_root(self, url):
        assert UrlRewriter(multinetwork=True).rewrite(url, _network_ctx()) == "https://brand.com/"

    def test_disabled_without_multinetwork(self):
        url = "https://blog.network.org/post"
        assert UrlRewriter().rewrite(url, _network_ctx()) == url

    def test_network_id_must_match(self):
        url = "https://blog.network.org/post"
        assert UrlRewriter(multinetwork=True).rewrite(url, _network_ctx(), network_id=7) == url

    def test_foreign_domain_untouched(self):
        url = "https://notnetwork.org/"
        assert UrlRewriter(multinetwork=True).rewrite(url, _network_ctx()) == url
