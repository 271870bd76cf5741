"""Domain name helpers shared by stores, resolvers and the login handshake.

Every host that reaches a store passes through :func:`normalize_domain` and
:func:`validate_domain` first.  Input length is capped before any regex runs.
"""

from __future__ import annotations

import re
from urllib.parse import urlsplit

from fastapi_mercator.core.exceptions import InvalidDomainError
from fastapi_mercator.utils.security import sha1_hex

################################
# Compiled regular expressions #
################################

_DOMAIN_RE = re.compile(r"^[a-z0-9\-.]+$", re.IGNORECASE)
_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.\-]*://", re.IGNORECASE)
_SEGMENT_STRIP_RE = re.compile(r"[^a-z0-9\-]+")

_MAX_DOMAIN_LEN: int = 255
_MAX_SEGMENT_LEN: int = 63

WWW = "www."


#################
# Normalisation #
#################


def normalize_domain(value: str) -> str:
    """Reduce *value* to a bare, lowercase host name.

    Accepts full URLs (``https://Example.com:8443/path``), ``host:port``
    pairs and hosts with a trailing dot.  Nothing is validated here.

    Examples::

        normalize_domain("https://Shop.Example.com/cart")  # "shop.example.com"
        normalize_domain("example.com:8080")               # "example.com"
        normalize_domain("example.com.")                   # "example.com"
    """
    value = (value or "").strip()
    if _SCHEME_RE.match(value):
        value = urlsplit(value).hostname or ""
    else:
        value = value.split("/", 1)[0]
    value = strip_port(value)
    return value.lower().rstrip(".")


def strip_port(host: str) -> str:
    """Drop a ``:port`` suffix from *host*."""
    head, sep, tail = host.rpartition(":")
    if sep and tail.isdigit():
        return head
    return host


def host_port(value: str) -> int | None:
    """Return the explicit port of a ``Host`` header value, if any.

    ``host_port("example.com:8080")`` is ``8080``; a bare host gives ``None``.
    """
    value = (value or "").strip()
    if not _SCHEME_RE.match(value):
        value = "//" + value.split("/", 1)[0]
    try:
        return urlsplit(value).port
    except ValueError:
        return None


def validate_domain(domain: str) -> bool:
    """Return ``True`` if *domain* only holds letters, digits, hyphens and dots."""
    if not domain or not isinstance(domain, str):
        return False
    if len(domain) > _MAX_DOMAIN_LEN:
        return False
    return bool(_DOMAIN_RE.match(domain))


def assert_valid_domain(value: str) -> str:
    """Normalise *value* and return it, or raise when it is not a usable domain.

    Raises:
        InvalidDomainError: When the normalised value fails validation.
    """
    domain = normalize_domain(value)
    if not validate_domain(domain) or domain.strip(".") != domain or ".." in domain:
        raise InvalidDomainError(value)
    return domain


def trim_segment_length(segment: str, length: int = _MAX_SEGMENT_LEN) -> str:
    """Truncate *segment* to *length* characters without a dangling hyphen."""
    if len(segment) > length:
        segment = segment[:length].rstrip("-")
    return segment


def sanitize_domain(value: str) -> str | None:
    """Coerce free-form input into a domain, or return ``None`` if impossible.

    Each label is lowercased, stripped of characters outside ``[a-z0-9-]``
    and trimmed to 63 characters.  Empty labels and overlong results are
    rejected rather than guessed at.
    """
    domain = normalize_domain(value)
    if not domain:
        return None
    labels = []
    for raw in domain.split("."):
        label = trim_segment_length(_SEGMENT_STRIP_RE.sub("-", raw).strip("-"))
        if not label:
            return None
        labels.append(label)
    sanitized = ".".join(labels)
    if len(sanitized) > _MAX_DOMAIN_LEN:
        return None
    return sanitized


##################
# www / no-www   #
##################


def strip_www(domain: str) -> str:
    """Remove one leading ``www.`` label."""
    return domain[len(WWW):] if domain.startswith(WWW) else domain


def toggle_www(domain: str) -> str:
    """Return the complementary www / no-www form of *domain*."""
    if domain.startswith(WWW):
        return domain[len(WWW):]
    return WWW + domain


def www_variants(host: str) -> list[str]:
    """Return ``[host, toggled]``: the form as given first, then its twin."""
    return [host, toggle_www(host)]


#########################
# Candidate generation  #
#########################


def host_suffix_candidates(host: str, segments: int = 2, honor_www: bool = True) -> list[str]:
    """Build the lookup candidates of *host* for network-level mappings.

    The host is split into at most *segments* parts from the left; each
    iteration drops the leading part.  ``"a.b.c"`` with two segments yields
    ``["a.b.c", "b.c"]``.  With *honor_www* every candidate is followed by its
    www toggle.  Duplicates are removed, order is kept.

    Args:
        host: Normalised request host.
        segments: Maximum number of dot-delimited parts considered.
        honor_www: Expand each candidate with its www / no-www form.

    Returns:
        Ordered, de-duplicated candidate list.
    """
    host = host.strip(".")
    if not host:
        return []
    parts = host.split(".", max(segments, 1) - 1)
    suffixes = [".".join(parts[i:]) for i in range(len(parts))]

    candidates: list[str] = []
    for suffix in suffixes:
        forms = www_variants(suffix) if honor_www else [suffix]
        for form in forms:
            if form not in candidates:
                candidates.append(form)
    return candidates


def substitute_suffix(host: str, matched: str, canonical: str) -> str:
    """Swap the *matched* mapped suffix of *host* for the *canonical* domain.

    ``www.`` is ignored on both sides, so a host that matched through its
    www twin still maps onto the bare canonical domain.

    Examples::

        substitute_suffix("blog.brand.com", "brand.com", "network.org")
        # → "blog.network.org"
        substitute_suffix("www.brand.com", "brand.com", "network.org")
        # → "network.org"
    """
    bare_match = strip_www(matched)
    if strip_www(host) == bare_match:
        return canonical
    if host.endswith("." + bare_match):
        return host[: -len(bare_match)] + canonical
    return canonical


##########################
# Storage / cookie keys  #
##########################


def key_for_domain(domain: str, prefix: str = "mercator_") -> str:
    """Return the network meta key storing the mapping for *domain*."""
    return prefix + sha1_hex(domain)


def get_cookie_domain(domain: str, cookie_domain: str | None = None) -> str:
    """Return the cookie domain of a network.

    An explicit *cookie_domain* wins; otherwise the network domain with a
    leading ``www.`` removed.  The result always starts with a dot.
    """
    if cookie_domain:
        return "." + cookie_domain.lstrip(".")
    return "." + strip_www(domain)


def matches_cookie_domain(host: str, cookie_domain: str) -> bool:
    """Return ``True`` if *host* falls under *cookie_domain*.

    ``".example.com"`` covers both ``example.com`` and its subdomains.
    """
    bare = cookie_domain.lstrip(".")
    return host == bare or host.endswith("." + bare)


__all__ = [
    "assert_valid_domain",
    "get_cookie_domain",
    "host_port",
    "host_suffix_candidates",
    "key_for_domain",
    "matches_cookie_domain",
    "normalize_domain",
    "sanitize_domain",
    "strip_port",
    "strip_www",
    "substitute_suffix",
    "toggle_www",
    "trim_segment_length",
    "validate_domain",
    "www_variants",
]
