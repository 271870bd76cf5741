"""Utility functions — domain handling, security helpers, and DB compatibility."""

from fastapi_mercator.utils.db_compat import DbDialect, detect_dialect
from fastapi_mercator.utils.domains import (
    assert_valid_domain,
    get_cookie_domain,
    host_suffix_candidates,
    key_for_domain,
    normalize_domain,
    sanitize_domain,
    strip_www,
    substitute_suffix,
    validate_domain,
    www_variants,
)
from fastapi_mercator.utils.security import (
    constant_time_compare,
    generate_secret_key,
    keyed_hash,
)

__all__ = [
    "DbDialect",
    "assert_valid_domain",
    "constant_time_compare",
    "detect_dialect",
    "generate_secret_key",
    "get_cookie_domain",
    "host_suffix_candidates",
    "key_for_domain",
    "keyed_hash",
    "normalize_domain",
    "sanitize_domain",
    "strip_www",
    "substitute_suffix",
    "validate_domain",
    "www_variants",
]
