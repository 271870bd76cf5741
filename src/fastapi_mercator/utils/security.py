"""Security utilities for fastapi-mercator.

Random material comes from Python's ``secrets`` module, keyed digests from
``hmac``.  Do **not** replace calls here with ``random`` or bare hashes.

Public API
----------
``generate_secret_key``
    Generate a long hex-encoded key suitable for ``MERCATOR_SECRET_KEY``.

``constant_time_compare``
    Compare two strings in constant time (timing-attack safe).

``keyed_hash``
    HMAC-SHA256 of a message under the server secret, hex encoded.

``sha1_hex``
    Plain SHA-1 hex digest, used only to derive storage keys from domains.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets


def generate_secret_key(byte_length: int = 64) -> str:
    """Generate a hex-encoded secret key for nonce and token derivation.

    The output is ``2 * byte_length`` hex characters.

    Example::

        secret = generate_secret_key()  # 128-char hex string (512 bits)
    """
    return secrets.token_hex(byte_length)


def constant_time_compare(value1: str, value2: str) -> bool:
    """Compare two strings in constant time to prevent timing attacks.

    This is the correct primitive for comparing nonces and HMAC digests.  A
    naive ``==`` comparison short-circuits on the first differing byte,
    leaking information about partial matches.

    Args:
        value1: First string.
        value2: Second string.

    Returns:
        ``True`` when both strings are identical.
    """
    return secrets.compare_digest(value1.encode("utf-8"), value2.encode("utf-8"))


def keyed_hash(message: str, secret: str) -> str:
    """Return the hex HMAC-SHA256 of *message* under *secret*.

    Args:
        message: Data to authenticate.
        secret: Server-side secret key.

    Returns:
        Lowercase hex digest (64 characters).
    """
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def sha1_hex(value: str) -> str:
    """Return the SHA-1 hex digest of *value* (not a security primitive)."""
    return hashlib.sha1(value.encode("utf-8"), usedforsecurity=False).hexdigest()


__all__ = [
    "constant_time_compare",
    "generate_secret_key",
    "keyed_hash",
    "sha1_hex",
]
