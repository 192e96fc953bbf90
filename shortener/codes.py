"""Short code derivation and custom code validation.

Three derivation strategies, all pure and URL-safe:

- ``generate_short_code``: SHA-256(url + salt), first 6 bytes, URL-safe
  base64 without padding. Always 8 characters.
- ``generate_short_code_with_timestamp``: same construction salted with the
  current nanosecond wall clock. Used when a derived code is already taken.
- ``generate_short_code_base62``: SHA-256(url), first 8 bytes as a big-endian
  unsigned 64-bit integer, base62 encoded. Default strategy on create.

Custom codes are gated by ``is_valid_custom_code`` before any cache or store
access.
"""

import base64
import hashlib
import string
import time

__all__ = [
    "BASE62_ALPHABET",
    "MAX_CODE_LENGTH",
    "RESERVED_CODES",
    "generate_short_code",
    "generate_short_code_with_timestamp",
    "generate_short_code_base62",
    "is_valid_custom_code",
]

BASE62_ALPHABET = string.digits + string.ascii_uppercase + string.ascii_lowercase
MAX_CODE_LENGTH = 20
HASH_PREFIX_BYTES = 6
TIMESTAMP_BYTES = 16

_CUSTOM_CODE_CHARS = frozenset(string.ascii_letters + string.digits + "_-")

# Paths served by the app itself; a link under one of these would never redirect.
RESERVED_CODES = frozenset({"api", "docs", "health", "metrics", "redoc"})


def _digest(url: str, salt: bytes = b"") -> bytes:
    digest = hashlib.sha256()
    digest.update(url.encode("utf-8"))
    digest.update(salt)
    return digest.digest()


def generate_short_code(url: str, salt: bytes) -> str:
    assert isinstance(url, str), f"url must be str, got {type(url).__name__}"
    prefix = _digest(url, salt)[:HASH_PREFIX_BYTES]
    return base64.urlsafe_b64encode(prefix).rstrip(b"=").decode("ascii")


def generate_short_code_with_timestamp(url: str) -> str:
    salt = time.time_ns().to_bytes(TIMESTAMP_BYTES, "big")
    return generate_short_code(url, salt)


def generate_short_code_base62(url: str) -> str:
    assert isinstance(url, str), f"url must be str, got {type(url).__name__}"
    value = int.from_bytes(_digest(url)[:8], "big")
    return _base62_encode(value)


def _base62_encode(number: int) -> str:
    """Encode a non-negative integer as base62, most significant digit first.

    Example:
        >>> _base62_encode(62)
        '10'
    """
    if number < 0:
        raise ValueError("Number must be non-negative")

    if number == 0:
        return BASE62_ALPHABET[0]

    base = len(BASE62_ALPHABET)
    result = []

    while number > 0:
        number, remainder = divmod(number, base)
        result.append(BASE62_ALPHABET[remainder])

    return "".join(result[::-1])


def is_valid_custom_code(code: object) -> bool:
    """Return True if ``code`` may be used as a caller-chosen short code.

    1 to 20 characters drawn from ASCII letters, digits, ``_`` and ``-``.
    """
    if not isinstance(code, str):
        return False
    if not 1 <= len(code) <= MAX_CODE_LENGTH:
        return False
    return all(c in _CUSTOM_CODE_CHARS for c in code)
