"""Unit tests for short code derivation and custom code validation."""

import os
import time

import pytest

from shortener.codes import (
    BASE62_ALPHABET,
    _base62_encode,
    generate_short_code,
    generate_short_code_base62,
    generate_short_code_with_timestamp,
    is_valid_custom_code,
)

URLS = [
    "https://example.com",
    "https://example.com/path?query=value",
    "https://github.com/rust-lang/rust",
    "https://very-long-domain-name.example.com/path/with/special/chars",
]


# ============================================================================
# SALTED HASH CODES
# ============================================================================


@pytest.mark.parametrize("url", URLS)
def test_generate_short_code_deterministic(url: str) -> None:
    code1 = generate_short_code(url, b"test_salt")
    code2 = generate_short_code(url, b"test_salt")
    assert code1 == code2
    assert len(code1) == 8


@pytest.mark.parametrize("url", URLS)
def test_generate_short_code_is_url_safe(url: str) -> None:
    code = generate_short_code(url, b"test")
    assert "+" not in code
    assert "/" not in code
    assert "=" not in code


def test_generate_short_code_different_salts() -> None:
    assert generate_short_code("https://example.com", b"salt1") != generate_short_code(
        "https://example.com", b"salt2"
    )


@pytest.mark.parametrize("url", URLS)
def test_generate_short_code_random_salts_differ(url: str) -> None:
    for _ in range(50):
        salt1, salt2 = os.urandom(16), os.urandom(16)
        if salt1 == salt2:
            continue
        assert generate_short_code(url, salt1) != generate_short_code(url, salt2)


@pytest.mark.parametrize("url", URLS[:3])
def test_generate_short_code_with_timestamp_different_each_time(url: str) -> None:
    code1 = generate_short_code_with_timestamp(url)
    time.sleep(0.001)
    code2 = generate_short_code_with_timestamp(url)
    assert code1 != code2
    assert len(code1) == 8
    assert len(code2) == 8


# ============================================================================
# BASE62 CODES
# ============================================================================


def test_base62_alphabet_order() -> None:
    assert len(BASE62_ALPHABET) == 62
    assert BASE62_ALPHABET[0] == "0"
    assert BASE62_ALPHABET[10] == "A"
    assert BASE62_ALPHABET[36] == "a"
    assert BASE62_ALPHABET[-1] == "z"


def test_base62_encode_basic() -> None:
    assert _base62_encode(0) == "0"
    assert _base62_encode(1) == "1"
    assert _base62_encode(61) == "z"
    assert _base62_encode(62) == "10"


def test_base62_encode_max_u64() -> None:
    code = _base62_encode(2**64 - 1)
    assert len(code) == 11
    value = 0
    for char in code:
        value = value * 62 + BASE62_ALPHABET.index(char)
    assert value == 2**64 - 1


def test_base62_encode_negative() -> None:
    with pytest.raises(ValueError, match="Number must be non-negative"):
        _base62_encode(-1)


@pytest.mark.parametrize("url", URLS)
def test_generate_short_code_base62(url: str) -> None:
    code = generate_short_code_base62(url)
    assert code
    assert len(code) <= 11
    assert all(c in BASE62_ALPHABET for c in code)
    assert code == generate_short_code_base62(url)


def test_generate_short_code_base62_distinct_urls() -> None:
    codes = {generate_short_code_base62(url) for url in URLS}
    assert len(codes) == len(URLS)


# ============================================================================
# CUSTOM CODE VALIDATION
# ============================================================================


@pytest.mark.parametrize(
    "code, expected",
    [
        ("valid_code", True),
        ("valid-code", True),
        ("ValidCode123", True),
        ("_valid_code_", True),
        ("a", True),
        ("", False),
        ("invalid code", False),
        ("invalid.code", False),
        ("invalid@code", False),
        ("tab\tcode", False),
        ("trailing\n", False),
        ("ümlaut", False),
    ],
)
def test_is_valid_custom_code(code: str, expected: bool) -> None:
    assert is_valid_custom_code(code) is expected


def test_is_valid_custom_code_max_length() -> None:
    assert is_valid_custom_code("a" * 21) is False
    assert is_valid_custom_code("a" * 20) is True


def test_is_valid_custom_code_non_string() -> None:
    assert is_valid_custom_code(None) is False
    assert is_valid_custom_code(12345) is False
