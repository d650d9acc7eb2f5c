"""
Tests for WooCommerce store URL normalization.
"""

import pytest

from core.exceptions import ValidationError
from integrations.woocommerce import normalize_store_url


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("shop.example.com", "https://shop.example.com"),
        ("shop.example.com/", "https://shop.example.com"),
        ("http://shop.example.com", "https://shop.example.com"),
        ("HTTP://shop.example.com/", "https://shop.example.com"),
        ("https://shop.example.com/store/", "https://shop.example.com/store"),
        ("  https://shop.example.com  ", "https://shop.example.com"),
        ("localhost:8080", "http://localhost:8080"),
        ("http://localhost:8080/", "http://localhost:8080"),
        ("https://localhost", "https://localhost"),
        ("127.0.0.1:8000", "http://127.0.0.1:8000"),
    ],
)
def test_normalize_store_url(raw, expected):
    assert normalize_store_url(raw) == expected


@pytest.mark.parametrize("raw", ["", "   ", "/", "ab", "https://x/"])
def test_invalid_store_url(raw):
    with pytest.raises(ValidationError, match="Invalid store URL format"):
        normalize_store_url(raw)


def test_normalized_url_is_stable():
    once = normalize_store_url("shop.example.com/")
    assert normalize_store_url(once) == once
