"""Hostname normalisation and canonical-variant selection."""
import logging

import pytest

from app.services.domain_names import (
    apex_of,
    both_variants,
    canonical_hostname,
    hostnames_to_register,
    normalize_hostname,
    www_of,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Example.COM", "example.com"),
        ("https://shop.example.com/path?q=1", "shop.example.com"),
        ("example.com:443", "example.com"),
        ("example.com.", "example.com"),
        ("  www.example.com ", "www.example.com"),
        (None, ""),
    ],
)
def test_normalize_hostname(raw, expected):
    assert normalize_hostname(raw) == expected


def test_variants_from_either_form():
    assert apex_of("www.example.com") == "example.com"
    assert www_of("example.com") == "www.example.com"
    assert www_of("www.example.com") == "www.example.com"
    assert both_variants("www.example.com") == ["example.com", "www.example.com"]


def test_register_www_preference():
    assert hostnames_to_register("example.com", "www") == ["www.example.com"]


def test_register_apex_preference():
    assert hostnames_to_register("www.example.com", "apex") == ["example.com"]


def test_register_unknown_preference_keeps_raw_hostname(caplog):
    with caplog.at_level(logging.WARNING, logger="storefront.domain.names"):
        assert hostnames_to_register("shop.example.com", "both") == ["shop.example.com"]
    assert canonical_hostname("shop.example.com", None) == "shop.example.com"
    assert any("Unknown canonical preference" in r.message for r in caplog.records)
