"""Tests for URL normalization and request helpers."""

from __future__ import annotations

import re

import pytest

from hookcrawl.utils import build_default_headers, jitter_delay_ms, normalize_url


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("http://Example.COM/Path/", "http://example.com/Path"),
        ("https://www.example.com:443/a", "https://example.com/a"),
        ("http://example.com:8080/a", "http://example.com:8080/a"),
        ("//example.com/a", "http://example.com/a"),
        ("example.com/a", "http://example.com/a"),
        ("http://user:pw@example.com/", "http://example.com"),
        ("http://example.com/a#frag", "http://example.com/a"),
        ("http://example.com/a?b=2&a=1&utm_source=x", "http://example.com/a?a=1&b=2"),
        ("http://example.com//a//b", "http://example.com/a/b"),
    ],
)
def test_normalize_url(raw, expected):
    assert normalize_url(raw) == expected


def test_normalize_url_options():
    url = "http://user@www.example.com/a/?z=1&ref=feed#top"
    assert normalize_url(
        url,
        strip_www=False,
        strip_authentication=False,
        strip_hash=False,
        remove_query_parameters=["ref", re.compile("^utm_")],
        remove_trailing_slash=False,
    ) == "http://user@www.example.com/a/?z=1#top"


def test_build_default_headers_extra_wins():
    headers = build_default_headers(["ua-1"], {"Accept-Language": "zh-CN"})
    assert headers["User-Agent"] == "ua-1"
    assert headers["Accept-Language"] == "zh-CN"


def test_jitter_delay_ms():
    assert jitter_delay_ms(0, 0.5) == 0
    assert jitter_delay_ms(100, 0) == 100
    assert 70 <= jitter_delay_ms(100) <= 130
