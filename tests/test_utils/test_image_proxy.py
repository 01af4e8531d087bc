"""Tests for the image proxy URL helpers."""

from __future__ import annotations

from urllib.parse import parse_qs, urlsplit

import pytest

from utils import image_proxy


def test_encode_uri_component_matches_browser_encoding() -> None:
    assert image_proxy.encode_uri_component("a b/c?d=e&f") == "a%20b%2Fc%3Fd%3De%26f"
    assert image_proxy.encode_uri_component("!~*'()-_.") == "!~*'()-_."
    assert image_proxy.encode_uri_component("é") == "%C3%A9"


def test_build_proxy_url_appends_only_present_options() -> None:
    url = image_proxy.build_proxy_url(
        "https://img.example/a b.png?x=1",
        referer="https://site.example/",
        proxy_base="http://localhost:8080/",
    )

    assert url == (
        "http://localhost:8080/api/proxy/resource"
        "?url=https%3A%2F%2Fimg.example%2Fa%20b.png%3Fx%3D1"
        "&referer=https%3A%2F%2Fsite.example%2F"
    )


def test_build_proxy_url_with_all_options_round_trips() -> None:
    url = image_proxy.build_proxy_url(
        "https://img.example/1.png",
        referer="https://site.example/",
        user_agent="Agent/1.0",
        origin="https://site.example",
    )

    query = parse_qs(urlsplit(url).query)
    assert query == {
        "url": ["https://img.example/1.png"],
        "referer": ["https://site.example/"],
        "user-agent": ["Agent/1.0"],
        "origin": ["https://site.example"],
    }


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("http://localhost:8080/api/proxy/resource?url=x", "/api/proxy/resource?url=x"),
        ("https://host.example", "/"),
        ("/already/relative?x=1", "/already/relative?x=1"),
    ],
)
def test_strip_proxy_origin(url: str, expected: str) -> None:
    assert image_proxy.strip_proxy_origin(url) == expected


@pytest.mark.parametrize("proxy_base", [None, "http://localhost:8080", "http://localhost:8080/"])
def test_build_cover_proxy_url_strips_default_origin(proxy_base: str | None) -> None:
    url = image_proxy.build_cover_proxy_url("https://img.example/c.jpg", proxy_base=proxy_base)

    assert url == "/api/proxy/resource?url=https%3A%2F%2Fimg.example%2Fc.jpg"


def test_build_cover_proxy_url_keeps_overridden_origin() -> None:
    url = image_proxy.build_cover_proxy_url("https://img.example/c.jpg", proxy_base="https://reader.example/")

    assert url.startswith("https://reader.example/api/proxy/resource?url=")


def test_build_cover_proxy_url_respects_relative_flag(monkeypatch: pytest.MonkeyPatch) -> None:
    relative = image_proxy.build_cover_proxy_url("https://img.example/c.jpg", referer="https://site.example/")
    assert relative.startswith("/api/proxy/resource?url=")

    proxy = image_proxy.CONFIG.proxy.__class__(relative_cover_urls=False)
    config = image_proxy.CONFIG.__class__(proxy=proxy)
    monkeypatch.setattr(image_proxy, "CONFIG", config)

    absolute = image_proxy.build_cover_proxy_url("https://img.example/c.jpg")
    assert absolute == "http://localhost:8080/api/proxy/resource?url=https%3A%2F%2Fimg.example%2Fc.jpg"
