"""Helpers for routing header-restricted images through the host resource proxy."""

from __future__ import annotations

from urllib.parse import quote, urlsplit

from config import CONFIG

# Characters left unescaped by JavaScript's encodeURIComponent.
_URI_COMPONENT_SAFE = "!~*'()"


def encode_uri_component(value: str) -> str:
    """Percent-encode ``value`` the same way browsers encode URI components."""

    return quote(value, safe=_URI_COMPONENT_SAFE)


def build_proxy_url(
    image_url: str,
    *,
    referer: str = "",
    user_agent: str = "",
    origin: str = "",
    proxy_base: str | None = None,
) -> str:
    """Return ``image_url`` rewritten to the host proxy endpoint.

    The host fetches the ``url`` parameter server-side, attaching the supplied
    headers, and streams the body back. Only non-empty header options are
    appended to the query string.
    """

    base = (proxy_base if proxy_base is not None else CONFIG.proxy.base_url).rstrip("/")
    params = [f"url={encode_uri_component(image_url)}"]
    for key, value in (("referer", referer), ("user-agent", user_agent), ("origin", origin)):
        if value:
            params.append(f"{key}={encode_uri_component(value)}")
    return f"{base}{CONFIG.proxy.resource_path}?{'&'.join(params)}"


def strip_proxy_origin(proxy_url: str) -> str:
    """Drop scheme and host so the frontend resolves the URL against its own origin."""

    parsed = urlsplit(proxy_url)
    if not parsed.scheme or not parsed.netloc:
        return proxy_url
    relative = parsed.path or "/"
    if parsed.query:
        relative = f"{relative}?{parsed.query}"
    return relative


def build_cover_proxy_url(image_url: str, *, referer: str = "", proxy_base: str | None = None) -> str:
    """Proxy a cover image, honouring ``CONFIG.proxy.relative_cover_urls``.

    Only the default host origin is stripped; an overridden ``proxy_base`` is
    kept so the URL still points at that proxy.
    """

    proxied = build_proxy_url(image_url, referer=referer, proxy_base=proxy_base)
    default_base = CONFIG.proxy.base_url.rstrip("/")
    uses_default = proxy_base is None or proxy_base.rstrip("/") == default_base
    if CONFIG.proxy.relative_cover_urls and uses_default:
        return strip_proxy_origin(proxied)
    return proxied


__all__ = ["build_cover_proxy_url", "build_proxy_url", "encode_uri_component", "strip_proxy_origin"]
