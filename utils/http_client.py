"""HTTP session factories shared by the source adapters."""

from __future__ import annotations

import ipaddress
import logging
from urllib.parse import urlsplit, urlunsplit

import cloudscraper
import requests  # type: ignore[import-untyped]

from config import CONFIG

logger = logging.getLogger(__name__)


def create_requests_session(session: requests.Session | None = None) -> requests.Session:
    """Return a requests session with sanitized proxies and the default User-Agent."""

    configured = session or requests.Session()
    return _configure(configured)


def create_scraper_session() -> cloudscraper.CloudScraper:
    """Return a ``cloudscraper`` session for sites fronted by Cloudflare."""

    return _configure(cloudscraper.create_scraper())


def get_sanitized_proxies() -> dict[str, str]:
    """Return system proxies normalized so urllib3 can parse them."""

    try:
        detected = requests.utils.get_environ_proxies("https://example.com")
    except Exception:  # noqa: BLE001 - fall back to direct connections
        logger.debug("Unable to inspect system proxy configuration", exc_info=True)
        return {}

    sanitized: dict[str, str] = {}
    for scheme, url in (detected or {}).items():
        normalized = _bracket_ipv6_host(url)
        if not normalized:
            continue
        if normalized != url:
            logger.debug("Normalized proxy %s -> %s", url, normalized)
        sanitized[scheme] = normalized
    return sanitized


def _configure(session: requests.Session) -> requests.Session:
    session.trust_env = False
    session.proxies.clear()
    proxies = get_sanitized_proxies()
    if proxies:
        session.proxies.update(proxies)
    session.headers.setdefault("User-Agent", CONFIG.download.user_agent)
    return session


def _bracket_ipv6_host(proxy: str | None) -> str | None:
    """Wrap bare IPv6 proxy hosts in ``[]``; return ``None`` for unusable values."""

    if not proxy:
        return None
    proxy = proxy.strip()
    if "://" not in proxy:
        return None

    try:
        parsed = urlsplit(proxy)
    except ValueError:
        logger.debug("Skipping invalid proxy value: %s", proxy, exc_info=True)
        return None

    netloc = parsed.netloc
    if not netloc or netloc.count(":") <= 1:
        return proxy

    userinfo, _, host_port = netloc.rpartition("@")
    if host_port.startswith("["):
        return proxy

    host, port = host_port, ""
    candidate_host, _, candidate_port = host_port.rpartition(":")
    if candidate_port.isdigit() and candidate_host:
        host, port = candidate_host, candidate_port

    try:
        ipaddress.IPv6Address(host)
    except ValueError:
        return proxy

    new_netloc = f"[{host}]" + (f":{port}" if port else "")
    if userinfo:
        new_netloc = f"{userinfo}@{new_netloc}"
    return urlunsplit((parsed.scheme, new_netloc, parsed.path, parsed.query, parsed.fragment))


__all__ = ["create_requests_session", "create_scraper_session", "get_sanitized_proxies"]
