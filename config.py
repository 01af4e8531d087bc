"""Application configuration and constants."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DownloadConfig:
    """Configuration for request behavior."""

    # Network timeouts (seconds)
    request_timeout: int = 30
    search_timeout: int = 15

    # MangaDex plugin config expresses its timeout in milliseconds
    default_plugin_timeout_ms: int = 20000

    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    )


@dataclass(frozen=True)
class ServiceConfig:
    """Configuration for external services."""

    # WeebCentral
    weebcentral_base_url: str = "https://weebcentral.com"

    # Webtoons
    webtoons_base_url: str = "https://www.webtoons.com"
    webtoons_mobile_url: str = "https://m.webtoons.com"
    webtoons_search_path: str = "/en/search/immediate"
    webtoons_thumbnail_url: str = "https://webtoon-phinf.pstatic.net"
    webtoons_page_size: int = 100

    # MangaDex
    mangadex_api_base: str = "https://api.mangadex.org"
    mangadex_cover_base: str = "https://uploads.mangadex.org"
    mangadex_site_base: str = "https://mangadex.org"
    mangadex_search_limit: int = 25
    mangadex_feed_limit: int = 500
    mangadex_language: str = "en"


@dataclass(frozen=True)
class ProxyConfig:
    """Configuration for the host image proxy."""

    base_url: str = "http://localhost:8080"
    resource_path: str = "/api/proxy/resource"
    # The host frontend resolves cover URLs against its own origin.
    relative_cover_urls: bool = True


@dataclass(frozen=True)
class PluginConfig:
    """Configuration for plugin discovery."""

    supported_api_version: str = "1.0"
    manifest_name: str = "plugin.json"
    registry_name: str = "registry.json"


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration."""

    download: DownloadConfig = DownloadConfig()
    service: ServiceConfig = ServiceConfig()
    proxy: ProxyConfig = ProxyConfig()
    plugin: PluginConfig = PluginConfig()


# Global configuration instance
CONFIG = AppConfig()
