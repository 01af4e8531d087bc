"""MangaDex source adapter built on the public REST API.

Field lookups, in order of preference:

* search title: ``attributes.title.en``, then the first locale present
* cover filename: ``fileName``/``file_name`` on the ``cover_art``
  relationship, then the ``included`` item with the relationship's id
* chapter group: id of the first ``scanlation_group`` relationship
"""

from __future__ import annotations

import logging
from typing import Any

from config import CONFIG
from plugins.base import ChapterResult, SearchResult, SourceAdapter, normalize_timestamp
from plugins.errors import (
    ChaptersFetchFailed,
    MalformedResponse,
    NoPagesFound,
    PagesFetchFailed,
    SearchFailed,
)
from utils.image_proxy import build_cover_proxy_url, build_proxy_url

logger = logging.getLogger(__name__)

_COVER_FILENAME_KEYS = ("fileName", "file_name")


class MangaDexAdapter(SourceAdapter):
    """Query api.mangadex.org for titles, chapter feeds and at-home servers."""

    plugin_id = "mangadex"
    display_name = "MangaDex"
    version = "1.0.0"

    @property
    def api_base(self) -> str:
        return self._config_str("base_url", CONFIG.service.mangadex_api_base).rstrip("/")

    @property
    def language(self) -> str:
        return self._config_str("language", CONFIG.service.mangadex_language)

    @property
    def timeout(self) -> float:
        """Per-request timeout in seconds; the ``timeout`` config key is in milliseconds."""

        value = self._config.get("timeout")
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            value = CONFIG.download.default_plugin_timeout_ms
        return value / 1000

    @property
    def referer(self) -> str:
        return f"{CONFIG.service.mangadex_site_base}/"

    # --- Contract -------------------------------------------------------
    def search(self, query: str) -> list[SearchResult]:
        logger.info("Searching MangaDex for: %s", query)
        params: list[tuple[str, str]] = [
            ("title", query),
            ("limit", str(CONFIG.service.mangadex_search_limit)),
            ("includes[]", "cover_art"),
        ]

        with self._logged_failure("search"):
            response = self._session.get(f"{self.api_base}/manga", params=params, timeout=self.timeout)
            self._ensure_success(response, SearchFailed)

            try:
                payload = response.json()
            except ValueError:
                logger.info("Search returned a body that is not JSON")
                return []

            data = payload.get("data") if isinstance(payload, dict) else None
            if not isinstance(data, list) or not data:
                logger.info("No results found")
                return []

            covers = self._collect_included_covers(payload.get("included"))
            results: list[SearchResult] = []
            for entry in data:
                if not isinstance(entry, dict):
                    continue
                manga_id = entry.get("id")
                attributes = entry.get("attributes")
                if not isinstance(manga_id, str) or not manga_id or not isinstance(attributes, dict):
                    continue
                if not attributes.get("title"):
                    continue

                results.append(
                    SearchResult(
                        title=self._pick_title(attributes.get("title")) or "Untitled",
                        cover_url=self._build_cover_url(manga_id, entry.get("relationships"), covers),
                        identifier=manga_id,
                    )
                )

        logger.info("Found %d results", len(results))
        return results

    def get_chapters(self, series_identifier: str) -> list[ChapterResult]:
        logger.info("Fetching chapters for series: %s", series_identifier)
        limit = CONFIG.service.mangadex_feed_limit
        offset = 0
        chapters: list[ChapterResult] = []

        with self._logged_failure("get_chapters"):
            while True:
                params: list[tuple[str, str]] = [
                    ("limit", str(limit)),
                    ("offset", str(offset)),
                    ("order[volume]", "desc"),
                    ("order[chapter]", "desc"),
                    ("translatedLanguage[]", self.language),
                ]
                response = self._session.get(
                    f"{self.api_base}/manga/{series_identifier}/feed",
                    params=params,
                    timeout=self.timeout,
                )
                self._ensure_success(response, ChaptersFetchFailed)

                try:
                    payload = response.json()
                except ValueError as exc:
                    raise MalformedResponse("Chapter feed returned a body that is not JSON", self.plugin_id) from exc

                data = payload.get("data") if isinstance(payload, dict) else None
                if not isinstance(data, list) or not data:
                    break

                for entry in data:
                    chapter = self._build_chapter(entry)
                    if chapter is not None:
                        chapters.append(chapter)

                if len(data) < limit:
                    break
                offset += limit

        # The feed is requested newest first; reversing yields ascending order.
        chapters.reverse()
        logger.info("Found %d chapters", len(chapters))
        return chapters

    def get_page_urls(self, chapter_identifier: str) -> list[str]:
        logger.info("Fetching page URLs for chapter: %s", chapter_identifier)

        with self._logged_failure("get_page_urls"):
            response = self._session.get(
                f"{self.api_base}/at-home/server/{chapter_identifier}",
                timeout=self.timeout,
            )
            self._ensure_success(response, PagesFetchFailed)

            try:
                payload = response.json()
            except ValueError as exc:
                raise MalformedResponse("At-home server returned a body that is not JSON", self.plugin_id) from exc

            base_url = payload.get("baseUrl") if isinstance(payload, dict) else None
            chapter_info = payload.get("chapter") if isinstance(payload, dict) else None
            if not isinstance(base_url, str) or not isinstance(chapter_info, dict):
                raise MalformedResponse("At-home response is missing baseUrl or chapter", self.plugin_id)

            hash_value = chapter_info.get("hash")
            if not isinstance(hash_value, str) or not hash_value:
                raise MalformedResponse("At-home response is missing the chapter hash", self.plugin_id)

            files = [name for name in chapter_info.get("data") or [] if isinstance(name, str) and name]
            if not files:
                raise NoPagesFound(self.plugin_id)

        pages = [
            build_proxy_url(f"{base_url}/data/{hash_value}/{filename}", referer=self.referer, proxy_base=self.proxy_base)
            for filename in files
        ]
        logger.info("Found %d pages (using proxy URLs)", len(pages))
        return pages

    # --- Helpers --------------------------------------------------------
    @staticmethod
    def _pick_title(value: Any) -> str:
        if isinstance(value, str):
            return value.strip()
        if not isinstance(value, dict) or not value:
            return ""
        english = value.get("en")
        if isinstance(english, str) and english.strip():
            return english.strip()
        first = next(iter(value.values()))
        return first.strip() if isinstance(first, str) else ""

    @staticmethod
    def _collect_included_covers(included: Any) -> dict[str, str]:
        covers: dict[str, str] = {}
        if not isinstance(included, list):
            return covers
        for item in included:
            if not isinstance(item, dict) or item.get("type") != "cover_art" or not item.get("id"):
                continue
            attributes = item.get("attributes") or {}
            filename = next((attributes.get(key) for key in _COVER_FILENAME_KEYS if attributes.get(key)), "")
            if filename:
                covers[str(item["id"])] = str(filename)
        return covers

    def _build_cover_url(self, manga_id: str, relationships: Any, covers: dict[str, str]) -> str:
        filename = ""
        for rel in relationships if isinstance(relationships, list) else []:
            if not isinstance(rel, dict) or rel.get("type") != "cover_art":
                continue
            attributes = rel.get("attributes") or {}
            filename = next((attributes.get(key) for key in _COVER_FILENAME_KEYS if attributes.get(key)), "")
            if not filename and rel.get("id"):
                filename = covers.get(str(rel["id"]), "")
            if filename:
                break

        if not filename:
            return ""
        cover_url = f"{CONFIG.service.mangadex_cover_base}/covers/{manga_id}/{filename}.256.jpg"
        return build_cover_proxy_url(cover_url, referer=self.referer, proxy_base=self.proxy_base)

    def _build_chapter(self, entry: Any) -> ChapterResult | None:
        if not isinstance(entry, dict):
            return None
        chapter_id = entry.get("id")
        if not isinstance(chapter_id, str) or not chapter_id:
            return None
        attributes = entry.get("attributes")
        if not isinstance(attributes, dict):
            attributes = {}

        volume = str(attributes.get("volume") or "")
        chapter = str(attributes.get("chapter") or "")
        pages = attributes.get("pages")

        return ChapterResult(
            identifier=chapter_id,
            title=format_chapter_title(volume, chapter, str(attributes.get("title") or "")),
            volume=volume,
            chapter=chapter,
            pages=pages if isinstance(pages, int) and not isinstance(pages, bool) else 0,
            language=str(attributes.get("translatedLanguage") or ""),
            group_id=self._scanlation_group(entry.get("relationships")),
            published_at=normalize_timestamp(attributes.get("publishAt")),
        )

    @staticmethod
    def _scanlation_group(relationships: Any) -> str:
        if not isinstance(relationships, list):
            return ""
        for rel in relationships:
            if isinstance(rel, dict) and rel.get("type") == "scanlation_group" and rel.get("id"):
                return str(rel["id"])
        return ""


def format_chapter_title(volume: str, chapter: str, title: str) -> str:
    """Return ``"Vol. {volume} Ch. {chapter} {title}"`` built from the parts present."""

    parts: list[str] = []
    if volume:
        parts.append(f"Vol. {volume}")
    if chapter:
        parts.append(f"Ch. {chapter}")
    if title:
        parts.append(title)
    return " ".join(parts)


__all__ = ["MangaDexAdapter", "format_chapter_title"]
