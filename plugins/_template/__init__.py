"""Template for new source adapters.

Copy this directory (including ``plugin.json``) to ``plugins/<your_id>/``,
rename the class, and point it at your source. Directories starting with an
underscore are ignored by the plugin loader, so the template itself never
shows up in the host.

This example talks to a generic JSON API rooted at ``config["base_url"]``:

* ``GET /search?q=...`` returns ``{"results": [...]}`` or ``{"data": [...]}``
* ``GET /series/{id}/chapters`` returns ``{"chapters": [...]}`` or ``{"data": [...]}``
* ``GET /chapters/{id}/pages`` returns ``{"pages": [...]}`` or ``{"data": [...]}``,
  each page being a URL string or an object with ``url``/``imageUrl``/``src``

The ``*_KEYS`` tuples below list the fallback field names for each DTO field,
in order of preference.
"""

from __future__ import annotations

import logging
from typing import Any

from config import CONFIG
from plugins.base import ChapterResult, SearchResult, SourceAdapter, first_present, sort_chapters
from plugins.errors import ChaptersFetchFailed, MalformedResponse, NoPagesFound, PagesFetchFailed, SearchFailed

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.example.com"

LIST_KEYS = {
    "search": ("results", "data"),
    "chapters": ("chapters", "data"),
    "pages": ("pages", "data"),
}
SERIES_TITLE_KEYS = ("title", "name")
SERIES_COVER_KEYS = ("coverUrl", "cover_url", "thumbnail")
ID_KEYS = ("id", "identifier")
CHAPTER_TITLE_KEYS = ("title", "name")
CHAPTER_NUMBER_KEYS = ("chapter", "number")
VOLUME_KEYS = ("volume", "vol")
PAGE_COUNT_KEYS = ("pages", "pageCount")
LANGUAGE_KEYS = ("language", "lang")
GROUP_KEYS = ("groupId", "group_id")
PUBLISHED_KEYS = ("publishedAt", "published_at")
PAGE_URL_KEYS = ("url", "imageUrl", "src")


class TemplateAdapter(SourceAdapter):
    """Minimal adapter for a JSON API, meant to be copied and adapted."""

    plugin_id = "template"
    display_name = "Template"
    version = "1.0.0"

    @property
    def base_url(self) -> str:
        return self._config_str("base_url", DEFAULT_BASE_URL).rstrip("/")

    def search(self, query: str) -> list[SearchResult]:
        logger.info("Searching for: %s", query)
        url = f"{self.base_url}/search"
        logger.debug("Making request to: %s", url)

        with self._logged_failure("search"):
            response = self._session.get(url, params={"q": query}, timeout=CONFIG.download.search_timeout)
            self._ensure_success(response, SearchFailed)
            try:
                items = self._extract_list(response, "search")
            except MalformedResponse:
                logger.info("Search returned a body that is not JSON")
                return []

        results: list[SearchResult] = []
        for item in items:
            identifier = first_present(item, ID_KEYS)
            if not identifier:
                continue
            results.append(
                SearchResult(
                    title=str(first_present(item, SERIES_TITLE_KEYS, "Untitled")),
                    cover_url=str(first_present(item, SERIES_COVER_KEYS)),
                    identifier=str(identifier),
                )
            )
        return results

    def get_chapters(self, series_identifier: str) -> list[ChapterResult]:
        logger.info("Fetching chapters for series: %s", series_identifier)

        with self._logged_failure("get_chapters"):
            response = self._session.get(
                f"{self.base_url}/series/{series_identifier}/chapters",
                timeout=CONFIG.download.request_timeout,
            )
            self._ensure_success(response, ChaptersFetchFailed)
            items = self._extract_list(response, "chapters")

        chapters: list[ChapterResult] = []
        for item in items:
            identifier = first_present(item, ID_KEYS)
            if not identifier:
                continue
            number = str(first_present(item, CHAPTER_NUMBER_KEYS, "0"))
            pages = first_present(item, PAGE_COUNT_KEYS, 0)
            chapters.append(
                ChapterResult(
                    identifier=str(identifier),
                    title=str(first_present(item, CHAPTER_TITLE_KEYS, f"Chapter {number}")),
                    volume=str(first_present(item, VOLUME_KEYS)),
                    chapter=number,
                    pages=pages if isinstance(pages, int) else 0,
                    language=str(first_present(item, LANGUAGE_KEYS, "en")),
                    group_id=str(first_present(item, GROUP_KEYS)),
                    published_at=str(first_present(item, PUBLISHED_KEYS)),
                )
            )
        return sort_chapters(chapters)

    def get_page_urls(self, chapter_identifier: str) -> list[str]:
        logger.info("Fetching page URLs for chapter: %s", chapter_identifier)

        with self._logged_failure("get_page_urls"):
            response = self._session.get(
                f"{self.base_url}/chapters/{chapter_identifier}/pages",
                timeout=CONFIG.download.request_timeout,
            )
            self._ensure_success(response, PagesFetchFailed)

            pages: list[str] = []
            for page in self._extract_list(response, "pages", allow_strings=True):
                url = first_present(page, PAGE_URL_KEYS) if isinstance(page, dict) else page
                if isinstance(url, str) and url:
                    pages.append(url)

            if not pages:
                raise NoPagesFound(self.plugin_id)
        return pages

    def _extract_list(self, response: Any, kind: str, allow_strings: bool = False) -> list[Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedResponse(f"{kind} endpoint returned a body that is not JSON", self.plugin_id) from exc
        if not isinstance(payload, dict):
            return []
        items = first_present(payload, LIST_KEYS[kind], [])
        if not isinstance(items, list):
            return []
        return [item for item in items if isinstance(item, dict) or (allow_strings and isinstance(item, str))]


__all__ = ["TemplateAdapter"]
