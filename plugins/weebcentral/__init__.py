"""WeebCentral source adapter.

WeebCentral serves HTMX fragments: search is a form POST returning result
anchors, the chapter list is a fragment of rows ordered newest first, and the
reader exposes a long-strip fragment with one ``img`` per page.

Field lookups, in order of preference:

* search title: ``.flex-1`` text, the anchor text, the first ``span``/``div``
* search cover: ``source[srcset]``, ``source[src]``, ``img[src]``, ``img[data-src]``
* series id: the path segment after ``/series/`` in the anchor ``href``
* chapter id: everything after ``/chapters/`` in the row anchor ``href``
"""

from __future__ import annotations

import logging
import re

import requests  # type: ignore[import-untyped]
from bs4.element import Tag

from config import CONFIG
from plugins.base import ChapterResult, SearchResult, SourceAdapter, clean_chapter_number, sort_chapters
from plugins.errors import ChaptersFetchFailed, NoChaptersFound, NoPagesFound, PagesFetchFailed, SearchFailed
from utils.http_client import create_scraper_session
from utils.image_proxy import build_proxy_url

logger = logging.getLogger(__name__)


class WeebCentralAdapter(SourceAdapter):
    """Scrape WeebCentral's HTMX endpoints."""

    plugin_id = "weebcentral"
    display_name = "WeebCentral"
    version = "1.0.0"

    _SERIES_ID_PATTERN = re.compile(r"/series/([^/]+)")
    _CHAPTER_NUMBER_PATTERN = re.compile(r"(\d+(?:\.\d+)?)")
    _RESULT_SELECTORS = (
        "#quick-search-result > div > a",
        "#quick-search-result a",
        ".search-result a, [data-series-id]",
    )
    _TITLE_SELECTORS = (".flex-1", None, "span, div")
    _PAGE_SELECTORS = ("section.flex-1 img", "img")

    @property
    def base_url(self) -> str:
        return self._config_str("base_url", CONFIG.service.weebcentral_base_url).rstrip("/")

    def _create_session(self) -> requests.Session:
        return create_scraper_session()

    # --- Contract -------------------------------------------------------
    def search(self, query: str) -> list[SearchResult]:
        logger.info("Searching WeebCentral for: %s", query)
        base = self.base_url
        headers = {
            "HX-Request": "true",
            "HX-Trigger": "quick-search-input",
            "HX-Trigger-Name": "text",
            "HX-Target": "quick-search-result",
            "HX-Current-URL": f"{base}/",
            "Referer": f"{base}/",
            "Origin": base,
        }

        with self._logged_failure("search"):
            response = self._session.post(
                f"{base}/search/simple?location=main",
                data={"text": query},
                headers=headers,
                timeout=CONFIG.download.search_timeout,
            )
            self._ensure_success(response, SearchFailed)

            markup = response.text or ""
            if not markup.strip():
                logger.info("Empty response from search")
                return []

            soup = self._parse_html(markup)
            links: list[Tag] = []
            for selector in self._RESULT_SELECTORS:
                links = soup.select(selector)
                if links:
                    break

            results: list[SearchResult] = []
            for link in links:
                href = link.get("href")
                if not isinstance(href, str) or not href:
                    continue

                identifier = self._extract_series_id(href)
                title = self._extract_title(link)
                if not identifier or not title:
                    continue

                results.append(SearchResult(title=title, cover_url=self._extract_cover(link), identifier=identifier))

        logger.info("Found %d results", len(results))
        return results

    def get_chapters(self, series_identifier: str) -> list[ChapterResult]:
        logger.info("Fetching chapters for series: %s", series_identifier)
        series_url = f"{self.base_url}/series/{series_identifier}"
        headers = {
            "HX-Request": "true",
            "HX-Target": "chapter-list",
            "HX-Current-URL": series_url,
            "Referer": series_url,
        }

        with self._logged_failure("get_chapters"):
            response = self._session.get(
                f"{series_url}/full-chapter-list",
                headers=headers,
                timeout=CONFIG.download.request_timeout,
            )
            self._ensure_success(response, ChaptersFetchFailed)

            soup = self._parse_html(response.text or "")
            chapters: list[ChapterResult] = []
            for row in soup.select("div.flex.items-center"):
                chapter = self._parse_chapter_row(row)
                if chapter is not None:
                    chapters.append(chapter)

            if not chapters:
                raise NoChaptersFound(self.plugin_id)

        # Rows arrive newest first.
        chapters.reverse()
        chapters = sort_chapters(chapters)
        logger.info("Found %d chapters", len(chapters))
        return chapters

    def get_page_urls(self, chapter_identifier: str) -> list[str]:
        logger.info("Fetching page URLs for chapter: %s", chapter_identifier)
        chapter_url = f"{self.base_url}/chapters/{chapter_identifier}"
        headers = {
            "HX-Request": "true",
            "HX-Current-URL": chapter_url,
            "Referer": chapter_url,
        }

        with self._logged_failure("get_page_urls"):
            response = self._session.get(
                f"{chapter_url}/images",
                params={"is_prev": "False", "reading_style": "long_strip"},
                headers=headers,
                timeout=CONFIG.download.request_timeout,
            )
            self._ensure_success(response, PagesFetchFailed)

            soup = self._parse_html(response.text or "")
            images: list[Tag] = []
            for selector in self._PAGE_SELECTORS:
                images = soup.select(selector)
                if images:
                    break

            sources = [src.strip() for src in (img.get("src") for img in images) if isinstance(src, str) and src.strip()]
            if not sources:
                raise NoPagesFound(self.plugin_id)

        referer = f"{self.base_url}/"
        pages = [build_proxy_url(src, referer=referer, proxy_base=self.proxy_base) for src in sources]
        logger.info("Found %d pages", len(pages))
        return pages

    # --- Parsing helpers ------------------------------------------------
    def _extract_series_id(self, href: str) -> str:
        match = self._SERIES_ID_PATTERN.search(href)
        return match.group(1) if match else ""

    def _extract_title(self, link: Tag) -> str:
        for selector in self._TITLE_SELECTORS:
            element = link if selector is None else link.select_one(selector)
            if element is None:
                continue
            title = element.get_text().strip()
            if title:
                return title
        return ""

    def _extract_cover(self, link: Tag) -> str:
        image = ""
        source = link.select_one("source")
        if source is not None:
            image = str(source.get("srcset") or source.get("src") or "")
            # srcset lists "url descriptor" candidates; keep the first URL.
            image = image.split(",")[0].strip().split(" ")[0]
        if not image:
            img = link.select_one("img")
            if img is not None:
                image = str(img.get("src") or img.get("data-src") or "")
        return image

    def _parse_chapter_row(self, row: Tag) -> ChapterResult | None:
        anchor = row.select_one("a")
        if anchor is None:
            return None
        href = anchor.get("href")
        if not isinstance(href, str) or "/chapters/" not in href:
            return None

        chapter_id = href.split("/chapters/", 1)[1]
        if not chapter_id:
            return None

        title_span = anchor.select_one("span.grow > span")
        title = title_span.get_text().strip() if title_span else ""

        number_match = self._CHAPTER_NUMBER_PATTERN.search(title)
        chapter_number = clean_chapter_number(number_match.group(1)) if number_match else ""

        published_at = ""
        time_tag = row.select_one("time")
        if time_tag is not None:
            published_at = str(time_tag.get("datetime") or "")

        return ChapterResult(
            identifier=chapter_id,
            title=title,
            chapter=chapter_number,
            published_at=published_at,
        )


__all__ = ["WeebCentralAdapter"]
