"""Webtoons source adapter.

Search and the episode list use JSON endpoints; page images are scraped from
the episode viewer. Chapter identifiers pack the series number, the viewer
link and the episode number into one string (see `WebtoonsChapterId`), so
``get_page_urls`` needs no extra lookup.

Field lookups, in order of preference:

* search identifier: ``titleNo`` (entries without a numeric one are dropped)
* search title: ``title``, then ``"Untitled"``
* search cover: ``thumbnailImage2``, ``thumbnailMobile``
* chapter number: ``episodeNo``, then ``"0"``
* chapter title: ``episodeTitle``, then ``"Episode {episodeNo}"``
* chapter date: ``exposureDateMillis``, then the current time
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlsplit

from config import CONFIG
from plugins.base import ChapterResult, SearchResult, SourceAdapter, first_present, sort_chapters, to_iso8601
from plugins.errors import (
    ChaptersFetchFailed,
    InvalidChapterIdentifier,
    MalformedResponse,
    NoPagesFound,
    PagesFetchFailed,
    SearchFailed,
)
from utils.image_proxy import build_cover_proxy_url, build_proxy_url

logger = logging.getLogger(__name__)

_CHAPTER_ID_PATTERN = re.compile(r"id(\d+)viewerLink(.+)chNum(.+)")


@dataclass(frozen=True, slots=True)
class WebtoonsChapterId:
    """Series number, viewer link and episode number packed into one identifier.

    The wire format is ``id{series}viewerLink{link}chNum{episode}`` with every
    ``-`` replaced by ``_``. Decoding returns the substituted values; hyphens
    are not restored.
    """

    series_id: str
    viewer_link: str
    episode_no: str

    def encode(self) -> str:
        return f"id{self.series_id}viewerLink{self.viewer_link}chNum{self.episode_no}".replace("-", "_")

    @classmethod
    def decode(cls, identifier: str) -> WebtoonsChapterId:
        match = _CHAPTER_ID_PATTERN.search(identifier)
        if match is None:
            raise InvalidChapterIdentifier(f"Invalid chapter ID format: {identifier!r}", WebtoonsAdapter.plugin_id)
        series_id, viewer_link, episode_no = match.groups()
        return cls(series_id=series_id, viewer_link=viewer_link, episode_no=episode_no)


class WebtoonsAdapter(SourceAdapter):
    """Talk to the Webtoons search and mobile episode APIs."""

    plugin_id = "webtoons"
    display_name = "Webtoons"
    version = "1.0.0"

    _THUMBNAIL_KEYS = ("thumbnailImage2", "thumbnailMobile")

    @property
    def base_url(self) -> str:
        return self._config_str("base_url", CONFIG.service.webtoons_base_url).rstrip("/")

    @property
    def mobile_url(self) -> str:
        return self._config_str("mobile_url", CONFIG.service.webtoons_mobile_url).rstrip("/")

    @property
    def referer(self) -> str:
        return f"{self.base_url}/"

    # --- Contract -------------------------------------------------------
    def search(self, query: str) -> list[SearchResult]:
        logger.info("Searching Webtoons for: %s", query)
        params = {
            "keyword": query,
            "q_enc": "UTF-8",
            "st": "1",
            "r_format": "json",
            "r_enc": "UTF-8",
        }

        with self._logged_failure("search"):
            response = self._session.get(
                f"{self.base_url}{CONFIG.service.webtoons_search_path}",
                params=params,
                headers={"Referer": self.referer},
                timeout=CONFIG.download.search_timeout,
            )
            self._ensure_success(response, SearchFailed)

            try:
                payload = response.json()
            except ValueError:
                logger.info("Search returned a body that is not JSON")
                return []

            result = payload.get("result") if isinstance(payload, dict) else None
            if not isinstance(result, dict) or result.get("total") == 0:
                logger.info("No results found")
                return []

            results: list[SearchResult] = []
            for item in result.get("searchedList") or []:
                if not isinstance(item, dict):
                    continue
                title_no = item.get("titleNo")
                if isinstance(title_no, bool) or not str(title_no).isdigit():
                    continue
                results.append(
                    SearchResult(
                        title=str(item.get("title") or "Untitled"),
                        cover_url=self._build_cover_url(str(first_present(item, self._THUMBNAIL_KEYS))),
                        identifier=str(title_no),
                    )
                )

        logger.info("Found %d results", len(results))
        return results

    def get_chapters(self, series_identifier: str) -> list[ChapterResult]:
        logger.info("Fetching chapters for series: %s", series_identifier)
        episodes_url = f"{self.mobile_url}/api/v1/webtoon/{series_identifier}/episodes"
        episodes: list[dict[str, Any]] = []

        with self._logged_failure("get_chapters"):
            cursor: Any = 0
            seen_cursors: set[Any] = set()
            while cursor is not None:
                seen_cursors.add(cursor)
                logger.debug("Fetching episodes from %s (cursor=%s)", episodes_url, cursor)
                response = self._session.get(
                    episodes_url,
                    params={"pageSize": CONFIG.service.webtoons_page_size, "cursor": cursor},
                    timeout=CONFIG.download.request_timeout,
                )
                self._ensure_success(response, ChaptersFetchFailed)

                page, next_cursor = self._parse_episode_page(response)
                episodes.extend(page)
                logger.debug("Fetched %d episodes (total: %d)", len(page), len(episodes))

                if not page:
                    break
                if next_cursor is not None and next_cursor in seen_cursors:
                    logger.warning("Episodes API repeated cursor %s; stopping pagination", next_cursor)
                    break
                cursor = next_cursor

        if not episodes:
            logger.warning("No episodes found")
            return []

        chapters = [
            chapter
            for chapter in (self._build_chapter(series_identifier, episode) for episode in episodes)
            if chapter is not None
        ]
        chapters = sort_chapters(chapters)
        logger.info("Successfully parsed %d chapters", len(chapters))
        return chapters

    def get_page_urls(self, chapter_identifier: str) -> list[str]:
        logger.info("Fetching page URLs for chapter: %s", chapter_identifier)

        with self._logged_failure("get_page_urls"):
            chapter_id = WebtoonsChapterId.decode(chapter_identifier)
            viewer_url = self._resolve_viewer_url(chapter_id.viewer_link)
            logger.debug("Fetching viewer URL: %s", viewer_url)

            response = self._session.get(viewer_url, timeout=CONFIG.download.request_timeout)
            self._ensure_success(response, PagesFetchFailed)

            soup = self._parse_html(response.text or "")
            container = soup.select_one("#_imageList")
            if container is None:
                raise MalformedResponse("_imageList container not found in chapter viewer", self.plugin_id)

            image_urls = [
                url.strip()
                for url in (img.get("data-url") for img in container.select("img[data-url]"))
                if isinstance(url, str) and url.strip()
            ]
            if not image_urls:
                raise NoPagesFound(self.plugin_id)

        pages = [build_proxy_url(url, referer=self.referer, proxy_base=self.proxy_base) for url in image_urls]
        logger.info("Found %d pages (using proxy URLs)", len(pages))
        return pages

    # --- Helpers --------------------------------------------------------
    def _build_cover_url(self, thumbnail: str) -> str:
        if not thumbnail:
            return ""
        if thumbnail.startswith(("http://", "https://")):
            cover_url = thumbnail
        else:
            path = thumbnail if thumbnail.startswith("/") else f"/{thumbnail}"
            cover_url = f"{CONFIG.service.webtoons_thumbnail_url}{path}"

        cdn_host = urlsplit(CONFIG.service.webtoons_thumbnail_url).netloc
        if cdn_host and cdn_host in cover_url:
            return build_cover_proxy_url(cover_url, referer=self.referer, proxy_base=self.proxy_base)
        return cover_url

    def _parse_episode_page(self, response: Any) -> tuple[list[dict[str, Any]], Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedResponse("Episodes API returned no data", self.plugin_id) from exc

        if not payload:
            raise MalformedResponse("Episodes API returned no data", self.plugin_id)
        if not isinstance(payload, dict) or not payload.get("success"):
            raise MalformedResponse("Episodes API returned success=false", self.plugin_id)

        result = payload.get("result")
        episode_list = result.get("episodeList") if isinstance(result, dict) else None
        if not isinstance(episode_list, list):
            raise MalformedResponse("Invalid API response structure", self.plugin_id)

        page = [episode for episode in episode_list if isinstance(episode, dict)]
        return page, result.get("nextCursor") or None

    def _build_chapter(self, series_identifier: str, episode: dict[str, Any]) -> ChapterResult | None:
        viewer_link = episode.get("viewerLink")
        if not isinstance(viewer_link, str) or not viewer_link:
            logger.debug("Skipping episode without viewerLink: %s", episode.get("episodeNo"))
            return None

        episode_no = str(episode.get("episodeNo") or "0")
        title = str(episode.get("episodeTitle") or f"Episode {episode_no}").strip()
        identifier = WebtoonsChapterId(series_identifier, viewer_link, episode_no).encode()

        return ChapterResult(
            identifier=identifier,
            title=title,
            volume="",
            chapter=episode_no,
            pages=0,
            language="en",
            group_id="",
            published_at=self._episode_date(episode.get("exposureDateMillis")),
        )

    @staticmethod
    def _episode_date(millis: Any) -> str:
        if isinstance(millis, (int, float)) and not isinstance(millis, bool) and millis:
            try:
                return to_iso8601(datetime.fromtimestamp(millis / 1000, tz=timezone.utc))
            except (OverflowError, OSError, ValueError):
                logger.debug("Ignoring invalid exposureDateMillis %s", millis)
        return to_iso8601(datetime.now(timezone.utc))

    def _resolve_viewer_url(self, viewer_link: str) -> str:
        if viewer_link.startswith(("http://", "https://")):
            return viewer_link
        path = viewer_link if viewer_link.startswith("/") else f"/{viewer_link}"
        return f"{self.base_url}{path}"


__all__ = ["WebtoonsAdapter", "WebtoonsChapterId"]
