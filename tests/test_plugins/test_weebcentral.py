"""Tests for the WeebCentral adapter."""

from __future__ import annotations

from typing import Any
from urllib.parse import parse_qs, urlsplit

import pytest

from plugins.errors import NoChaptersFound, NoPagesFound, PagesFetchFailed, SearchFailed
from plugins.weebcentral import WeebCentralAdapter


class FakeResponse:
    def __init__(self, text: str = "", status_code: int = 200, reason: str = "OK") -> None:
        self.text = text
        self.status_code = status_code
        self.reason = reason


class FakeSession:
    def __init__(self, responses: list[FakeResponse]) -> None:
        self.responses = list(responses)
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    def _next(self, method: str, url: str, kwargs: dict[str, Any]) -> FakeResponse:
        self.calls.append((method, url, kwargs))
        if not self.responses:
            raise AssertionError(f"No response available for {url}")
        return self.responses.pop(0)

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._next("GET", url, kwargs)

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._next("POST", url, kwargs)


def _adapter(*responses: FakeResponse) -> tuple[WeebCentralAdapter, FakeSession]:
    session = FakeSession(list(responses))
    return WeebCentralAdapter(session=session), session


SEARCH_HTML = """
<div id="quick-search-result">
  <div>
    <a href="https://weebcentral.com/series/01J76XY/One-Piece">
      <picture><source srcset="https://temp.compsci88.com/cover/small/01J76XY.webp 1x, big.webp 2x"></picture>
      <div class="flex-1">
        One Piece
      </div>
    </a>
  </div>
  <div>
    <a href="https://weebcentral.com/series/abc-1/Another">
      <img src="https://cdn.example/abc.jpg">
      <div class="flex-1">Another</div>
    </a>
  </div>
  <div>
    <a href="https://weebcentral.com/not-a-series"><div class="flex-1">Broken</div></a>
  </div>
</div>
"""


def test_search_parses_results_and_skips_invalid_links() -> None:
    adapter, session = _adapter(FakeResponse(SEARCH_HTML))

    results = adapter.search("one piece")

    assert [result.to_dict() for result in results] == [
        {
            "title": "One Piece",
            "cover_url": "https://temp.compsci88.com/cover/small/01J76XY.webp",
            "identifier": "01J76XY",
        },
        {"title": "Another", "cover_url": "https://cdn.example/abc.jpg", "identifier": "abc-1"},
    ]
    method, url, kwargs = session.calls[0]
    assert method == "POST"
    assert url == "https://weebcentral.com/search/simple?location=main"
    assert kwargs["data"] == {"text": "one piece"}
    assert kwargs["headers"]["HX-Request"] == "true"


def test_search_falls_back_to_generic_selectors() -> None:
    markup = '<ul class="search-result"><a href="/series/XYZ/Name"><span>Fallback Title</span></a></ul>'
    adapter, _ = _adapter(FakeResponse(markup))

    results = adapter.search("x")

    assert [(result.identifier, result.title) for result in results] == [("XYZ", "Fallback Title")]


def test_search_title_joins_inline_nodes_without_separator() -> None:
    markup = (
        '<div id="quick-search-result"><div><a href="/series/S1/x">'
        '<div class="flex-1"> <span>Foo</span><span>Bar</span> </div></a></div></div>'
    )
    adapter, _ = _adapter(FakeResponse(markup))

    assert adapter.search("foo")[0].title == "FooBar"


def test_search_empty_body_returns_no_results() -> None:
    adapter, _ = _adapter(FakeResponse("   "))

    assert adapter.search("nothing") == []


def test_search_http_error_raises() -> None:
    adapter, _ = _adapter(FakeResponse(status_code=403, reason="Forbidden"))

    with pytest.raises(SearchFailed, match="Search failed: 403 Forbidden"):
        adapter.search("x")


CHAPTERS_HTML = """
<div>
  <div class="flex items-center">
    <a href="https://weebcentral.com/chapters/CH3">
      <span class="grow"><span>Chapter 010</span></span>
      <time datetime="2024-05-03T00:00:00.000Z"></time>
    </a>
  </div>
  <div class="flex items-center">
    <a href="https://weebcentral.com/chapters/CH2"><span class="grow"><span>Chapter 2.5</span></span></a>
  </div>
  <div class="flex items-center">
    <a href="https://weebcentral.com/chapters/CH1"><span class="grow"><span>Chapter 2</span></span></a>
  </div>
  <div class="flex items-center"><a href="https://weebcentral.com/series/other">not a chapter</a></div>
</div>
"""


def test_get_chapters_returns_ascending_chapters() -> None:
    adapter, session = _adapter(FakeResponse(CHAPTERS_HTML))

    chapters = adapter.get_chapters("01J76XY")

    assert [(c.identifier, c.chapter, c.title) for c in chapters] == [
        ("CH1", "2", "Chapter 2"),
        ("CH2", "2.5", "Chapter 2.5"),
        ("CH3", "10", "Chapter 010"),
    ]
    assert chapters[-1].published_at == "2024-05-03T00:00:00.000Z"
    assert session.calls[0][1] == "https://weebcentral.com/series/01J76XY/full-chapter-list"


def test_get_chapters_without_rows_raises() -> None:
    adapter, _ = _adapter(FakeResponse("<div>empty</div>"))

    with pytest.raises(NoChaptersFound, match="No chapters found"):
        adapter.get_chapters("01J76XY")


def test_get_page_urls_wraps_images_in_proxy() -> None:
    markup = """
    <section class="flex-1">
      <img src="https://img.example/p1.png">
      <img src="  ">
      <img src="https://img.example/p2.png">
    </section>
    """
    adapter, session = _adapter(FakeResponse(markup))

    pages = adapter.get_page_urls("CH1")

    assert len(pages) == 2
    parsed = urlsplit(pages[0])
    assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == "http://localhost:8080/api/proxy/resource"
    query = parse_qs(parsed.query)
    assert query["url"] == ["https://img.example/p1.png"]
    assert query["referer"] == ["https://weebcentral.com/"]

    _, url, kwargs = session.calls[0]
    assert url == "https://weebcentral.com/chapters/CH1/images"
    assert kwargs["params"] == {"is_prev": "False", "reading_style": "long_strip"}


def test_get_page_urls_falls_back_to_any_image() -> None:
    adapter, _ = _adapter(FakeResponse('<div><img src="https://img.example/only.png"></div>'))

    pages = adapter.get_page_urls("CH1")

    assert len(pages) == 1
    assert "only.png" in pages[0]


def test_get_page_urls_without_images_raises() -> None:
    adapter, _ = _adapter(FakeResponse("<section class='flex-1'></section>"))

    with pytest.raises(NoPagesFound):
        adapter.get_page_urls("CH1")


def test_get_page_urls_http_error_raises() -> None:
    adapter, _ = _adapter(FakeResponse(status_code=500, reason="Server Error"))

    with pytest.raises(PagesFetchFailed, match="Failed to fetch page URLs: 500 Server Error"):
        adapter.get_page_urls("CH1")


def test_base_url_is_configurable() -> None:
    session = FakeSession([FakeResponse("")])
    adapter = WeebCentralAdapter(session=session, config={"base_url": "https://mirror.example/"})

    adapter.search("x")

    assert session.calls[0][1] == "https://mirror.example/search/simple?location=main"
