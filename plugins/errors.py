"""Exception hierarchy raised by source adapters."""

from __future__ import annotations


class SourceError(Exception):
    """Base class for failures scoped to a single adapter invocation."""

    def __init__(self, message: str, source: str = "") -> None:
        super().__init__(message)
        self.source = source


class UpstreamHTTPError(SourceError):
    """The upstream site answered with a non-success HTTP status."""

    action = "Request failed"

    def __init__(self, status: int, status_text: str = "", source: str = "") -> None:
        detail = f"{status} {status_text}".strip()
        super().__init__(f"{self.action}: {detail}", source)
        self.status = status
        self.status_text = status_text


class SearchFailed(UpstreamHTTPError):
    action = "Search failed"


class ChaptersFetchFailed(UpstreamHTTPError):
    action = "Failed to fetch chapters"


class PagesFetchFailed(UpstreamHTTPError):
    action = "Failed to fetch page URLs"


class MalformedResponse(SourceError):
    """The upstream payload did not have the expected JSON or HTML shape."""


class NoChaptersFound(SourceError):
    def __init__(self, source: str = "") -> None:
        super().__init__("No chapters found", source)


class NoPagesFound(SourceError):
    def __init__(self, source: str = "") -> None:
        super().__init__("No pages found", source)


class InvalidChapterIdentifier(SourceError):
    """A chapter identifier could not be decoded by the adapter that owns it."""


class ManifestError(Exception):
    """A plugin manifest or registry file is missing or invalid."""


__all__ = [
    "ChaptersFetchFailed",
    "InvalidChapterIdentifier",
    "MalformedResponse",
    "ManifestError",
    "NoChaptersFound",
    "NoPagesFound",
    "PagesFetchFailed",
    "SearchFailed",
    "SourceError",
    "UpstreamHTTPError",
]
