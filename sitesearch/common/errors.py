from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    ALREADY_RUNNING = "already_running"
    NOT_RUNNING = "not_running"
    OUTSIDE_CONFIGURED_SITES = "outside_configured_sites"
    INVALID_URL = "invalid_url"
    FETCH_ERROR = "fetch_error"


class SearchEngineError(Exception):
    """Base class for errors raised by the indexing and search services."""


class EmptyQueryError(SearchEngineError):
    def __init__(self, message: str = "Search query is empty") -> None:
        super().__init__(message)


class FetchError(SearchEngineError):
    """A page could not be downloaded or has content we do not index."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"{reason}: {url}")
        self.url = url
        self.reason = reason


class ParseError(SearchEngineError):
    pass
