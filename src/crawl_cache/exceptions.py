"""Exception hierarchy for crawl-cache."""

from __future__ import annotations


class CrawlCacheError(Exception):
    """Base exception for all crawl-cache errors."""


class ResourceNotFoundError(CrawlCacheError, KeyError):
    """Raised when a resource URI is unknown or its entry has expired.

    Callers should treat this as a cache miss.
    """

    def __init__(self, uri: str) -> None:
        super().__init__(f"Resource not found: {uri}")
        self.uri = uri

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return str(self.args[0])


class InvalidHandleError(CrawlCacheError, ValueError):
    """Raised when a URI does not match the backend's handle format."""

    def __init__(self, uri: str, reason: str = "") -> None:
        message = f"Invalid resource URI: {uri}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.uri = uri


class DocumentFormatError(CrawlCacheError, ValueError):
    """Stored document could not be parsed into metadata + content."""

    def __init__(self, message: str, path: str = "") -> None:
        super().__init__(message)
        self.path = path


__all__ = [
    "CrawlCacheError",
    "ResourceNotFoundError",
    "InvalidHandleError",
    "DocumentFormatError",
]
