"""Error types raised by the fetchers and the store."""

from typing import Optional


class EnrichmentError(Exception):
    """Base class for every recoverable enrichment failure."""


class InvalidURLError(EnrichmentError):
    """The target is not an absolute http(s) URL."""


class NetworkError(EnrichmentError):
    """Connection failure, timeout, or redirect limit exceeded."""


class HTTPStatusError(EnrichmentError):
    """Upstream answered with a non-2xx status."""

    def __init__(self, status_code: int, reason: str = ""):
        self.status_code = status_code
        self.reason = reason
        super().__init__(f"HTTP {status_code} {reason}".rstrip())


class NotFoundError(HTTPStatusError):
    """Upstream no longer has the resource (permanent removal)."""

    def __init__(self, reason: str = "Not Found"):
        super().__init__(404, reason)


class RateLimitError(HTTPStatusError):
    """Upstream is throttling us."""

    def __init__(self, reason: str = "Too Many Requests", retry_after: Optional[str] = None):
        self.retry_after = retry_after
        super().__init__(429, reason)


class ContentTypeError(EnrichmentError):
    """Response is not an HTML document."""


class ParseError(EnrichmentError):
    """Markup or payload could not be decoded."""


class StorageError(EnrichmentError):
    """The persistent store failed to read or write."""


def status_error(status_code: int, reason: str = "", retry_after: Optional[str] = None) -> HTTPStatusError:
    """Map an HTTP status to the most specific error type."""
    if status_code == 404:
        return NotFoundError(reason or "Not Found")
    if status_code == 429:
        return RateLimitError(reason or "Too Many Requests", retry_after)
    return HTTPStatusError(status_code, reason)
