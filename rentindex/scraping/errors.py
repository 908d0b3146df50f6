"""
Exceptions raised by the rental scraping layer.
"""

from __future__ import annotations


class ScrapingError(Exception):
    """Base exception for rental scraping failures."""


class FetchError(ScrapingError):
    """Raised when a page could not be fetched."""

    def __init__(self, message: str, *, url: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class TransientFetchError(FetchError):
    """Raised when retries were exhausted on a retryable failure; the queue item should be retried later."""


class UnknownSourceError(ScrapingError):
    """Raised when no source configuration matches a requested name."""


class SourceDisabledError(ScrapingError):
    """Raised when a job is requested for a disabled source."""


class AdapterConfigError(ScrapingError):
    """Raised when a source adapter cannot be resolved or constructed."""
