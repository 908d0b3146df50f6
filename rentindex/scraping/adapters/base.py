"""
Contract between the pipeline core and per-website source adapters.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from rentindex.domain.listings import DiscoveredUrl, ScrapedListing
from rentindex.scraping.config.models import PipelineSettings, SourceConfig
from rentindex.scraping.fetch_client import ThrottledFetchClient
from rentindex.scraping.logging_utils import PipelineReporter


class SourceAdapter(ABC):
    """
    One listing website.

    ``discover`` walks category pages and returns listing URLs. ``scrape``
    extracts one listing, returning None when the page is gone or is not a
    residential rental. Raising from ``scrape`` marks a transient failure and
    the queue item is retried later.
    """

    def __init__(
        self,
        *,
        config: SourceConfig,
        fetch_client: ThrottledFetchClient,
        settings: PipelineSettings,
    ) -> None:
        self.config = config
        self.fetch_client = fetch_client
        self.settings = settings

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def max_pages(self) -> int:
        return self.config.max_pages or self.settings.max_pages

    @abstractmethod
    def discover(self, reporter: PipelineReporter) -> list[DiscoveredUrl]:
        """
        Return listing URLs found on the source's category pages.
        """

    @abstractmethod
    def scrape(self, url: str, reporter: PipelineReporter) -> ScrapedListing | None:
        """
        Return the listing at ``url``, or None when it no longer exists or is filtered.
        """

    def fetch_html(self, url: str) -> str | None:
        """
        Fetch a page; None on permanent failure, raises ``TransientFetchError``
        when retries were exhausted.
        """

        return self.fetch_client.fetch_or_raise(url)
