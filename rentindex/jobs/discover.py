"""
Discover job: turn an adapter's category-page crawl into queued work.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from db.models.job_run import JobRunType
from db.repositories.rental_listing_repository import RentalListingRepository
from db.repositories.scrape_queue_repository import ScrapeQueueRepository
from db.types import utcnow
from rentindex.domain.listings import DiscoveredUrl
from rentindex.domain.results import DiscoverResult
from rentindex.jobs.base import JobRunTracker, PipelineJob, SessionFactory
from rentindex.scraping.adapters.base import SourceAdapter
from rentindex.scraping.config.models import PipelineSettings
from rentindex.scraping.errors import SourceDisabledError
from rentindex.scraping.logging_utils import NoopReporter, PipelineReporter, log_event
from rentindex.scraping.url import canonicalize_url

logger = logging.getLogger(__name__)

NEW_LISTING_PRIORITY = 10
STALE_LISTING_PRIORITY = 0


class DiscoverJob(PipelineJob):
    """
    Enqueue brand-new URLs and known listings due for a price refresh.

    URLs already waiting in the queue are skipped, as are known listings
    seen within the re-scrape window and unknown URLs whose queue item was
    finalized within that window.
    """

    job_type = JobRunType.DISCOVER

    def __init__(
        self,
        *,
        session_factory: SessionFactory,
        settings: PipelineSettings,
        tracker: JobRunTracker | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(session_factory=session_factory, tracker=tracker, clock=clock)
        self._settings = settings

    def run(
        self,
        adapter: SourceAdapter,
        *,
        max_urls: int | None = None,
        reporter: PipelineReporter | None = None,
    ) -> DiscoverResult:
        reporter = reporter or NoopReporter()
        cap = max_urls or adapter.config.max_urls or self._settings.max_urls
        result = DiscoverResult(source=adapter.name)

        def body(result: DiscoverResult) -> None:
            if not adapter.config.enabled:
                raise SourceDisabledError(f"Source {adapter.name} is disabled")

            reporter.progress("discover", 0.0, f"Crawling {adapter.name} category pages")
            discovered = adapter.discover(reporter)
            result.discovered = len(discovered)

            unique = _dedupe(discovered)
            result.unique = len(unique)
            candidates = list(unique.items())[:cap]
            result.capped = len(unique) - len(candidates)
            reporter.log(
                "info",
                f"Discovered {result.discovered} URLs ({result.unique} unique, {result.capped} over cap)",
            )

            self._enqueue(adapter.name, candidates, result)
            reporter.progress("discover", 100.0, f"Queued {result.enqueued} URLs")

        return self._tracked(
            result,
            body,
            source=adapter.name,
            request_payload={"source": adapter.name, "max_urls": cap},
        )

    def _enqueue(
        self,
        source: str,
        candidates: list[tuple[str, DiscoveredUrl]],
        result: DiscoverResult,
    ) -> None:
        rescrape_cutoff = self._clock() - timedelta(days=self._settings.rescrape_after_days)
        urls = [url for url, _ in candidates]

        with self._session_factory() as session:
            queue = ScrapeQueueRepository(session)
            listings = RentalListingRepository(session)

            queued = queue.queued_urls(source=source, canonical_urls=urls)
            last_seen = listings.last_seen_by_url(canonical_urls=urls)
            recently_finished = queue.recently_finished_urls(
                source=source,
                canonical_urls=[url for url in urls if url not in queued and url not in last_seen],
                since=rescrape_cutoff,
            )

            for url, discovered in candidates:
                if url in queued:
                    result.skipped_queued += 1
                    continue

                seen_at = last_seen.get(url)
                if seen_at is None:
                    if url in recently_finished:
                        result.skipped_fresh += 1
                        continue
                    queue.enqueue(
                        source=source,
                        canonical_url=url,
                        source_listing_id=discovered.source_listing_id,
                        priority=NEW_LISTING_PRIORITY,
                    )
                    result.queued_new += 1
                elif seen_at < rescrape_cutoff:
                    queue.enqueue(
                        source=source,
                        canonical_url=url,
                        source_listing_id=discovered.source_listing_id,
                        priority=STALE_LISTING_PRIORITY,
                    )
                    result.queued_stale += 1
                else:
                    result.skipped_fresh += 1

            session.commit()

        log_event(
            logger,
            logging.INFO,
            "discover_enqueued",
            source=source,
            queued_new=result.queued_new,
            queued_stale=result.queued_stale,
            skipped_queued=result.skipped_queued,
            skipped_fresh=result.skipped_fresh,
        )


def _dedupe(discovered: list[DiscoveredUrl]) -> dict[str, DiscoveredUrl]:
    unique: dict[str, DiscoveredUrl] = {}
    for item in discovered:
        canonical = canonicalize_url(item.url)
        if not canonical or canonical in unique:
            continue
        unique[canonical] = item
    return unique
