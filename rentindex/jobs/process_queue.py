"""
Process-queue job: claim queued URLs, scrape them and apply the listing
lifecycle.

Per item, in one transaction together with the queue transition:

- adapter returns None or the classifier rejects: deactivate a known listing
- no usable price: finalize with a reason, no listing is created
- success: upsert the listing, bump last_seen_at, append one snapshot
- any exception: roll back and count a failed attempt (RETRY, or DONE at the cap)
- claim lost before completion: roll back, nothing is written

A listing under manual override never has its property_type changed or its
is_active flag turned back on by this job.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from db.models.job_run import JobRunStatus, JobRunType
from db.models.rental_listing import RentalListing
from db.models.scrape_queue import ScrapeQueueItem, ScrapeQueueStatus
from db.repositories.rental_listing_repository import RentalListingRepository
from db.repositories.rental_snapshot_repository import RentalSnapshotRepository
from db.repositories.scrape_queue_repository import QueueOutcome, ScrapeQueueRepository
from db.types import utcnow
from rentindex.domain.listings import PropertyType, ScrapedListing
from rentindex.domain.results import ProcessQueueResult
from rentindex.jobs.base import JobRunTracker, PipelineJob, SessionFactory, format_error
from rentindex.scraping.adapters.base import SourceAdapter
from rentindex.scraping.classifier import classify
from rentindex.scraping.config.models import PipelineSettings
from rentindex.scraping.errors import SourceDisabledError
from rentindex.scraping.fingerprint import fingerprint
from rentindex.scraping.locations import reconcile_location
from rentindex.scraping.logging_utils import NoopReporter, PipelineReporter, log_event
from rentindex.scraping.pacing import StealthPacer

logger = logging.getLogger(__name__)

MAX_REPORTED_ERRORS = 20


class ItemOutcome:
    INSERTED = "inserted"
    UPDATED = "updated"
    DEACTIVATED = "deactivated"
    FILTERED = "filtered"
    NO_PRICE = "no_price"
    SKIPPED = "skipped"
    RETRY = "retry"
    EXHAUSTED = "exhausted"
    LOST_CLAIM = "lost_claim"


class ProcessQueueJob(PipelineJob):
    job_type = JobRunType.PROCESS_QUEUE

    def __init__(
        self,
        *,
        session_factory: SessionFactory,
        settings: PipelineSettings,
        pacer: StealthPacer,
        tracker: JobRunTracker | None = None,
        shutdown_event: threading.Event | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(session_factory=session_factory, tracker=tracker, clock=clock)
        self._settings = settings
        self._pacer = pacer
        self._shutdown = shutdown_event or threading.Event()

    def run(
        self,
        adapter: SourceAdapter,
        *,
        max_items: int | None = None,
        reporter: PipelineReporter | None = None,
    ) -> ProcessQueueResult:
        reporter = reporter or NoopReporter()
        limit = max_items or adapter.config.max_items or self._settings.max_process
        result = ProcessQueueResult(source=adapter.name)

        def body(result: ProcessQueueResult) -> None:
            if not adapter.config.enabled:
                raise SourceDisabledError(f"Source {adapter.name} is disabled")

            result.released_expired = self._release_expired(adapter.name)
            self._run_batches(adapter, limit=limit, result=result, reporter=reporter)

            failures = result.retried + result.failed
            if result.processed > 0 and failures == result.processed:
                result.status = JobRunStatus.FAILED
                result.error = f"All {result.processed} processed items failed"

        return self._tracked(
            result,
            body,
            source=adapter.name,
            request_payload={"source": adapter.name, "max_items": limit},
        )

    # ------------------------------------------------------------------
    # Batch loop
    # ------------------------------------------------------------------

    def _release_expired(self, source: str) -> int:
        older_than = self._clock() - timedelta(minutes=self._settings.claim_ttl_minutes)
        with self._session_factory() as session:
            released = ScrapeQueueRepository(session).release_expired_claims(
                source=source,
                older_than=older_than,
            )
            session.commit()
        if released:
            log_event(logger, logging.WARNING, "queue_expired_claims_released", source=source, released=released)
        return released

    def _run_batches(
        self,
        adapter: SourceAdapter,
        *,
        limit: int,
        result: ProcessQueueResult,
        reporter: PipelineReporter,
    ) -> None:
        remaining = limit
        batch_number = 0
        # Items already handled in this run wait for the next run, even when released or retried.
        seen: set[uuid.UUID] = set()
        with ThreadPoolExecutor(
            max_workers=self._settings.worker_count,
            thread_name_prefix=f"rentals-{adapter.name}",
        ) as executor:
            while remaining > 0:
                if self._shutdown.is_set():
                    log_event(logger, logging.INFO, "process_queue_shutdown_requested", source=adapter.name)
                    reporter.log("warn", "Shutdown requested; stopping after the current batch")
                    break
                if batch_number > 0:
                    self._pacer.polite_delay()

                items = self._claim(
                    adapter.name,
                    min(self._settings.process_batch_size, remaining),
                    exclude_ids=seen,
                )
                if not items:
                    break
                seen.update(item.id for item in items)
                batch_number += 1
                remaining -= len(items)
                result.claimed += len(items)

                outcomes = list(
                    executor.map(lambda item: self._process_item(adapter, item, reporter), items)
                )
                for item, (outcome, error) in zip(items, outcomes):
                    _tally(result, outcome, error, item)

                reporter.progress(
                    "process",
                    100.0 * (limit - remaining) / limit,
                    f"Batch {batch_number}: {result.processed} processed",
                )

    def _claim(self, source: str, limit: int, *, exclude_ids: set[uuid.UUID]) -> list[ScrapeQueueItem]:
        with self._session_factory() as session:
            items = ScrapeQueueRepository(session, max_attempts=self._settings.max_attempts).claim(
                source=source,
                limit=limit,
                exclude_ids=exclude_ids,
            )
            for item in items:
                session.expunge(item)
            session.commit()
        return items

    # ------------------------------------------------------------------
    # One item
    # ------------------------------------------------------------------

    def _process_item(
        self,
        adapter: SourceAdapter,
        item: ScrapeQueueItem,
        reporter: PipelineReporter,
    ) -> tuple[str, str | None]:
        session = self._session_factory()
        try:
            queue = ScrapeQueueRepository(session, max_attempts=self._settings.max_attempts)
            if self._pacer.should_skip():
                queue.release(item)
                session.commit()
                return ItemOutcome.SKIPPED, None

            self._pacer.night_idle_delay()
            try:
                outcome, reason = self._apply_scrape(session, adapter, item, reporter)
                status = queue.complete(item, QueueOutcome.done(reason))
                if status is None:
                    # Listing writes only land together with the queue transition.
                    session.rollback()
                else:
                    session.commit()
            except Exception as exc:
                session.rollback()
                error = format_error(exc)
                status = queue.complete(item, QueueOutcome.failure(error))
                session.commit()
                log_event(
                    logger,
                    logging.WARNING,
                    "queue_item_failed",
                    source=adapter.name,
                    url=item.canonical_url,
                    attempts=item.attempts + 1,
                    status=status,
                    error=error,
                )
                reporter.log("warn", f"Failed {item.canonical_url}: {error}")
                if status is None:
                    return ItemOutcome.LOST_CLAIM, error
                return (ItemOutcome.EXHAUSTED if status == ScrapeQueueStatus.DONE else ItemOutcome.RETRY), error

            if status is None:
                log_event(logger, logging.WARNING, "queue_claim_lost", source=adapter.name, url=item.canonical_url)
                return ItemOutcome.LOST_CLAIM, None
            return outcome, None
        finally:
            session.close()
            self._pacer.maybe_breather()

    def _apply_scrape(
        self,
        session: Session,
        adapter: SourceAdapter,
        item: ScrapeQueueItem,
        reporter: PipelineReporter,
    ) -> tuple[str, str | None]:
        listings = RentalListingRepository(session)
        scraped = adapter.scrape(item.canonical_url, reporter)
        self._pacer.scroll_delay()

        if scraped is None:
            return self._deactivate_known(listings, item, reason="not_found")

        classification = classify(scraped.title, scraped.description, item.canonical_url)
        if classification.rejected:
            return self._deactivate_known(
                listings,
                item,
                reason=f"non_residential: {classification.matched_keyword}",
            )

        if not scraped.has_usable_price:
            return ItemOutcome.NO_PRICE, "no_price"

        if classification.is_keyword_match or scraped.property_type not in PropertyType.ALL:
            property_type = classification.property_type
        else:
            property_type = scraped.property_type

        city, district = reconcile_location(scraped.city, scraped.district)
        source_listing_id = scraped.source_listing_id or item.source_listing_id
        content_fingerprint = None
        if not source_listing_id:
            content_fingerprint = fingerprint(
                scraped.title,
                district,
                scraped.bedrooms,
                property_type,
                scraped.price_monthly_usd,
                scraped.first_image_url,
            )

        now = self._clock()
        listing = listings.resolve(
            source=item.source,
            canonical_url=item.canonical_url,
            source_listing_id=source_listing_id,
            fingerprint=content_fingerprint,
        )
        if listing is None:
            listing = RentalListing(
                source=item.source,
                canonical_url=item.canonical_url,
                property_type=property_type,
                first_seen_at=now,
                last_seen_at=now,
                is_active=True,
                manual_override=False,
            )
            outcome = ItemOutcome.INSERTED
        else:
            if listing.canonical_url != item.canonical_url:
                log_event(
                    logger,
                    logging.INFO,
                    "listing_url_drift",
                    listing_id=listing.id,
                    old_url=listing.canonical_url,
                    new_url=item.canonical_url,
                )
                listing.canonical_url = item.canonical_url
            if not listing.manual_override:
                listing.property_type = property_type
                listing.is_active = True
            listing.last_seen_at = now
            outcome = ItemOutcome.UPDATED

        _apply_fields(
            listing,
            scraped,
            city=city,
            district=district,
            source_listing_id=source_listing_id,
            content_fingerprint=content_fingerprint,
        )
        listings.add(listing)
        RentalSnapshotRepository(session).record(listing, scraped_at=now)
        return outcome, None

    @staticmethod
    def _deactivate_known(
        listings: RentalListingRepository,
        item: ScrapeQueueItem,
        *,
        reason: str,
    ) -> tuple[str, str]:
        listing = listings.resolve(
            source=item.source,
            canonical_url=item.canonical_url,
            source_listing_id=item.source_listing_id,
        )
        if listing is not None and listings.deactivate(listing):
            return ItemOutcome.DEACTIVATED, reason
        return ItemOutcome.FILTERED, reason


def _apply_fields(
    listing: RentalListing,
    scraped: ScrapedListing,
    *,
    city: str,
    district: str | None,
    source_listing_id: str | None,
    content_fingerprint: str | None,
) -> None:
    listing.title = scraped.title.strip()
    listing.description = scraped.description
    listing.city = city
    listing.district = district
    listing.latitude = scraped.latitude
    listing.longitude = scraped.longitude
    listing.bedrooms = scraped.bedrooms
    listing.bathrooms = scraped.bathrooms
    listing.size_sqm = scraped.size_sqm
    listing.price_original = scraped.price_original
    listing.price_monthly_usd = scraped.price_monthly_usd
    listing.currency = scraped.currency
    listing.image_urls = list(scraped.image_urls)
    listing.amenities = list(scraped.amenities)
    if scraped.posted_at is not None:
        listing.posted_at = scraped.posted_at
    if source_listing_id:
        listing.source_listing_id = source_listing_id
    if content_fingerprint:
        listing.content_fingerprint = content_fingerprint


def _tally(result: ProcessQueueResult, outcome: str, error: str | None, item: ScrapeQueueItem) -> None:
    if outcome == ItemOutcome.SKIPPED:
        result.skipped += 1
        return

    result.processed += 1
    if outcome == ItemOutcome.INSERTED:
        result.inserted += 1
        result.snapshots += 1
    elif outcome == ItemOutcome.UPDATED:
        result.updated += 1
        result.snapshots += 1
    elif outcome == ItemOutcome.DEACTIVATED:
        result.deactivated += 1
    elif outcome == ItemOutcome.FILTERED:
        result.filtered += 1
    elif outcome == ItemOutcome.NO_PRICE:
        result.no_price += 1
    elif outcome == ItemOutcome.RETRY:
        result.retried += 1
    elif outcome in (ItemOutcome.EXHAUSTED, ItemOutcome.LOST_CLAIM):
        result.failed += 1

    if error and len(result.errors) < MAX_REPORTED_ERRORS:
        result.errors.append(f"{item.canonical_url}: {error}")
