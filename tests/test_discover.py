"""
tests/test_discover.py

Discover job: dedupe, cap, and the new/stale/fresh/queued decisions.
"""

from __future__ import annotations

from datetime import timedelta

from sqlalchemy.orm import sessionmaker

from conftest import SOURCE, FakeAdapter
from db.models.job_run import JobRun, JobRunStatus, JobRunType
from db.models.rental_listing import RentalListing
from db.models.scrape_queue import ScrapeQueueStatus
from db.repositories.scrape_queue_repository import QueueOutcome, ScrapeQueueRepository
from db.types import utcnow
from rentindex.domain.listings import DiscoveredUrl
from rentindex.jobs.discover import NEW_LISTING_PRIORITY, STALE_LISTING_PRIORITY, DiscoverJob
from rentindex.scraping.config.models import PipelineSettings


def _job(session_factory: sessionmaker, pipeline_settings: PipelineSettings) -> DiscoverJob:
    return DiscoverJob(session_factory=session_factory, settings=pipeline_settings)


def _store_listing(session_factory: sessionmaker, url: str, *, days_ago: float) -> None:
    seen_at = utcnow() - timedelta(days=days_ago)
    with session_factory() as session:
        session.add(
            RentalListing(
                source=SOURCE,
                canonical_url=url,
                title="Known listing",
                city="Phnom Penh",
                property_type="APARTMENT",
                price_monthly_usd=500.0,
                first_seen_at=seen_at,
                last_seen_at=seen_at,
            )
        )
        session.commit()


def _queue_item(session_factory: sessionmaker, url: str):
    with session_factory() as session:
        return ScrapeQueueRepository(session).get_item(source=SOURCE, canonical_url=url)


def test_new_urls_are_queued_with_high_priority(
    session_factory: sessionmaker,
    pipeline_settings: PipelineSettings,
    adapter: FakeAdapter,
) -> None:
    adapter.discovered = [
        DiscoveredUrl("https://example.com/listing/1", source_listing_id="1"),
        DiscoveredUrl("https://example.com/listing/2"),
    ]

    result = _job(session_factory, pipeline_settings).run(adapter)

    assert result.status == JobRunStatus.SUCCESS
    assert result.queued_new == 2
    assert result.enqueued == 2
    item = _queue_item(session_factory, "https://example.com/listing/1")
    assert item.status == ScrapeQueueStatus.PENDING
    assert item.priority == NEW_LISTING_PRIORITY
    assert item.source_listing_id == "1"


def test_stale_listing_is_requeued_with_low_priority(
    session_factory: sessionmaker,
    pipeline_settings: PipelineSettings,
    adapter: FakeAdapter,
) -> None:
    url = "https://example.com/listing/stale"
    _store_listing(session_factory, url, days_ago=10)
    adapter.discovered = [DiscoveredUrl(url)]

    result = _job(session_factory, pipeline_settings).run(adapter)

    assert result.queued_stale == 1
    assert _queue_item(session_factory, url).priority == STALE_LISTING_PRIORITY


def test_recently_seen_listing_is_skipped(
    session_factory: sessionmaker,
    pipeline_settings: PipelineSettings,
    adapter: FakeAdapter,
) -> None:
    url = "https://example.com/listing/fresh"
    _store_listing(session_factory, url, days_ago=1)
    adapter.discovered = [DiscoveredUrl(url)]

    result = _job(session_factory, pipeline_settings).run(adapter)

    assert result.skipped_fresh == 1
    assert result.enqueued == 0
    assert _queue_item(session_factory, url) is None


def test_recently_finished_unknown_url_is_skipped(
    session_factory: sessionmaker,
    pipeline_settings: PipelineSettings,
    adapter: FakeAdapter,
) -> None:
    url = "https://example.com/listing/filtered"
    with session_factory() as session:
        queue = ScrapeQueueRepository(session)
        queue.enqueue(source=SOURCE, canonical_url=url)
        [item] = queue.claim(source=SOURCE, limit=1)
        queue.complete(item, QueueOutcome.done("non_residential: warehouse for"))
        session.commit()
    adapter.discovered = [DiscoveredUrl(url)]

    result = _job(session_factory, pipeline_settings).run(adapter)

    assert result.skipped_fresh == 1
    assert _queue_item(session_factory, url).status == ScrapeQueueStatus.DONE


def test_already_queued_url_is_left_alone(
    session_factory: sessionmaker,
    pipeline_settings: PipelineSettings,
    adapter: FakeAdapter,
) -> None:
    url = "https://example.com/listing/waiting"
    with session_factory() as session:
        ScrapeQueueRepository(session).enqueue(source=SOURCE, canonical_url=url, priority=3)
        session.commit()
    adapter.discovered = [DiscoveredUrl(url)]

    result = _job(session_factory, pipeline_settings).run(adapter)

    assert result.skipped_queued == 1
    assert _queue_item(session_factory, url).priority == 3


def test_tracking_variants_are_deduplicated(
    session_factory: sessionmaker,
    pipeline_settings: PipelineSettings,
    adapter: FakeAdapter,
) -> None:
    adapter.discovered = [
        DiscoveredUrl("https://Example.com/listing/1/?utm_source=feed"),
        DiscoveredUrl("https://example.com/listing/1#photos"),
        DiscoveredUrl("https://example.com:443/listing/1"),
    ]

    result = _job(session_factory, pipeline_settings).run(adapter)

    assert (result.discovered, result.unique, result.queued_new) == (3, 1, 1)
    assert _queue_item(session_factory, "https://example.com/listing/1") is not None


def test_cap_limits_candidates(
    session_factory: sessionmaker,
    pipeline_settings: PipelineSettings,
    adapter: FakeAdapter,
) -> None:
    adapter.discovered = [DiscoveredUrl(f"https://example.com/listing/{index}") for index in range(5)]

    result = _job(session_factory, pipeline_settings).run(adapter, max_urls=2)

    assert result.capped == 3
    assert result.queued_new == 2
    with session_factory() as session:
        counts = ScrapeQueueRepository(session).status_counts(source=SOURCE)
    assert counts[ScrapeQueueStatus.PENDING] == 2


def test_disabled_source_fails_without_crawling(
    session_factory: sessionmaker,
    pipeline_settings: PipelineSettings,
    make_adapter,
) -> None:
    disabled = make_adapter(enabled=False)
    disabled.discovered = [DiscoveredUrl("https://example.com/listing/1")]

    result = _job(session_factory, pipeline_settings).run(disabled)

    assert result.status == JobRunStatus.FAILED
    assert result.error == f"SourceDisabledError: Source {SOURCE} is disabled"
    assert _queue_item(session_factory, "https://example.com/listing/1") is None
    with session_factory() as session:
        run = session.get(JobRun, result.job_run_id)
    assert run.job_type == JobRunType.DISCOVER
    assert run.source == SOURCE
    assert run.status == JobRunStatus.FAILED
    assert run.request_payload == {"source": SOURCE, "max_urls": pipeline_settings.max_urls}
