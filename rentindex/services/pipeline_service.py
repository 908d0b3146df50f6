"""
rentindex/services/pipeline_service.py

Service orchestration for the rental ingestion pipeline.

Wires source configs, adapters, the shared fetch client and pacer into the
jobs, and exposes the read/override operations used by the API.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from typing import Any

from sqlalchemy.orm import Session

from db.models.job_run import JobRun, JobRunStatus
from db.models.rental_listing import RentalListing
from db.models.rental_snapshot import RentalSnapshot
from db.repositories.job_run_repository import JobRunRepository
from db.repositories.rental_listing_repository import RentalListingRepository
from db.repositories.rental_snapshot_repository import RentalSnapshotRepository
from db.types import utcnow
from rentindex.domain.listings import PropertyType
from rentindex.domain.results import (
    BuildIndexResult,
    DiscoverResult,
    JobResult,
    MarkStaleResult,
    ProcessQueueResult,
)
from rentindex.jobs.base import JobRunTracker, SessionFactory
from rentindex.jobs.build_index import BuildIndexJob
from rentindex.jobs.discover import DiscoverJob
from rentindex.jobs.mark_stale import MarkStaleJob
from rentindex.jobs.process_queue import ProcessQueueJob
from rentindex.scraping.adapters.base import SourceAdapter
from rentindex.scraping.config import (
    FetchSettings,
    PacingSettings,
    PipelineSettings,
    SourceConfig,
    get_fetch_settings,
    get_pacing_settings,
    get_pipeline_settings,
    load_source_configs,
)
from rentindex.scraping.errors import ScrapingError, UnknownSourceError
from rentindex.scraping.fetch_client import ThrottledFetchClient
from rentindex.scraping.logging_utils import LoggingReporter, PipelineReporter, log_event
from rentindex.scraping.pacing import StealthPacer
from rentindex.scraping.registry import SourceAdapterRegistry

logger = logging.getLogger(__name__)


@dataclass
class DailyRunResult:
    """
    Every job result produced by one daily run, in execution order.
    """

    started_at: datetime
    results: list[JobResult] = field(default_factory=list)
    skipped_sources: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def failed_jobs(self) -> int:
        return sum(1 for result in self.results if result.status != JobRunStatus.SUCCESS)

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "results": [result.to_dict() for result in self.results],
            "skipped_sources": list(self.skipped_sources),
            "errors": list(self.errors),
            "failed_jobs": self.failed_jobs,
        }


class RentalPipelineService:
    """
    Runs pipeline jobs per source and answers JobRun / listing queries.

    Collaborators default to the environment-driven settings and the shared
    database session factory; tests inject their own.
    """

    def __init__(
        self,
        *,
        session_factory: SessionFactory | None = None,
        pipeline_settings: PipelineSettings | None = None,
        fetch_settings: FetchSettings | None = None,
        pacing_settings: PacingSettings | None = None,
        sources: list[SourceConfig] | None = None,
        registry: SourceAdapterRegistry | None = None,
        pacer: StealthPacer | None = None,
        fetch_client: ThrottledFetchClient | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._settings = pipeline_settings or get_pipeline_settings()
        self._fetch_settings = fetch_settings
        self._pacer = pacer or StealthPacer(pacing_settings or get_pacing_settings())
        self._fetch_client = fetch_client
        self._sources = sources
        self._registry = registry or SourceAdapterRegistry()
        self._clock = clock
        self._shutdown = threading.Event()
        self._adapters: dict[str, SourceAdapter] = {}
        self._adapters_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    @property
    def settings(self) -> PipelineSettings:
        return self._settings

    @property
    def registry(self) -> SourceAdapterRegistry:
        return self._registry

    @property
    def shutdown_event(self) -> threading.Event:
        return self._shutdown

    def request_shutdown(self) -> None:
        """
        Ask running process-queue jobs to stop after their current batch.
        """

        self._shutdown.set()

    def source_configs(self) -> list[SourceConfig]:
        if self._sources is None:
            self._sources = load_source_configs(config_path=self._settings.sources_config_path)
        return list(self._sources)

    def get_source(self, source: str) -> SourceConfig:
        wanted = source.strip().lower()
        for config in self.source_configs():
            if config.name == wanted:
                return config
        known = ", ".join(config.name for config in self.source_configs()) or "none configured"
        raise UnknownSourceError(f"Unknown source '{source}'. Configured sources: {known}.")

    def get_adapter(self, source: str) -> SourceAdapter:
        config = self.get_source(source)
        with self._adapters_lock:
            adapter = self._adapters.get(config.name)
            if adapter is None:
                adapter = self._registry.create_adapter(
                    config=config,
                    fetch_client=self._get_fetch_client(),
                    settings=self._settings,
                )
                self._adapters[config.name] = adapter
        return adapter

    def _get_fetch_client(self) -> ThrottledFetchClient:
        if self._fetch_client is None:
            self._fetch_client = ThrottledFetchClient(
                settings=self._fetch_settings or get_fetch_settings(),
                pacer=self._pacer,
            )
        return self._fetch_client

    def _sessions(self) -> SessionFactory:
        if self._session_factory is None:
            from db.session import get_session_factory

            self._session_factory = get_session_factory()
        return self._session_factory

    def _tracker(self) -> JobRunTracker:
        return JobRunTracker(self._sessions(), clock=self._clock)

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def discover(
        self,
        *,
        source: str,
        max_urls: int | None = None,
        reporter: PipelineReporter | None = None,
    ) -> DiscoverResult:
        adapter = self.get_adapter(source)
        job = DiscoverJob(
            session_factory=self._sessions(),
            settings=self._settings,
            tracker=self._tracker(),
            clock=self._clock,
        )
        return job.run(
            adapter,
            max_urls=max_urls,
            reporter=reporter or LoggingReporter(logger, source=adapter.name, job="discover"),
        )

    def process_queue(
        self,
        *,
        source: str,
        max_items: int | None = None,
        reporter: PipelineReporter | None = None,
    ) -> ProcessQueueResult:
        adapter = self.get_adapter(source)
        job = ProcessQueueJob(
            session_factory=self._sessions(),
            settings=self._settings,
            pacer=self._pacer,
            tracker=self._tracker(),
            shutdown_event=self._shutdown,
            clock=self._clock,
        )
        return job.run(
            adapter,
            max_items=max_items,
            reporter=reporter or LoggingReporter(logger, source=adapter.name, job="process_queue"),
        )

    def build_daily_index(self, *, index_date: date | None = None) -> BuildIndexResult:
        return self._index_job().build_daily(index_date)

    def build_monthly_index(self, *, year_month: str | None = None) -> BuildIndexResult:
        return self._index_job().build_monthly(year_month)

    def mark_stale(self, *, threshold_days: int | None = None) -> MarkStaleResult:
        job = MarkStaleJob(
            session_factory=self._sessions(),
            settings=self._settings,
            tracker=self._tracker(),
            clock=self._clock,
        )
        return job.run(threshold_days=threshold_days)

    def _index_job(self) -> BuildIndexJob:
        return BuildIndexJob(
            session_factory=self._sessions(),
            tracker=self._tracker(),
            clock=self._clock,
        )

    def run_daily(self, *, reporter: PipelineReporter | None = None) -> DailyRunResult:
        """
        Full daily cycle: for every enabled source discover then process the
        queue; then rebuild today's and yesterday's index, sweep stale
        listings, and on the 1st of the month build last month's index.

        A source whose adapter cannot be built is logged and skipped; the
        remaining sources and the index steps still run.
        """

        started_at = self._clock()
        summary = DailyRunResult(started_at=started_at)
        log_event(logger, logging.INFO, "daily_run_started", started_at=started_at)

        for config in self.source_configs():
            if self._shutdown.is_set():
                break
            if not config.enabled:
                summary.skipped_sources.append(config.name)
                continue
            try:
                summary.results.append(self.discover(source=config.name, reporter=reporter))
                summary.results.append(self.process_queue(source=config.name, reporter=reporter))
            except ScrapingError as exc:
                message = f"{config.name}: {type(exc).__name__}: {exc}"
                summary.errors.append(message)
                log_event(logger, logging.ERROR, "daily_run_source_failed", source=config.name, error=message)

        today = started_at.astimezone(timezone.utc).date()
        summary.results.append(self.build_daily_index(index_date=today))
        summary.results.append(self.build_daily_index(index_date=today - timedelta(days=1)))
        summary.results.append(self.mark_stale())
        if today.day == 1:
            summary.results.append(self.build_monthly_index())

        log_event(
            logger,
            logging.INFO,
            "daily_run_finished",
            jobs=len(summary.results),
            failed_jobs=summary.failed_jobs,
            skipped_sources=summary.skipped_sources,
            errors=len(summary.errors),
        )
        return summary

    # ------------------------------------------------------------------
    # Queries and overrides
    # ------------------------------------------------------------------

    def list_job_runs(
        self,
        *,
        db: Session,
        limit: int = 50,
        job_type: str | None = None,
        source: str | None = None,
        status: str | None = None,
    ) -> list[JobRun]:
        return JobRunRepository(db).list_runs(limit=limit, job_type=job_type, source=source, status=status)

    def get_job_run(self, *, db: Session, run_id: uuid.UUID) -> JobRun | None:
        return JobRunRepository(db).get_run(run_id)

    def list_listings(
        self,
        *,
        db: Session,
        limit: int = 100,
        source: str | None = None,
        city: str | None = None,
        active_only: bool = False,
    ) -> list[RentalListing]:
        return RentalListingRepository(db).list_listings(
            limit=limit,
            source=source,
            city=city,
            active_only=active_only,
        )

    def listing_snapshots(self, *, db: Session, listing_id: uuid.UUID, limit: int = 500) -> list[RentalSnapshot]:
        return RentalSnapshotRepository(db).for_listing(listing_id, limit=limit)

    def set_listing_override(
        self,
        *,
        db: Session,
        listing_id: uuid.UUID,
        manual_override: bool,
        property_type: str | None = None,
        is_active: bool | None = None,
    ) -> RentalListing | None:
        """
        Pin a listing's property_type / is_active against pipeline changes,
        or release the pin. Returns None when the listing does not exist.
        """

        if property_type is not None:
            property_type = property_type.strip().upper()
            if property_type not in PropertyType.ALL:
                allowed = ", ".join(PropertyType.ALL)
                raise ValueError(f"Invalid property_type '{property_type}'. Allowed values: {allowed}.")

        listings = RentalListingRepository(db)
        if manual_override:
            listing = listings.set_manual_override(
                listing_id=listing_id,
                property_type=property_type,
                is_active=is_active,
            )
        else:
            if property_type is not None or is_active is not None:
                raise ValueError("property_type and is_active can only be set together with manual_override=true.")
            listing = listings.clear_manual_override(listing_id=listing_id)

        if listing is None:
            return None
        db.commit()
        log_event(
            logger,
            logging.INFO,
            "listing_override_updated",
            listing_id=listing.id,
            manual_override=listing.manual_override,
            property_type=listing.property_type,
            is_active=listing.is_active,
        )
        return listing


@lru_cache(maxsize=1)
def get_rental_pipeline_service() -> RentalPipelineService:
    """
    Build and cache the rental pipeline service.
    """

    return RentalPipelineService()
