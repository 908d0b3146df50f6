"""
tests/conftest.py

Shared fixtures: a file-backed SQLite database per test, deterministic
pacing, and an in-memory source adapter.

SQLite writers are serialized with BEGIN IMMEDIATE so concurrent claimers
wait for each other instead of failing with "database is locked".
"""

from __future__ import annotations

import random
import threading
from collections.abc import Callable, Iterator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import requests
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

import db.models  # noqa: F401 registers all ORM models on Base.metadata
from db.base import Base
from rentindex.domain.listings import DiscoveredUrl, ScrapedListing
from rentindex.scraping.adapters.base import SourceAdapter
from rentindex.scraping.config.models import (
    FetchSettings,
    PacingSettings,
    PipelineSettings,
    SourceConfig,
)
from rentindex.scraping.fetch_client import ThrottledFetchClient
from rentindex.scraping.logging_utils import PipelineReporter
from rentindex.scraping.pacing import StealthPacer

SOURCE = "testsource"


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine(tmp_path: Path) -> Iterator[Engine]:
    db_engine = create_engine(
        f"sqlite:///{tmp_path / 'rentindex.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(db_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record) -> None:  # noqa: ANN001
        dbapi_connection.isolation_level = None

    @event.listens_for(db_engine, "begin")
    def _begin_immediate(conn) -> None:  # noqa: ANN001
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, class_=Session, autoflush=False, expire_on_commit=False)


# ---------------------------------------------------------------------------
# Settings, pacing, clocks
# ---------------------------------------------------------------------------


def make_pacing_settings(**overrides: object) -> PacingSettings:
    values: dict[str, object] = {
        "request_delay_base_seconds": 0.0,
        "request_delay_jitter_seconds": 0.0,
        "reading_pause_probability": 0.0,
        "reading_pause_min_seconds": 0.0,
        "reading_pause_max_seconds": 0.0,
        "scroll_delay_min_seconds": 0.0,
        "scroll_delay_max_seconds": 0.0,
        "night_start_hour_utc": 0,
        "night_end_hour_utc": 0,
        "night_idle_min_seconds": 0.0,
        "night_idle_max_seconds": 0.0,
        "breather_every_min": 1000,
        "breather_every_max": 1000,
        "breather_pause_min_seconds": 0.0,
        "breather_pause_max_seconds": 0.0,
        "skip_probability": 0.0,
    }
    values.update(overrides)
    return PacingSettings(**values)  # type: ignore[arg-type]


def make_pipeline_settings(**overrides: object) -> PipelineSettings:
    values: dict[str, object] = {
        "sources_config_path": "unused.json",
        "max_pages": 3,
        "max_urls": 200,
        "max_process": 25,
        "process_batch_size": 10,
        "worker_count": 2,
        "max_attempts": 3,
        "rescrape_after_days": 3,
        "stale_after_days": 7,
        "claim_ttl_minutes": 60,
        "scheduler_enabled": False,
        "daily_run_hour_utc": 6,
    }
    values.update(overrides)
    return PipelineSettings(**values)  # type: ignore[arg-type]


def make_fetch_settings(**overrides: object) -> FetchSettings:
    values: dict[str, object] = {
        "user_agent": "RentIndexTest/1.0",
        "concurrency_limit": 2,
        "max_retries": 2,
        "backoff_base_seconds": 1.0,
        "backoff_jitter_seconds": 0.0,
        "connect_timeout_seconds": 5.0,
        "timeout_seconds": 15.0,
        "proxy_url": None,
    }
    values.update(overrides)
    return FetchSettings(**values)  # type: ignore[arg-type]


class RecordingSleep:
    """Collects requested sleep durations instead of sleeping."""

    def __init__(self) -> None:
        self.calls: list[float] = []
        self._lock = threading.Lock()

    def __call__(self, seconds: float) -> None:
        with self._lock:
            self.calls.append(seconds)


class MutableClock:
    """Callable clock that tests move forward explicitly."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@pytest.fixture()
def sleeps() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def pacer(sleeps: RecordingSleep) -> StealthPacer:
    return StealthPacer(
        make_pacing_settings(),
        rng=random.Random(7),
        sleep=sleeps,
        clock=lambda: datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc),
    )


@pytest.fixture()
def pipeline_settings() -> PipelineSettings:
    return make_pipeline_settings()


@pytest.fixture()
def fetch_client(pacer: StealthPacer) -> ThrottledFetchClient:
    return ThrottledFetchClient(settings=make_fetch_settings(), pacer=pacer, session=requests.Session())


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


class FakeAdapter(SourceAdapter):
    """
    In-memory source. ``pages`` maps URL to a ScrapedListing, None (gone) or
    an exception instance to raise.
    """

    def __init__(self, **kwargs: object) -> None:
        super().__init__(**kwargs)  # type: ignore[arg-type]
        self.discovered: list[DiscoveredUrl] = []
        self.pages: dict[str, ScrapedListing | BaseException | None] = {}
        self.scrape_calls: list[str] = []
        self._lock = threading.Lock()

    def discover(self, reporter: PipelineReporter) -> list[DiscoveredUrl]:
        return list(self.discovered)

    def scrape(self, url: str, reporter: PipelineReporter) -> ScrapedListing | None:
        with self._lock:
            self.scrape_calls.append(url)
        page = self.pages.get(url)
        if isinstance(page, BaseException):
            raise page
        return page


@pytest.fixture()
def make_adapter(
    fetch_client: ThrottledFetchClient,
    pipeline_settings: PipelineSettings,
) -> Callable[..., FakeAdapter]:
    def _make(name: str = SOURCE, enabled: bool = True) -> FakeAdapter:
        config = SourceConfig(name=name, adapter="fake", enabled=enabled)
        return FakeAdapter(config=config, fetch_client=fetch_client, settings=pipeline_settings)

    return _make


@pytest.fixture()
def adapter(make_adapter: Callable[..., FakeAdapter]) -> FakeAdapter:
    return make_adapter()


def listing_page(**overrides: object) -> ScrapedListing:
    values: dict[str, object] = {
        "title": "2 Bedroom Apartment for Rent in BKK1",
        "property_type": "APARTMENT",
        "description": "Bright 2 bedroom apartment close to Independence Monument.",
        "city": "Phnom Penh",
        "district": "BKK1",
        "bedrooms": 2,
        "bathrooms": 2,
        "size_sqm": 85.0,
        "price_original": "$800 / month",
        "price_monthly_usd": 800.0,
        "currency": "USD",
        "image_urls": ["https://img.example.com/1.jpg"],
        "amenities": ["pool", "gym"],
    }
    values.update(overrides)
    return ScrapedListing(**values)  # type: ignore[arg-type]
