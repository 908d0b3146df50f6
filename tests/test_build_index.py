"""
tests/test_build_index.py

Daily and monthly index aggregation over snapshots.
"""

from __future__ import annotations

import unittest
from datetime import date, datetime, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from conftest import SOURCE, MutableClock
from db.models.job_run import JobRun, JobRunType
from db.models.rental_index import RentalIndexDaily, RentalIndexMonthly
from db.models.rental_listing import RentalListing
from db.models.rental_snapshot import RentalSnapshot
from rentindex.jobs.build_index import BuildIndexJob, parse_year_month, price_stats


class TestPriceStats(unittest.TestCase):
    def test_linear_interpolation(self) -> None:
        stats = price_stats([400, 100, 300, 200])
        self.assertEqual(stats["listing_count"], 4)
        self.assertEqual(stats["median_price"], 250.0)
        self.assertEqual(stats["p25_price"], 175.0)
        self.assertEqual(stats["p75_price"], 325.0)
        self.assertEqual(stats["mean_price"], 250.0)

    def test_single_price(self) -> None:
        stats = price_stats([550.0])
        self.assertEqual(stats["p25_price"], 550.0)
        self.assertEqual(stats["p75_price"], 550.0)

    def test_rounds_to_cents(self) -> None:
        self.assertEqual(price_stats([100, 100, 101])["mean_price"], 100.33)

    def test_empty_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            price_stats([])


class TestParseYearMonth(unittest.TestCase):
    def test_valid(self) -> None:
        self.assertEqual(parse_year_month("2026-09"), date(2026, 9, 1))

    def test_invalid(self) -> None:
        for value in ("2026-13", "2026-9", "Sept 2026", ""):
            with self.subTest(value=value):
                with self.assertRaises(ValueError):
                    parse_year_month(value)


def _at(day: date, hour: int = 12) -> datetime:
    return datetime(day.year, day.month, day.day, hour, tzinfo=timezone.utc)


def _seed_snapshots(
    session_factory: sessionmaker,
    day: date,
    prices: list[float | None],
    *,
    district: str | None = "BKK1",
    bedrooms: int | None = 2,
) -> None:
    with session_factory() as session:
        for index, price in enumerate(prices):
            listing = RentalListing(
                source=SOURCE,
                canonical_url=f"https://example.com/listing/{day.isoformat()}-{district}-{bedrooms}-{index}",
                title="Listing",
                city="Phnom Penh",
                district=district,
                bedrooms=bedrooms,
                property_type="APARTMENT",
                price_monthly_usd=price,
                first_seen_at=_at(day),
                last_seen_at=_at(day),
            )
            session.add(listing)
            session.flush()
            session.add(
                RentalSnapshot(
                    listing_id=listing.id,
                    source=SOURCE,
                    city="Phnom Penh",
                    district=district,
                    bedrooms=bedrooms,
                    property_type="APARTMENT",
                    price_monthly_usd=price,
                    scraped_at=_at(day, hour=index % 24),
                )
            )
        session.commit()


def _daily_rows(session_factory: sessionmaker) -> list[RentalIndexDaily]:
    with session_factory() as session:
        return list(session.scalars(select(RentalIndexDaily)).all())


@pytest.fixture()
def job(session_factory: sessionmaker) -> BuildIndexJob:
    return BuildIndexJob(
        session_factory=session_factory,
        clock=MutableClock(datetime(2026, 10, 19, 6, 0, tzinfo=timezone.utc)),
    )


DAY = date(2026, 10, 18)


def test_daily_index_for_one_bucket(job: BuildIndexJob, session_factory: sessionmaker) -> None:
    _seed_snapshots(session_factory, DAY, [100, 200, 300, 400, None])

    result = job.build_daily(DAY)

    assert (result.snapshots, result.groups, result.rows_upserted) == (4, 1, 1)
    [row] = _daily_rows(session_factory)
    assert row.index_date == DAY
    assert (row.city, row.district, row.bedrooms, row.property_type) == ("Phnom Penh", "BKK1", 2, "APARTMENT")
    assert row.listing_count == 4
    assert (row.p25_price, row.median_price, row.p75_price, row.mean_price) == (175.0, 250.0, 325.0, 250.0)


def test_daily_index_defaults_to_yesterday(job: BuildIndexJob, session_factory: sessionmaker) -> None:
    _seed_snapshots(session_factory, DAY, [500])
    result = job.build_daily()
    assert result.period == "2026-10-18"
    assert result.period_end == date(2026, 10, 19)
    assert len(_daily_rows(session_factory)) == 1


def test_snapshots_outside_the_day_are_ignored(job: BuildIndexJob, session_factory: sessionmaker) -> None:
    _seed_snapshots(session_factory, date(2026, 10, 17), [900])
    _seed_snapshots(session_factory, DAY, [500])
    job.build_daily(DAY)
    [row] = _daily_rows(session_factory)
    assert row.mean_price == 500.0


def test_rebuild_overwrites_rows(job: BuildIndexJob, session_factory: sessionmaker) -> None:
    _seed_snapshots(session_factory, DAY, [100, 200])
    job.build_daily(DAY)
    _seed_snapshots(session_factory, DAY, [300, 400], bedrooms=3)
    job.build_daily(DAY)
    job.build_daily(DAY)

    rows = _daily_rows(session_factory)
    assert len(rows) == 2
    assert sorted(row.listing_count for row in rows) == [2, 2]


def test_unknown_district_and_bedrooms_form_their_own_bucket(
    job: BuildIndexJob,
    session_factory: sessionmaker,
) -> None:
    _seed_snapshots(session_factory, DAY, [300, 500], district=None, bedrooms=None)
    _seed_snapshots(session_factory, DAY, [800])

    result = job.build_daily(DAY)

    assert result.groups == 2
    unknown = next(row for row in _daily_rows(session_factory) if row.bedrooms == -1)
    assert unknown.district == ""
    assert unknown.median_price == 400.0


def test_monthly_index_averages_daily_rows(job: BuildIndexJob, session_factory: sessionmaker) -> None:
    first, second = date(2026, 9, 1), date(2026, 9, 2)
    _seed_snapshots(session_factory, first, [100, 300])
    _seed_snapshots(session_factory, second, [200, 400, 600, 800])
    _seed_snapshots(session_factory, date(2026, 10, 1), [5000])
    for day in (first, second, date(2026, 10, 1)):
        job.build_daily(day)

    result = job.build_monthly("2026-09")

    assert result.period == "2026-09"
    assert result.snapshots == 6
    with session_factory() as session:
        [row] = session.scalars(select(RentalIndexMonthly)).all()
        run = session.get(JobRun, result.job_run_id)
    assert row.year_month == "2026-09"
    assert row.days_covered == 2
    assert row.listing_count == 3
    assert row.mean_price == 350.0
    assert row.median_price == 350.0
    assert row.p25_price == 250.0
    assert row.p75_price == 450.0
    assert run.job_type == JobRunType.BUILD_MONTHLY_INDEX
    assert run.request_payload == {"year_month": "2026-09"}


def test_monthly_index_defaults_to_previous_month(job: BuildIndexJob) -> None:
    result = job.build_monthly()
    assert result.period == "2026-09"
    assert result.groups == 0


def test_monthly_index_rejects_bad_period(job: BuildIndexJob) -> None:
    with pytest.raises(ValueError):
        job.build_monthly("2026-13")
