"""
Index builder: aggregate priced snapshots into per-bucket statistics.

A bucket is (city, district, bedrooms, property_type). Daily rows come from
raw snapshots; monthly rows average the month's daily rows.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from collections.abc import Callable, Iterable
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

import numpy as np

from db.models.job_run import JobRunType
from db.models.rental_index import UNKNOWN_BEDROOMS, UNKNOWN_DISTRICT, RentalIndexDaily
from db.models.rental_snapshot import RentalSnapshot
from db.repositories.rental_index_repository import RentalIndexRepository
from db.repositories.rental_snapshot_repository import RentalSnapshotRepository
from db.types import utcnow
from rentindex.domain.results import BuildIndexResult
from rentindex.jobs.base import JobRunTracker, PipelineJob, SessionFactory
from rentindex.scraping.logging_utils import log_event

logger = logging.getLogger(__name__)

Bucket = tuple[str, str, int, str]

_YEAR_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


def price_stats(prices: Iterable[float]) -> dict[str, Any]:
    """
    Count, mean and P25/median/P75 with linear interpolation between the
    closest ranks (index = p * (n - 1)), rounded to cents.
    """

    values = np.sort(np.asarray(list(prices), dtype=float))
    if values.size == 0:
        raise ValueError("price_stats requires at least one price.")
    p25, median, p75 = np.percentile(values, [25, 50, 75])
    return {
        "listing_count": int(values.size),
        "mean_price": round(float(values.mean()), 2),
        "median_price": round(float(median), 2),
        "p25_price": round(float(p25), 2),
        "p75_price": round(float(p75), 2),
    }


def parse_year_month(value: str) -> date:
    match = _YEAR_MONTH_RE.match(value.strip())
    if not match or not 1 <= int(match.group(2)) <= 12:
        raise ValueError(f"Invalid year_month '{value}'. Use YYYY-MM.")
    return date(int(match.group(1)), int(match.group(2)), 1)


def _next_month(first_day: date) -> date:
    if first_day.month == 12:
        return date(first_day.year + 1, 1, 1)
    return date(first_day.year, first_day.month + 1, 1)


def _snapshot_bucket(snapshot: RentalSnapshot) -> Bucket:
    return (
        snapshot.city,
        snapshot.district or UNKNOWN_DISTRICT,
        UNKNOWN_BEDROOMS if snapshot.bedrooms is None else snapshot.bedrooms,
        snapshot.property_type,
    )


def _bucket_row(bucket: Bucket, stats: dict[str, Any]) -> dict[str, Any]:
    city, district, bedrooms, property_type = bucket
    return {
        "city": city,
        "district": district,
        "bedrooms": bedrooms,
        "property_type": property_type,
        **stats,
    }


class BuildIndexJob(PipelineJob):
    job_type = JobRunType.BUILD_DAILY_INDEX

    def __init__(
        self,
        *,
        session_factory: SessionFactory,
        tracker: JobRunTracker | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(session_factory=session_factory, tracker=tracker, clock=clock)

    def build_daily(self, index_date: date | None = None) -> BuildIndexResult:
        """
        Rebuild one day's index from snapshots scraped in [day, day + 1) UTC.
        Defaults to yesterday.
        """

        day = index_date or (self._clock().astimezone(timezone.utc).date() - timedelta(days=1))
        start = datetime.combine(day, time.min, tzinfo=timezone.utc)
        end = start + timedelta(days=1)
        result = BuildIndexResult(period=day.isoformat(), period_start=day, period_end=day + timedelta(days=1))

        def body(result: BuildIndexResult) -> None:
            with self._session_factory() as session:
                snapshots = RentalSnapshotRepository(session).priced_between(start=start, end=end)
                result.snapshots = len(snapshots)

                buckets: dict[Bucket, list[float]] = defaultdict(list)
                for snapshot in snapshots:
                    buckets[_snapshot_bucket(snapshot)].append(float(snapshot.price_monthly_usd))

                rows = [_bucket_row(bucket, price_stats(prices)) for bucket, prices in buckets.items()]
                result.groups = len(rows)
                result.rows_upserted = RentalIndexRepository(session).upsert_daily(index_date=day, rows=rows)
                session.commit()
            log_event(
                logger,
                logging.INFO,
                "daily_index_built",
                index_date=day,
                snapshots=result.snapshots,
                groups=result.groups,
            )

        return self._tracked(
            result,
            body,
            request_payload={"date": day.isoformat()},
            job_type=JobRunType.BUILD_DAILY_INDEX,
        )

    def build_monthly(self, year_month: str | None = None) -> BuildIndexResult:
        """
        Average the month's daily rows per bucket. Defaults to the previous month.
        """

        if year_month is None:
            this_month = self._clock().astimezone(timezone.utc).date().replace(day=1)
            first_day = (this_month - timedelta(days=1)).replace(day=1)
        else:
            first_day = parse_year_month(year_month)
        label = first_day.strftime("%Y-%m")
        end_day = _next_month(first_day)
        result = BuildIndexResult(period=label, period_start=first_day, period_end=end_day)

        def body(result: BuildIndexResult) -> None:
            with self._session_factory() as session:
                repository = RentalIndexRepository(session)
                daily_rows = repository.daily_between(start=first_day, end=end_day)
                result.snapshots = sum(row.listing_count for row in daily_rows)

                buckets: dict[Bucket, list[RentalIndexDaily]] = defaultdict(list)
                for row in daily_rows:
                    buckets[(row.city, row.district, row.bedrooms, row.property_type)].append(row)

                rows = [_bucket_row(bucket, _average_daily(group)) for bucket, group in buckets.items()]
                result.groups = len(rows)
                result.rows_upserted = repository.upsert_monthly(year_month=label, rows=rows)
                session.commit()
            log_event(
                logger,
                logging.INFO,
                "monthly_index_built",
                year_month=label,
                days=len({row.index_date for row in daily_rows}),
                groups=result.groups,
            )

        return self._tracked(
            result,
            body,
            request_payload={"year_month": label},
            job_type=JobRunType.BUILD_MONTHLY_INDEX,
        )


def _average_daily(rows: list[RentalIndexDaily]) -> dict[str, Any]:
    def mean(values: list[float]) -> float:
        return round(float(np.mean(values)), 2)

    return {
        "listing_count": int(round(float(np.mean([row.listing_count for row in rows])))),
        "mean_price": mean([row.mean_price for row in rows]),
        "median_price": mean([row.median_price for row in rows]),
        "p25_price": mean([row.p25_price for row in rows]),
        "p75_price": mean([row.p75_price for row in rows]),
        "days_covered": len(rows),
    }
