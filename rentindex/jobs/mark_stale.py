"""
Stale marker: safety-net sweep for listings that silently vanished.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from db.models.job_run import JobRunType
from db.repositories.rental_listing_repository import RentalListingRepository
from db.types import utcnow
from rentindex.domain.results import MarkStaleResult
from rentindex.jobs.base import JobRunTracker, PipelineJob, SessionFactory
from rentindex.scraping.config.models import PipelineSettings
from rentindex.scraping.logging_utils import log_event

logger = logging.getLogger(__name__)


class MarkStaleJob(PipelineJob):
    """
    Deactivate every active listing not seen for ``threshold_days``.
    Snapshots are never touched.
    """

    job_type = JobRunType.MARK_STALE

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

    def run(self, *, threshold_days: int | None = None) -> MarkStaleResult:
        days = self._settings.stale_after_days if threshold_days is None else threshold_days
        if days < 0:
            raise ValueError("threshold_days must be >= 0.")

        result = MarkStaleResult(threshold_days=days)

        def body(result: MarkStaleResult) -> None:
            result.cutoff = self._clock() - timedelta(days=days)
            with self._session_factory() as session:
                listings = RentalListingRepository(session)
                result.already_inactive = listings.count_inactive()
                result.deactivated = listings.mark_stale(cutoff=result.cutoff)
                session.commit()
            log_event(
                logger,
                logging.INFO,
                "listings_marked_stale",
                threshold_days=days,
                cutoff=result.cutoff,
                deactivated=result.deactivated,
            )

        return self._tracked(result, body, request_payload={"threshold_days": days})
