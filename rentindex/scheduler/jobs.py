"""
rentindex/scheduler/jobs.py

APScheduler-based batch scheduler for the daily rental pipeline run.

Schedule (all times UTC)
--------------------------
  rentals_daily_run : RENTALS_DAILY_RUN_HOUR_UTC:00 every day (default 06:00)

The daily run discovers and processes every enabled source, rebuilds the
daily index for today and yesterday, sweeps stale listings and, on the 1st
of the month, builds the previous month's index.

Lifecycle
----------
Call ``build_scheduler()`` once to get a configured ``BackgroundScheduler``.
Start it on app boot; shut it down gracefully on app shutdown.
The scheduler is wired into FastAPI via the ``lifespan`` context in main.py.
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from rentindex.scraping.config import get_pipeline_settings
from rentindex.services.pipeline_service import (
    RentalPipelineService,
    get_rental_pipeline_service,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Job: Daily rental pipeline run
# ---------------------------------------------------------------------------


def run_daily_pipeline(service: RentalPipelineService | None = None) -> None:
    """
    Run the full daily cycle. Each job records its own JobRun, so failures
    here are logged and never propagate into the scheduler thread.
    """
    logger.info("Scheduler: rentals_daily_run starting")
    service = service or get_rental_pipeline_service()
    try:
        summary = service.run_daily()
    except Exception as exc:  # noqa: BLE001
        logger.exception("Scheduler: rentals_daily_run failed: %s", exc)
        return

    logger.info(
        "Scheduler: rentals_daily_run complete jobs=%d failed_jobs=%d skipped_sources=%s errors=%d",
        len(summary.results),
        summary.failed_jobs,
        summary.skipped_sources,
        len(summary.errors),
    )


# ---------------------------------------------------------------------------
# Scheduler factory
# ---------------------------------------------------------------------------


def build_scheduler() -> BackgroundScheduler:
    """
    Build and register the daily pipeline job.

    Returns a configured but *not yet started* ``BackgroundScheduler``.
    The caller must call ``.start()`` and ``.shutdown(wait=True)`` at the
    appropriate lifecycle points.
    """
    settings = get_pipeline_settings()
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler.add_job(
        run_daily_pipeline,
        trigger="cron",
        hour=settings.daily_run_hour_utc,
        minute=0,
        id="rentals_daily_run",
        name="Daily rental pipeline run",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=3600,
    )

    return scheduler
