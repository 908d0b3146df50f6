"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.job_run import JobRun, JobRunStatus, JobRunType
from db.models.rental_index import RentalIndexDaily, RentalIndexMonthly
from db.models.rental_listing import RentalListing
from db.models.rental_snapshot import RentalSnapshot
from db.models.scrape_queue import ScrapeQueueItem, ScrapeQueueStatus

__all__ = [
    "JobRun",
    "JobRunStatus",
    "JobRunType",
    "RentalIndexDaily",
    "RentalIndexMonthly",
    "RentalListing",
    "RentalSnapshot",
    "ScrapeQueueItem",
    "ScrapeQueueStatus",
]
