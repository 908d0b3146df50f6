"""
Repository layer exports.
"""

from db.repositories.job_run_repository import JobRunRepository
from db.repositories.rental_index_repository import RentalIndexRepository
from db.repositories.rental_listing_repository import RentalListingRepository
from db.repositories.rental_snapshot_repository import RentalSnapshotRepository
from db.repositories.scrape_queue_repository import QueueOutcome, ScrapeQueueRepository

__all__ = [
    "JobRunRepository",
    "QueueOutcome",
    "RentalIndexRepository",
    "RentalListingRepository",
    "RentalSnapshotRepository",
    "ScrapeQueueRepository",
]
