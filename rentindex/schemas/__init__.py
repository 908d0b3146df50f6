"""
Pydantic schema exports.
"""

from rentindex.schemas.rentals import (
    BuildIndexRequest,
    BuildMonthlyIndexRequest,
    DiscoverRequest,
    HealthResponse,
    JobResultResponse,
    JobRunResponse,
    ListingOverrideRequest,
    MarkStaleRequest,
    ProcessQueueRequest,
    RentalListingResponse,
    RentalSnapshotResponse,
)

__all__ = [
    "BuildIndexRequest",
    "BuildMonthlyIndexRequest",
    "DiscoverRequest",
    "HealthResponse",
    "JobResultResponse",
    "JobRunResponse",
    "ListingOverrideRequest",
    "MarkStaleRequest",
    "ProcessQueueRequest",
    "RentalListingResponse",
    "RentalSnapshotResponse",
]
