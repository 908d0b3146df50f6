"""
rentindex/domain package marker.
"""

from rentindex.domain.listings import Classification, DiscoveredUrl, PropertyType, ScrapedListing
from rentindex.domain.results import (
    BuildIndexResult,
    DiscoverResult,
    JobResult,
    MarkStaleResult,
    ProcessQueueResult,
)

__all__ = [
    "BuildIndexResult",
    "Classification",
    "DiscoverResult",
    "DiscoveredUrl",
    "JobResult",
    "MarkStaleResult",
    "ProcessQueueResult",
    "PropertyType",
    "ScrapedListing",
]
