"""
Service layer exports.
"""

from rentindex.services.pipeline_service import (
    DailyRunResult,
    RentalPipelineService,
    get_rental_pipeline_service,
)

__all__ = [
    "DailyRunResult",
    "RentalPipelineService",
    "get_rental_pipeline_service",
]
