"""
rentindex/api/routers package marker.
"""

from rentindex.api.routers.rentals import router as rentals_router

__all__ = ["rentals_router"]
