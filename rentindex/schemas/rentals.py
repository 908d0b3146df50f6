"""
rentindex/schemas/rentals.py

Request and response schemas for the rental pipeline endpoints.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field


class DiscoverRequest(BaseModel):
    source: str = Field(..., min_length=1)
    max_urls: int | None = Field(default=None, ge=1)


class ProcessQueueRequest(BaseModel):
    source: str = Field(..., min_length=1)
    max_items: int | None = Field(default=None, ge=1)


class BuildIndexRequest(BaseModel):
    """
    ``index_date`` defaults to yesterday (UTC).
    """

    index_date: date | None = None


class BuildMonthlyIndexRequest(BaseModel):
    """
    ``year_month`` as ``YYYY-MM``; defaults to the previous month.
    """

    year_month: str | None = Field(default=None, pattern=r"^\d{4}-\d{2}$")


class MarkStaleRequest(BaseModel):
    threshold_days: int | None = Field(default=None, ge=0)


class JobResultResponse(BaseModel):
    """
    Outcome of one job invocation. ``counts`` mirrors the JobRun row.
    """

    job_run_id: uuid.UUID | None
    status: str
    error: str | None = None
    counts: dict[str, Any] = Field(default_factory=dict)


class JobRunResponse(BaseModel):
    id: uuid.UUID
    job_type: str
    source: str | None
    status: str
    started_at: datetime
    ended_at: datetime | None
    duration_ms: int | None
    request_payload: dict[str, Any] | None
    counts: dict[str, Any] | None
    error_message: str | None

    model_config = {"from_attributes": True}


class ListingOverrideRequest(BaseModel):
    """
    ``manual_override=true`` pins the listing, optionally setting
    ``property_type`` / ``is_active``; ``false`` releases the pin.
    """

    manual_override: bool = True
    property_type: str | None = None
    is_active: bool | None = None


class RentalListingResponse(BaseModel):
    id: uuid.UUID
    source: str
    source_listing_id: str | None
    canonical_url: str
    title: str
    city: str
    district: str | None
    property_type: str
    bedrooms: int | None
    bathrooms: int | None
    size_sqm: float | None
    price_monthly_usd: float | None
    currency: str | None
    first_seen_at: datetime
    last_seen_at: datetime
    is_active: bool
    manual_override: bool

    model_config = {"from_attributes": True}


class RentalSnapshotResponse(BaseModel):
    id: uuid.UUID
    listing_id: uuid.UUID
    source: str
    city: str
    district: str | None
    bedrooms: int | None
    property_type: str
    price_monthly_usd: float | None
    posted_at: datetime | None
    scraped_at: datetime

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: str
    scheduler_running: bool
