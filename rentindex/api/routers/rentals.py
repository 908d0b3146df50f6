"""
rentindex/api/routers/rentals.py

Rental pipeline job invocation, JobRun audit and listing override endpoints.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from db.session import get_db
from rentindex.domain.results import JobResult
from rentindex.schemas.rentals import (
    BuildIndexRequest,
    BuildMonthlyIndexRequest,
    DiscoverRequest,
    JobResultResponse,
    JobRunResponse,
    ListingOverrideRequest,
    MarkStaleRequest,
    ProcessQueueRequest,
    RentalListingResponse,
    RentalSnapshotResponse,
)
from rentindex.scraping.errors import AdapterConfigError, UnknownSourceError
from rentindex.services.pipeline_service import (
    RentalPipelineService,
    get_rental_pipeline_service,
)

router = APIRouter(prefix="/rentals", tags=["rentals"])


def _job_response(result: JobResult) -> JobResultResponse:
    return JobResultResponse(
        job_run_id=result.job_run_id,
        status=result.status,
        error=result.error,
        counts=result.counts(),
    )


def _bad_request(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


@router.post("/jobs/discover", response_model=JobResultResponse)
def run_discover(
    body: DiscoverRequest,
    pipeline: RentalPipelineService = Depends(get_rental_pipeline_service),
) -> JobResultResponse:
    """
    Crawl one source's category pages and enqueue new or stale listing URLs.
    """

    try:
        result = pipeline.discover(source=body.source, max_urls=body.max_urls)
    except UnknownSourceError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (AdapterConfigError, FileNotFoundError, ValueError) as exc:
        raise _bad_request(exc) from exc
    return _job_response(result)


@router.post("/jobs/process-queue", response_model=JobResultResponse)
def run_process_queue(
    body: ProcessQueueRequest,
    pipeline: RentalPipelineService = Depends(get_rental_pipeline_service),
) -> JobResultResponse:
    """
    Claim and scrape queued URLs for one source.
    """

    try:
        result = pipeline.process_queue(source=body.source, max_items=body.max_items)
    except UnknownSourceError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (AdapterConfigError, FileNotFoundError, ValueError) as exc:
        raise _bad_request(exc) from exc
    return _job_response(result)


@router.post("/jobs/build-index", response_model=JobResultResponse)
def run_build_index(
    body: BuildIndexRequest,
    pipeline: RentalPipelineService = Depends(get_rental_pipeline_service),
) -> JobResultResponse:
    return _job_response(pipeline.build_daily_index(index_date=body.index_date))


@router.post("/jobs/build-monthly-index", response_model=JobResultResponse)
def run_build_monthly_index(
    body: BuildMonthlyIndexRequest,
    pipeline: RentalPipelineService = Depends(get_rental_pipeline_service),
) -> JobResultResponse:
    try:
        result = pipeline.build_monthly_index(year_month=body.year_month)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return _job_response(result)


@router.post("/jobs/mark-stale", response_model=JobResultResponse)
def run_mark_stale(
    body: MarkStaleRequest,
    pipeline: RentalPipelineService = Depends(get_rental_pipeline_service),
) -> JobResultResponse:
    try:
        result = pipeline.mark_stale(threshold_days=body.threshold_days)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return _job_response(result)


# ---------------------------------------------------------------------------
# JobRun audit
# ---------------------------------------------------------------------------


@router.get("/job-runs", response_model=list[JobRunResponse])
def list_job_runs(
    limit: int = Query(default=50, ge=1, le=500),
    job_type: str | None = Query(default=None),
    source: str | None = Query(default=None),
    run_status: str | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    pipeline: RentalPipelineService = Depends(get_rental_pipeline_service),
) -> list[JobRunResponse]:
    runs = pipeline.list_job_runs(db=db, limit=limit, job_type=job_type, source=source, status=run_status)
    return [JobRunResponse.model_validate(run) for run in runs]


@router.get("/job-runs/{run_id}", response_model=JobRunResponse)
def get_job_run(
    run_id: uuid.UUID,
    db: Session = Depends(get_db),
    pipeline: RentalPipelineService = Depends(get_rental_pipeline_service),
) -> JobRunResponse:
    run = pipeline.get_job_run(db=db, run_id=run_id)
    if run is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"JobRun {run_id} not found.",
        )
    return JobRunResponse.model_validate(run)


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


@router.get("/listings", response_model=list[RentalListingResponse])
def list_listings(
    limit: int = Query(default=100, ge=1, le=1000),
    source: str | None = Query(default=None),
    city: str | None = Query(default=None),
    active_only: bool = Query(default=False),
    db: Session = Depends(get_db),
    pipeline: RentalPipelineService = Depends(get_rental_pipeline_service),
) -> list[RentalListingResponse]:
    listings = pipeline.list_listings(db=db, limit=limit, source=source, city=city, active_only=active_only)
    return [RentalListingResponse.model_validate(listing) for listing in listings]


@router.get("/listings/{listing_id}/snapshots", response_model=list[RentalSnapshotResponse])
def list_listing_snapshots(
    listing_id: uuid.UUID,
    limit: int = Query(default=500, ge=1, le=5000),
    db: Session = Depends(get_db),
    pipeline: RentalPipelineService = Depends(get_rental_pipeline_service),
) -> list[RentalSnapshotResponse]:
    snapshots = pipeline.listing_snapshots(db=db, listing_id=listing_id, limit=limit)
    return [RentalSnapshotResponse.model_validate(snapshot) for snapshot in snapshots]


@router.patch("/listings/{listing_id}/override", response_model=RentalListingResponse)
def update_listing_override(
    listing_id: uuid.UUID,
    body: ListingOverrideRequest,
    db: Session = Depends(get_db),
    pipeline: RentalPipelineService = Depends(get_rental_pipeline_service),
) -> RentalListingResponse:
    """
    Set or clear a listing's manual override. While set, the pipeline never
    changes the listing's property_type or reactivates it.
    """

    try:
        listing = pipeline.set_listing_override(
            db=db,
            listing_id=listing_id,
            manual_override=body.manual_override,
            property_type=body.property_type,
            is_active=body.is_active,
        )
    except ValueError as exc:
        raise _bad_request(exc) from exc
    if listing is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Listing {listing_id} not found.",
        )
    return RentalListingResponse.model_validate(listing)
