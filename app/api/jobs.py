"""Job lifecycle API endpoints."""

from fastapi import APIRouter, HTTPException, Query, Request, status

from app.config import get_settings
from app.core.rate_limit import MUTATION_LIMIT, limiter
from app.dependencies import AuditContext, CurrentUser, DBSession, Locks, Notifier
from app.models.job import JobStatus, JobType
from app.schemas.job import (
    CancelJobResponse,
    JobCreate,
    JobFilters,
    JobListResponse,
    JobResponse,
    JobStatsResponse,
    RetryJobResponse,
)
from app.services import lifecycle
from app.services.job_store import get_job_stats, get_owned_job, list_jobs, page_count

router = APIRouter()

settings = get_settings()


@router.get("/jobs", response_model=JobListResponse)
async def list_user_jobs(
    db: DBSession,
    user: CurrentUser,
    page: int = Query(default=1),
    limit: int = Query(default=settings.jobs_default_page_size),
    status_filter: JobStatus | None = Query(default=None, alias="status"),
    type_filter: JobType | None = Query(default=None, alias="type"),
    dataset_id: str | None = Query(default=None, alias="datasetId"),
) -> JobListResponse:
    """
    List the current user's jobs, newest first.

    Supports filtering by status, type and dataset.
    """
    if page < 1 or limit < 1 or limit > settings.jobs_max_page_size:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid pagination parameters",
        )

    filters = JobFilters(status=status_filter, type=type_filter, dataset_id=dataset_id)
    jobs, total = await list_jobs(db, user.id, filters, page=page, limit=limit)

    return JobListResponse(
        items=[JobResponse.from_job(job) for job in jobs],
        total=total,
        page=page,
        limit=limit,
        pages=page_count(total, limit),
    )


@router.get("/jobs/stats", response_model=JobStatsResponse)
async def get_user_job_stats(db: DBSession, user: CurrentUser) -> JobStatsResponse:
    """Job counts by status for the current user."""
    stats = await get_job_stats(db, user.id)
    return JobStatsResponse(**stats)


@router.get("/jobs/{job_id}", response_model=JobResponse)
async def get_user_job(job_id: str, db: DBSession, user: CurrentUser) -> JobResponse:
    """Get a single job."""
    job = await get_owned_job(db, job_id, user.id)
    return JobResponse.from_job(job)


@router.post("/jobs", response_model=JobResponse, status_code=status.HTTP_201_CREATED)
async def create_user_job(
    body: JobCreate,
    db: DBSession,
    user: CurrentUser,
    locks: Locks,
    notifier: Notifier,
    context: AuditContext,
) -> JobResponse:
    """Queue a new processing job on one of the user's datasets."""
    job = await lifecycle.enqueue_job(
        db, user.id, body, locks=locks, notifier=notifier, request=context
    )
    return JobResponse.from_job(job)


@router.post("/jobs/{job_id}/retry", response_model=RetryJobResponse)
@limiter.limit(MUTATION_LIMIT)
async def retry_user_job(
    request: Request,
    job_id: str,
    db: DBSession,
    user: CurrentUser,
    locks: Locks,
    notifier: Notifier,
    context: AuditContext,
) -> RetryJobResponse:
    """
    Retry a failed or cancelled job.

    Creates a new job; the original is kept unchanged for the audit trail.
    """
    return await lifecycle.retry_job(
        db, job_id, user.id, locks=locks, notifier=notifier, request=context
    )


@router.post("/jobs/{job_id}/cancel", response_model=CancelJobResponse)
@limiter.limit(MUTATION_LIMIT)
async def cancel_user_job(
    request: Request,
    job_id: str,
    db: DBSession,
    user: CurrentUser,
    locks: Locks,
    notifier: Notifier,
    context: AuditContext,
) -> CancelJobResponse:
    """Cancel a queued or running job."""
    return await lifecycle.cancel_job(
        db, job_id, user.id, locks=locks, notifier=notifier, request=context
    )
