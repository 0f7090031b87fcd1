"""Ownership-filtered persistence for jobs.

Every read derives ownership from job -> dataset -> project -> user; a job
that exists but belongs to someone else is indistinguishable from a missing
one.
"""

import math
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.datetime_utils import utc_now
from app.core.errors import DatasetNotFoundError, JobNotFoundError, StoreUnavailableError
from app.core.logging import get_logger
from app.models.dataset import Dataset
from app.models.job import Job, JobStatus, JobType
from app.models.project import Project
from app.schemas.job import JobFilters

logger = get_logger(__name__)

# Relationships JobResponse renders
JOB_RELATIONSHIPS = ["dataset", "created_by", "policy"]


@asynccontextmanager
async def store_errors(operation: str, **context: Any) -> AsyncIterator[None]:
    """Translate connectivity failures into StoreUnavailableError."""
    try:
        yield
    except (OperationalError, InterfaceError) as e:
        logger.bind(operation=operation, error=str(e), **context).error("job_store_unavailable")
        raise StoreUnavailableError(str(e)) from e


def owned_jobs_query(owner_id: str) -> Select[tuple[Job]]:
    """Base SELECT restricted to jobs owned by owner_id."""
    return (
        select(Job)
        .join(Dataset, Job.dataset_id == Dataset.id)
        .join(Project, Dataset.project_id == Project.id)
        .where(Project.user_id == owner_id)
    )


async def get_owned_job(
    db: AsyncSession,
    job_id: str,
    owner_id: str,
    *,
    refresh: bool = False,
    for_update: bool = False,
) -> Job:
    """Get a job owned by owner_id.

    Args:
        db: Database session
        job_id: Job to load
        owner_id: Caller's user id
        refresh: Overwrite any copy already in the session identity map
        for_update: Take a row lock on the job (PostgreSQL)

    Raises:
        JobNotFoundError: Job is missing or owned by someone else
    """
    stmt = owned_jobs_query(owner_id).where(Job.id == job_id)
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)
    if for_update:
        stmt = stmt.with_for_update(of=Job)

    result = await db.execute(stmt)
    job = result.scalar_one_or_none()
    if job is None:
        raise JobNotFoundError(job_id)
    return job


async def get_job(db: AsyncSession, job_id: str, *, refresh: bool = False) -> Job:
    """Get a job without an ownership check. Internal (worker) paths only."""
    stmt = select(Job).where(Job.id == job_id)
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)
    result = await db.execute(stmt)
    job = result.scalar_one_or_none()
    if job is None:
        raise JobNotFoundError(job_id)
    return job


async def get_owned_dataset(db: AsyncSession, dataset_id: str, owner_id: str) -> Dataset:
    """Get a dataset owned by owner_id, or raise DatasetNotFoundError."""
    result = await db.execute(
        select(Dataset)
        .join(Project, Dataset.project_id == Project.id)
        .where(Dataset.id == dataset_id, Project.user_id == owner_id)
    )
    dataset = result.scalar_one_or_none()
    if dataset is None:
        raise DatasetNotFoundError(dataset_id)
    return dataset


async def lock_dataset(db: AsyncSession, dataset_id: str) -> Dataset:
    """Re-read a dataset row under SELECT ... FOR UPDATE."""
    result = await db.execute(
        select(Dataset)
        .where(Dataset.id == dataset_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    dataset = result.scalar_one_or_none()
    if dataset is None:
        raise DatasetNotFoundError(dataset_id)
    return dataset


async def list_jobs(
    db: AsyncSession,
    owner_id: str,
    filters: JobFilters | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Job], int]:
    """List owned jobs, newest first.

    Args:
        db: Database session
        owner_id: Caller's user id
        filters: Optional status/type/dataset filters
        page: 1-indexed page number
        limit: Page size

    Returns:
        (jobs on this page, total matching jobs)
    """
    filters = filters or JobFilters()
    query = owned_jobs_query(owner_id)

    if filters.status:
        query = query.where(Job.status == filters.status)
    if filters.type:
        query = query.where(Job.type == filters.type)
    if filters.dataset_id:
        query = query.where(Job.dataset_id == filters.dataset_id)

    total_result = await db.execute(select(func.count()).select_from(query.subquery()))
    total = total_result.scalar() or 0

    # id breaks created_at ties so pages never overlap
    page_query = (
        query.order_by(Job.created_at.desc(), Job.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    result = await db.execute(page_query)
    return list(result.scalars().all()), total


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


async def get_job_stats(db: AsyncSession, owner_id: str) -> dict[str, int]:
    """Count owned jobs by status."""
    owned = owned_jobs_query(owner_id).subquery()
    result = await db.execute(
        select(owned.c.status, func.count()).group_by(owned.c.status)
    )

    stats = {status.value.lower(): 0 for status in JobStatus}
    for status, count in result.all():
        key = status.value if isinstance(status, JobStatus) else str(status)
        stats[key.lower()] = count
    stats["total"] = sum(stats.values())
    return stats


async def create_job(
    db: AsyncSession,
    *,
    type: JobType,
    dataset_id: str,
    created_by_id: str,
    priority: int = 1,
    policy_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> Job:
    """Insert a new QUEUED job."""
    job = Job(
        type=type,
        status=JobStatus.QUEUED,
        priority=priority,
        progress=0,
        dataset_id=dataset_id,
        created_by_id=created_by_id,
        policy_id=policy_id,
        metadata_json=metadata or {},
        created_at=utc_now(),
        updated_at=utc_now(),
    )
    db.add(job)
    await db.flush()
    await db.refresh(job, attribute_names=JOB_RELATIONSHIPS)
    return job


async def update_job(db: AsyncSession, job: Job, **patch: Any) -> Job:
    """Apply a partial update to a job and flush it."""
    for field, value in patch.items():
        if not hasattr(Job, field):
            raise AttributeError(f"Job has no field {field!r}")
        setattr(job, field, value)
    job.updated_at = utc_now()
    await db.flush()
    return job
