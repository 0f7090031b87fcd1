"""Dataset status reconciliation.

This is the only code path that writes a terminal dataset status derived from
a job finishing or being cancelled. Callers must hold the dataset lock (see
`app.core.locks`) and the dataset row lock, so that two jobs finishing at the
same time cannot both observe "no other active job".
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.models.dataset import Dataset, DatasetStatus
from app.models.job import ACTIVE_STATUSES, Job

logger = get_logger(__name__)


async def count_active_jobs(
    db: AsyncSession,
    dataset_id: str,
    excluding_job_id: str | None = None,
) -> int:
    """Count QUEUED/RUNNING jobs on a dataset, optionally excluding one job."""
    query = select(func.count(Job.id)).where(
        Job.dataset_id == dataset_id,
        Job.status.in_(ACTIVE_STATUSES),
    )
    if excluding_job_id is not None:
        query = query.where(Job.id != excluding_job_id)

    result = await db.execute(query)
    return result.scalar() or 0


async def reconcile_after_terminal_transition(
    db: AsyncSession,
    dataset: Dataset,
    excluding_job_id: str,
    target: DatasetStatus,
) -> bool:
    """Set the dataset to target if no other job on it is still active.

    Args:
        db: Database session (job change already flushed)
        dataset: Dataset row, locked by the caller
        excluding_job_id: The job that just reached a terminal status
        target: Status implied by that job (CANCELLED, COMPLETED, FAILED)

    Returns:
        True if the dataset status was written
    """
    active = await count_active_jobs(db, dataset.id, excluding_job_id)
    if active > 0:
        logger.bind(
            dataset_id=dataset.id,
            job_id=excluding_job_id,
            active_jobs=active,
            kept_status=dataset.status.value,
        ).debug("dataset_reconcile_skipped")
        return False

    previous = dataset.status
    dataset.status = target
    await db.flush()

    logger.bind(
        dataset_id=dataset.id,
        job_id=excluding_job_id,
        previous_status=previous.value,
        status=target.value,
    ).info("dataset_status_reconciled")
    return True
