"""Job lifecycle rules: enqueue, retry, cancel and worker status reports.

Each mutating operation runs as one unit:

1. read the job (ownership-filtered) to learn its dataset
2. take the dataset lock and the dataset row lock
3. re-read the job, validate the transition
4. mutate the job store, reconcile the dataset, append the audit record
5. commit, release the lock, then notify subscribers

Any failure before the commit (audit write included) rolls everything back.
Notifications go out only after a successful commit.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_config
from app.core.datetime_utils import get_cutoff, utc_now
from app.core.errors import InvalidJobStateError, LifecycleError, PolicyNotFoundError
from app.core.locks import DatasetLocks
from app.core.logging import get_logger
from app.models.audit_log import AuditAction
from app.models.dataset import DatasetStatus
from app.models.job import Job, JobStatus
from app.models.policy import Policy
from app.schemas.job import (
    CancelJobResponse,
    JobCreate,
    JobMetadata,
    RetryJobResponse,
    WorkerStatusResponse,
    WorkerStatusUpdate,
)
from app.services.audit import record_audit
from app.services.job_store import (
    create_job,
    get_job,
    get_owned_dataset,
    get_owned_job,
    lock_dataset,
    store_errors,
    update_job,
)
from app.services.notifier import ProgressNotifier
from app.services.reconciler import reconcile_after_terminal_transition
from app.services.state_machine import ensure_cancellable, ensure_retryable, ensure_transition

logger = get_logger(__name__)

# Dataset status implied by a job reaching each terminal status
TERMINAL_DATASET_STATUS = {
    JobStatus.COMPLETED: DatasetStatus.COMPLETED,
    JobStatus.FAILED: DatasetStatus.FAILED,
    JobStatus.CANCELLED: DatasetStatus.CANCELLED,
}


@dataclass
class RequestContext:
    """Where a user action came from, for the audit trail."""

    ip_address: str | None = None
    user_agent: str | None = None


@asynccontextmanager
async def _unit_of_work(db: AsyncSession, operation: str, **context: Any) -> AsyncIterator[None]:
    """Commit on success, roll back on any failure."""
    try:
        async with store_errors(operation, **context):
            yield
            await db.commit()
    except LifecycleError:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.bind(operation=operation, error=str(e), **context).error(
            "lifecycle_operation_failed"
        )
        raise


async def enqueue_job(
    db: AsyncSession,
    owner_id: str,
    body: JobCreate,
    *,
    locks: DatasetLocks,
    notifier: ProgressNotifier | None = None,
    request: RequestContext | None = None,
) -> Job:
    """Create a QUEUED job on a dataset owned by owner_id.

    Raises:
        DatasetNotFoundError: Dataset missing or not owned
        PolicyNotFoundError: policy_id given but unknown
    """
    request = request or RequestContext()

    async with store_errors("enqueue_job", dataset_id=body.dataset_id):
        dataset = await get_owned_dataset(db, body.dataset_id, owner_id)

    async with locks.hold(dataset.id), _unit_of_work(db, "enqueue_job", dataset_id=dataset.id):
        await lock_dataset(db, dataset.id)

        if body.policy_id is not None and await db.get(Policy, body.policy_id) is None:
            raise PolicyNotFoundError(body.policy_id)

        metadata = JobMetadata.from_json(body.metadata)
        job = await create_job(
            db,
            type=body.type,
            dataset_id=dataset.id,
            created_by_id=owner_id,
            priority=body.priority,
            policy_id=body.policy_id,
            metadata=metadata.to_json(),
        )
        await record_audit(
            db,
            action=AuditAction.CREATE_JOB,
            resource_type="job",
            resource_id=job.id,
            actor_id=owner_id,
            details={"jobType": job.type.value, "datasetId": dataset.id, "priority": job.priority},
            ip_address=request.ip_address,
            user_agent=request.user_agent,
        )

    logger.bind(job_id=job.id, dataset_id=dataset.id, job_type=job.type.value).info("job_enqueued")
    if notifier is not None:
        notifier.send_job_update(job.id, job.status.value, owner_id, progress=0)
    return job


async def retry_job(
    db: AsyncSession,
    job_id: str,
    owner_id: str,
    *,
    locks: DatasetLocks,
    notifier: ProgressNotifier | None = None,
    request: RequestContext | None = None,
) -> RetryJobResponse:
    """Queue a new job repeating a FAILED or CANCELLED one.

    The original row is never modified. A FAILED dataset is reopened to
    PENDING; no active-job check is needed since a FAILED dataset has none.

    Raises:
        JobNotFoundError: Job missing or not owned
        InvalidJobStateError: Job is not FAILED/CANCELLED, or the retry limit is reached
    """
    request = request or RequestContext()
    max_attempts = get_config().lifecycle.max_retry_attempts

    async with store_errors("retry_job", job_id=job_id):
        job = await get_owned_job(db, job_id, owner_id)

    async with locks.hold(job.dataset_id), _unit_of_work(db, "retry_job", job_id=job_id):
        dataset = await lock_dataset(db, job.dataset_id)
        job = await get_owned_job(db, job_id, owner_id, refresh=True)
        ensure_retryable(job.status)

        lineage = JobMetadata.from_json(job.metadata_json)
        if max_attempts and lineage.retry_attempt >= max_attempts:
            raise InvalidJobStateError(
                "retried",
                job.status.value,
                reason=f"Job cannot be retried. Retry limit of {max_attempts} reached",
            )

        retry_metadata = lineage.next_retry(job.id)
        new_job = await create_job(
            db,
            type=job.type,
            dataset_id=job.dataset_id,
            created_by_id=owner_id,
            priority=job.priority,
            policy_id=job.policy_id,
            metadata=retry_metadata.to_json(),
        )

        if dataset.status == DatasetStatus.FAILED:
            dataset.status = DatasetStatus.PENDING
            await db.flush()

        await record_audit(
            db,
            action=AuditAction.RETRY_JOB,
            resource_type="job",
            resource_id=job.id,
            actor_id=owner_id,
            details={
                "originalJobId": job.id,
                "newJobId": new_job.id,
                "jobType": job.type.value,
                "datasetId": job.dataset_id,
                "retryAttempt": retry_metadata.retry_attempt,
            },
            ip_address=request.ip_address,
            user_agent=request.user_agent,
        )

    logger.bind(
        job_id=job.id,
        new_job_id=new_job.id,
        dataset_id=dataset.id,
        retry_attempt=retry_metadata.retry_attempt,
    ).info("job_retried")

    if notifier is not None:
        notifier.send_job_update(new_job.id, new_job.status.value, owner_id, progress=0)
        notifier.send_dataset_update(dataset.id, dataset.status.value, owner_id)

    return RetryJobResponse(
        original_job_id=job.id,
        new_job_id=new_job.id,
        retry_attempt=retry_metadata.retry_attempt,
        dataset_status=dataset.status,
    )


async def cancel_job(
    db: AsyncSession,
    job_id: str,
    owner_id: str,
    *,
    locks: DatasetLocks,
    notifier: ProgressNotifier | None = None,
    request: RequestContext | None = None,
) -> CancelJobResponse:
    """Cancel a QUEUED or RUNNING job.

    The dataset becomes CANCELLED only if no other job on it is still
    QUEUED or RUNNING.

    Raises:
        JobNotFoundError: Job missing or not owned
        InvalidJobStateError: Job is not QUEUED/RUNNING
    """
    request = request or RequestContext()
    cancel_message = get_config().lifecycle.cancel_error_message

    async with store_errors("cancel_job", job_id=job_id):
        job = await get_owned_job(db, job_id, owner_id)

    async with locks.hold(job.dataset_id), _unit_of_work(db, "cancel_job", job_id=job_id):
        dataset = await lock_dataset(db, job.dataset_id)
        job = await get_owned_job(db, job_id, owner_id, refresh=True, for_update=True)
        ensure_cancellable(job.status)

        previous_status = job.status
        await update_job(
            db,
            job,
            status=JobStatus.CANCELLED,
            ended_at=utc_now(),
            error=cancel_message,
        )
        reconciled = await reconcile_after_terminal_transition(
            db, dataset, job.id, DatasetStatus.CANCELLED
        )

        await record_audit(
            db,
            action=AuditAction.CANCEL_JOB,
            resource_type="job",
            resource_id=job.id,
            actor_id=owner_id,
            details={
                "jobId": job.id,
                "jobType": job.type.value,
                "datasetId": job.dataset_id,
                "previousStatus": previous_status.value,
                "datasetReconciled": reconciled,
            },
            ip_address=request.ip_address,
            user_agent=request.user_agent,
        )

    logger.bind(
        job_id=job.id,
        dataset_id=dataset.id,
        previous_status=previous_status.value,
        dataset_reconciled=reconciled,
    ).info("job_cancelled")

    if notifier is not None:
        notifier.send_job_update(job.id, job.status.value, owner_id, job.progress, cancel_message)
        if reconciled:
            notifier.send_dataset_update(dataset.id, dataset.status.value, owner_id)

    return CancelJobResponse(
        job_id=job.id,
        previous_status=previous_status,
        dataset_status=dataset.status,
        dataset_reconciled=reconciled,
    )


async def record_worker_status(
    db: AsyncSession,
    job_id: str,
    update: WorkerStatusUpdate,
    *,
    locks: DatasetLocks,
    notifier: ProgressNotifier | None = None,
) -> WorkerStatusResponse:
    """Apply a status/progress report from the processing worker.

    Worker reports go through the same state machine as user actions. A
    report against a job that was cancelled meanwhile fails with
    InvalidJobStateError, which tells the worker to stop.

    Raises:
        JobNotFoundError: Unknown job
        InvalidJobStateError: Transition not allowed
    """
    async with store_errors("record_worker_status", job_id=job_id):
        job = await get_job(db, job_id)

    reconciled = False
    async with locks.hold(job.dataset_id), _unit_of_work(db, "record_worker_status", job_id=job_id):
        dataset = await lock_dataset(db, job.dataset_id)
        job = await get_job(db, job_id, refresh=True)
        ensure_transition(job.status, update.status)

        previous_status = job.status
        now = utc_now()
        patch: dict[str, Any] = {"status": update.status}
        if update.progress is not None:
            patch["progress"] = update.progress

        if update.status == JobStatus.RUNNING and previous_status == JobStatus.QUEUED:
            patch["started_at"] = now
        elif update.status == JobStatus.COMPLETED:
            patch["progress"] = 100
            patch["ended_at"] = now
        elif update.status in (JobStatus.FAILED, JobStatus.CANCELLED):
            patch["ended_at"] = now
            patch["error"] = update.error or f"Job {update.status.value.lower()} by worker"

        await update_job(db, job, **patch)

        if update.status == JobStatus.RUNNING:
            if dataset.status != DatasetStatus.PROCESSING:
                dataset.status = DatasetStatus.PROCESSING
                await db.flush()
        else:
            reconciled = await reconcile_after_terminal_transition(
                db, dataset, job.id, TERMINAL_DATASET_STATUS[update.status]
            )

        if update.status != previous_status:
            await record_audit(
                db,
                action=AuditAction.UPDATE_JOB_STATUS,
                resource_type="job",
                resource_id=job.id,
                actor_id=None,
                details={
                    "jobId": job.id,
                    "datasetId": job.dataset_id,
                    "previousStatus": previous_status.value,
                    "status": update.status.value,
                    "source": "worker",
                },
            )

    logger.bind(
        job_id=job.id,
        status=job.status.value,
        progress=job.progress,
        dataset_reconciled=reconciled,
    ).info("job_status_reported")

    if notifier is not None:
        notifier.send_job_update(
            job.id, job.status.value, job.created_by_id, job.progress, update.message
        )
        started = update.status == JobStatus.RUNNING and previous_status == JobStatus.QUEUED
        if reconciled or started:
            notifier.send_dataset_update(dataset.id, dataset.status.value, job.created_by_id)

    return WorkerStatusResponse(
        job_id=job.id,
        status=job.status,
        progress=job.progress,
        dataset_status=dataset.status,
    )


async def find_stale_running_jobs(db: AsyncSession, older_than_hours: int) -> list[Job]:
    """RUNNING jobs that have not reported progress within the window."""
    result = await db.execute(
        select(Job)
        .where(Job.status == JobStatus.RUNNING, Job.updated_at < get_cutoff(hours=older_than_hours))
        .order_by(Job.updated_at)
    )
    return list(result.scalars().all())
