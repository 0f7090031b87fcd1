"""Internal endpoints for the processing worker."""

from fastapi import APIRouter

from app.dependencies import DBSession, Locks, Notifier, WorkerAuth
from app.schemas.job import WorkerStatusResponse, WorkerStatusUpdate
from app.services.lifecycle import record_worker_status

router = APIRouter(dependencies=[WorkerAuth])


@router.post("/worker/jobs/{job_id}/status", response_model=WorkerStatusResponse)
async def report_job_status(
    job_id: str,
    body: WorkerStatusUpdate,
    db: DBSession,
    locks: Locks,
    notifier: Notifier,
) -> WorkerStatusResponse:
    """
    Record a status or progress report for a job.

    Returns 400 if the job was cancelled meanwhile; the worker should stop.
    """
    return await record_worker_status(db, job_id, body, locks=locks, notifier=notifier)
