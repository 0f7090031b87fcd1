"""Legal job status transitions."""

from app.core.errors import InvalidJobStateError
from app.models.job import JobStatus

ALLOWED_TRANSITIONS: dict[JobStatus, tuple[JobStatus, ...]] = {
    JobStatus.QUEUED: (JobStatus.RUNNING, JobStatus.CANCELLED),
    JobStatus.RUNNING: (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED),
    JobStatus.COMPLETED: (),
    JobStatus.FAILED: (),
    JobStatus.CANCELLED: (),
}

# Statuses a job may be retried from. Retry creates a new row, so this is not
# a transition of the original job.
RETRYABLE_STATUSES = (JobStatus.FAILED, JobStatus.CANCELLED)
CANCELLABLE_STATUSES = (JobStatus.QUEUED, JobStatus.RUNNING)


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(current: JobStatus, target: JobStatus, action: str = "updated") -> None:
    """Raise InvalidJobStateError unless current -> target is allowed.

    A RUNNING -> RUNNING report is a progress update and is accepted.
    """
    if current == target == JobStatus.RUNNING:
        return
    if not can_transition(current, target):
        raise InvalidJobStateError(
            action,
            current.value,
            reason=f"Invalid transition: {current.value} -> {target.value}",
        )


def ensure_retryable(current: JobStatus) -> None:
    if current not in RETRYABLE_STATUSES:
        raise InvalidJobStateError("retried", current.value)


def ensure_cancellable(current: JobStatus) -> None:
    if current not in CANCELLABLE_STATUSES:
        raise InvalidJobStateError("cancelled", current.value)
