"""Error taxonomy for the job lifecycle core.

`JobNotFoundError`, `DatasetNotFoundError` and `InvalidJobStateError` are
expected, user-facing outcomes. `StoreUnavailableError` is an infrastructure
failure and is logged with full context by whoever converts it to a response.
"""

from typing import Any


class LifecycleError(Exception):
    """Base class for job lifecycle errors."""

    status_code: int = 500
    error: str = "Lifecycle Error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "error": self.error}


class JobNotFoundError(LifecycleError):
    """Job does not exist or is not owned by the caller."""

    status_code = 404
    error = "Not Found"

    def __init__(self, job_id: str) -> None:
        super().__init__("Job not found or access denied")
        self.job_id = job_id


class DatasetNotFoundError(LifecycleError):
    """Dataset does not exist or is not owned by the caller."""

    status_code = 404
    error = "Not Found"

    def __init__(self, dataset_id: str) -> None:
        super().__init__("Dataset not found or access denied")
        self.dataset_id = dataset_id


class InvalidJobStateError(LifecycleError):
    """Requested transition is not legal from the job's current status."""

    status_code = 400
    error = "Invalid State"

    def __init__(self, action: str, current_status: str, reason: str | None = None) -> None:
        message = reason or f"Job cannot be {action}. Current status: {current_status}"
        super().__init__(message)
        self.action = action
        self.current_status = current_status

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["currentStatus"] = self.current_status
        return data


class StoreUnavailableError(LifecycleError):
    """Underlying persistence is unreachable. Retryable."""

    status_code = 503
    error = "Store Unavailable"

    def __init__(self, reason: str) -> None:
        super().__init__("Job store is temporarily unavailable. Please retry.")
        self.reason = reason


class PolicyNotFoundError(LifecycleError):
    """Referenced anonymization policy does not exist."""

    status_code = 404
    error = "Not Found"

    def __init__(self, policy_id: str) -> None:
        super().__init__("Policy not found")
        self.policy_id = policy_id
