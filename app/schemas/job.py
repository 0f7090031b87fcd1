"""Pydantic schemas for jobs and their lifecycle operations."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from app.core.logging import get_logger
from app.models.dataset import DatasetStatus
from app.models.job import Job, JobStatus, JobType

logger = get_logger(__name__)

LINEAGE_KEYS = ("isRetry", "originalJobId", "retryAttempt")


# -----------------------------------------------------------------------------
# Job metadata
# -----------------------------------------------------------------------------


class JobMetadata(BaseModel):
    """Job metadata bag.

    Retry lineage fields are typed; every other key is kept as-is. Stored with
    camelCase keys, matching rows written by the processing worker.
    """

    model_config = ConfigDict(extra="allow", alias_generator=to_camel, populate_by_name=True)

    is_retry: bool = False
    original_job_id: str | None = None
    retry_attempt: int = Field(default=0, ge=0)

    @classmethod
    def from_json(cls, data: dict[str, Any] | None) -> "JobMetadata":
        """Parse a stored metadata column, tolerating malformed lineage values."""
        data = data or {}
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            logger.bind(error=str(e)).warning("job_metadata_lineage_invalid")
            return cls.model_validate({k: v for k, v in data.items() if k not in LINEAGE_KEYS})

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_defaults=True)

    def next_retry(self, original_job_id: str) -> "JobMetadata":
        """Metadata for a retry of the job carrying this metadata."""
        return self.model_copy(
            update={
                "is_retry": True,
                "original_job_id": original_job_id,
                "retry_attempt": self.retry_attempt + 1,
            }
        )


# -----------------------------------------------------------------------------
# Requests
# -----------------------------------------------------------------------------


class JobFilters(BaseModel):
    """Optional filters for job listing."""

    status: JobStatus | None = None
    type: JobType | None = None
    dataset_id: str | None = None


class JobCreate(BaseModel):
    """Request body for enqueuing a job on a dataset."""

    dataset_id: str = Field(max_length=36)
    type: JobType
    priority: int = Field(default=1, ge=0, le=10)
    policy_id: str | None = Field(default=None, max_length=36)
    metadata: dict[str, Any] = Field(default_factory=dict)


class WorkerStatusUpdate(BaseModel):
    """Status report from the processing worker."""

    status: JobStatus
    progress: int | None = Field(default=None, ge=0, le=100)
    error: str | None = Field(default=None, max_length=4000)
    message: str | None = Field(default=None, max_length=500)


# -----------------------------------------------------------------------------
# Responses
# -----------------------------------------------------------------------------


class DatasetSummary(BaseModel):
    id: str
    name: str
    filename: str
    status: DatasetStatus


class UserSummary(BaseModel):
    id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None


class PolicySummary(BaseModel):
    id: str
    name: str
    version: str


class JobResponse(BaseModel):
    """Response model for a job."""

    id: str
    type: JobType
    status: JobStatus
    priority: int
    progress: int
    dataset_id: str
    created_by_id: str
    policy_id: str | None
    metadata: dict[str, Any]
    created_at: datetime
    updated_at: datetime | None
    started_at: datetime | None
    ended_at: datetime | None
    error: str | None
    dataset: DatasetSummary | None = None
    created_by: UserSummary | None = None
    policy: PolicySummary | None = None

    @classmethod
    def from_job(cls, job: Job) -> "JobResponse":
        dataset = job.dataset
        user = job.created_by
        policy = job.policy
        return cls(
            id=job.id,
            type=job.type,
            status=job.status,
            priority=job.priority,
            progress=job.progress,
            dataset_id=job.dataset_id,
            created_by_id=job.created_by_id,
            policy_id=job.policy_id,
            metadata=job.metadata_json or {},
            created_at=job.created_at,
            updated_at=job.updated_at,
            started_at=job.started_at,
            ended_at=job.ended_at,
            error=job.error,
            dataset=DatasetSummary(
                id=dataset.id, name=dataset.name, filename=dataset.filename, status=dataset.status
            )
            if dataset
            else None,
            created_by=UserSummary(
                id=user.id, email=user.email, first_name=user.first_name, last_name=user.last_name
            )
            if user
            else None,
            policy=PolicySummary(id=policy.id, name=policy.name, version=policy.version)
            if policy
            else None,
        )


class JobListResponse(BaseModel):
    """Paginated job listing."""

    items: list[JobResponse]
    total: int
    page: int
    limit: int
    pages: int


class JobStatsResponse(BaseModel):
    """Job counts by status for the current user."""

    total: int = 0
    queued: int = 0
    running: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0


class RetryJobResponse(BaseModel):
    success: bool = True
    message: str = "Job has been queued for retry"
    original_job_id: str
    new_job_id: str
    retry_attempt: int
    dataset_status: DatasetStatus


class CancelJobResponse(BaseModel):
    success: bool = True
    message: str = "Job has been cancelled"
    job_id: str
    previous_status: JobStatus
    dataset_status: DatasetStatus
    dataset_reconciled: bool


class WorkerStatusResponse(BaseModel):
    ok: bool = True
    job_id: str
    status: JobStatus
    progress: int
    dataset_status: DatasetStatus
