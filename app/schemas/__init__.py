from app.schemas.audit import AuditLogResponse
from app.schemas.job import (
    CancelJobResponse,
    JobCreate,
    JobFilters,
    JobListResponse,
    JobMetadata,
    JobResponse,
    JobStatsResponse,
    RetryJobResponse,
    WorkerStatusUpdate,
)
from app.schemas.sse import ConnectionStatsResponse, NotificationRequest

__all__ = [
    "AuditLogResponse",
    "CancelJobResponse",
    "ConnectionStatsResponse",
    "JobCreate",
    "JobFilters",
    "JobListResponse",
    "JobMetadata",
    "JobResponse",
    "JobStatsResponse",
    "NotificationRequest",
    "RetryJobResponse",
    "WorkerStatusUpdate",
]
