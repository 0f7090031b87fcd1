from app.models.audit_log import AuditAction, AuditLog
from app.models.base import Base
from app.models.dataset import Dataset, DatasetStatus
from app.models.job import Job, JobStatus, JobType
from app.models.policy import Policy
from app.models.project import Project
from app.models.user import Session, User

__all__ = [
    "Base",
    "User",
    "Session",
    "Project",
    "Dataset",
    "DatasetStatus",
    "Policy",
    "Job",
    "JobStatus",
    "JobType",
    "AuditAction",
    "AuditLog",
]
