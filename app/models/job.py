"""Processing job model."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import uuid4

from sqlalchemy import JSON, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.datetime_utils import utc_now
from app.models.base import Base, UpdatedAtMixin

if TYPE_CHECKING:
    from app.models.dataset import Dataset
    from app.models.policy import Policy
    from app.models.user import User


class JobType(str, enum.Enum):
    """Kind of processing a job performs on its dataset."""

    EXTRACT_TEXT = "EXTRACT_TEXT"
    ANALYZE_PII = "ANALYZE_PII"
    ANONYMIZE = "ANONYMIZE"
    GENERATE_REPORT = "GENERATE_REPORT"


class JobStatus(str, enum.Enum):
    """Job lifecycle status."""

    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


ACTIVE_STATUSES = (JobStatus.QUEUED, JobStatus.RUNNING)
TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


class Job(Base, UpdatedAtMixin):
    """One asynchronous unit of dataset processing work.

    Rows are never deleted; a retry creates a new row linked through
    `metadata.originalJobId`.
    """

    __tablename__ = "jobs"
    __table_args__ = (Index("ix_jobs_dataset_id_status", "dataset_id", "status"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    type: Mapped[JobType] = mapped_column(
        Enum(
            JobType,
            values_callable=lambda e: [x.value for x in e],
            name="jobtype",
            create_type=False,
        )
    )
    status: Mapped[JobStatus] = mapped_column(
        Enum(
            JobStatus,
            values_callable=lambda e: [x.value for x in e],
            name="jobstatus",
            create_type=False,
        ),
        default=JobStatus.QUEUED,
        index=True,
    )
    priority: Mapped[int] = mapped_column(Integer, default=1)
    progress: Mapped[int] = mapped_column(Integer, default=0)

    dataset_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("datasets.id", ondelete="CASCADE"), index=True
    )
    created_by_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="RESTRICT"), index=True
    )
    policy_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("policies.id", ondelete="RESTRICT"), default=None
    )

    # "metadata" is reserved on declarative classes
    metadata_json: Mapped[dict | None] = mapped_column("metadata", JSON, default=dict)

    # Python-side default keeps sub-second ordering on every backend
    created_at: Mapped[datetime] = mapped_column(default=utc_now, index=True)
    started_at: Mapped[datetime | None] = mapped_column(default=None)
    ended_at: Mapped[datetime | None] = mapped_column(default=None)
    error: Mapped[str | None] = mapped_column(Text, default=None)

    # Relationships
    dataset: Mapped[Dataset] = relationship(lazy="selectin")
    created_by: Mapped[User] = relationship(lazy="selectin")
    policy: Mapped[Policy | None] = relationship(lazy="selectin")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def __repr__(self) -> str:
        return f"<Job {self.id} {self.type.value} status={self.status.value}>"
