from __future__ import annotations

import enum
from typing import TYPE_CHECKING
from uuid import uuid4

from sqlalchemy import Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin, UpdatedAtMixin

if TYPE_CHECKING:
    from app.models.project import Project


class DatasetStatus(str, enum.Enum):
    """Aggregate dataset status, derived from the dataset's jobs."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class Dataset(Base, TimestampMixin, UpdatedAtMixin):
    """Uploaded artifact that jobs operate on.

    Upload, storage and findings live elsewhere; this service only reads the
    ownership chain and writes `status`.
    """

    __tablename__ = "datasets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    name: Mapped[str] = mapped_column(String(255))
    filename: Mapped[str] = mapped_column(String(512))
    status: Mapped[DatasetStatus] = mapped_column(
        Enum(
            DatasetStatus,
            values_callable=lambda e: [x.value for x in e],
            name="datasetstatus",
            create_type=False,
        ),
        default=DatasetStatus.PENDING,
    )
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )

    # Relationships
    project: Mapped[Project] = relationship(back_populates="datasets", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Dataset {self.name} status={self.status.value}>"
