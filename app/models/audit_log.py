"""Append-only audit trail model."""

import enum
from datetime import datetime
from uuid import uuid4

from sqlalchemy import JSON, String, event
from sqlalchemy.orm import Mapped, mapped_column

from app.core.datetime_utils import utc_now
from app.models.base import Base


class AuditAction(str, enum.Enum):
    """Actions recorded by the job lifecycle core."""

    CREATE_JOB = "CREATE_JOB"
    RETRY_JOB = "RETRY_JOB"
    CANCEL_JOB = "CANCEL_JOB"
    UPDATE_JOB_STATUS = "UPDATE_JOB_STATUS"


class AuditLog(Base):
    """Immutable record of a state-changing operation.

    `actor_id` is None for actions reported by the processing worker.
    """

    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    action: Mapped[str] = mapped_column(String(50), index=True)
    resource_type: Mapped[str] = mapped_column(String(50))
    resource_id: Mapped[str] = mapped_column(String(36), index=True)
    actor_id: Mapped[str | None] = mapped_column(String(36), index=True, default=None)
    details: Mapped[dict | None] = mapped_column(JSON, default=dict)
    ip_address: Mapped[str | None] = mapped_column(String(64), default=None)
    user_agent: Mapped[str | None] = mapped_column(String(255), default=None)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, index=True)

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} {self.resource_type}:{self.resource_id}>"


class AuditLogImmutableError(RuntimeError):
    """Raised on any attempt to modify or delete a stored audit record."""


@event.listens_for(AuditLog, "before_update")
def _reject_update(mapper, connection, target: AuditLog) -> None:
    raise AuditLogImmutableError(f"Audit record {target.id} is append-only")


@event.listens_for(AuditLog, "before_delete")
def _reject_delete(mapper, connection, target: AuditLog) -> None:
    raise AuditLogImmutableError(f"Audit record {target.id} is append-only")
