"""Audit recorder.

Audit rows are written in the caller's transaction: if the write fails the
triggering operation rolls back with it, and a rolled-back operation leaves
no audit row behind. There is no update or delete path.
"""

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.models.audit_log import AuditAction, AuditLog

logger = get_logger(__name__)


async def record_audit(
    db: AsyncSession,
    *,
    action: AuditAction,
    resource_type: str,
    resource_id: str,
    actor_id: str | None,
    details: dict[str, Any] | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AuditLog:
    """Append an audit record and flush it.

    Raises whatever the store raises; callers treat that as a failure of the
    whole operation.
    """
    entry = AuditLog(
        action=action.value,
        resource_type=resource_type,
        resource_id=resource_id,
        actor_id=actor_id,
        details=details or {},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.add(entry)
    await db.flush()

    logger.bind(
        action=action.value,
        resource_type=resource_type,
        resource_id=resource_id,
        actor_id=actor_id,
    ).debug("audit_recorded")
    return entry


async def list_audit_logs(
    db: AsyncSession,
    actor_id: str,
    resource_id: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[AuditLog]:
    """List audit records written on behalf of actor_id, newest first."""
    query = select(AuditLog).where(AuditLog.actor_id == actor_id)
    if resource_id:
        query = query.where(AuditLog.resource_id == resource_id)

    query = query.order_by(AuditLog.created_at.desc()).offset(offset).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())
