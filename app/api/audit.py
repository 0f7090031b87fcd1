from fastapi import APIRouter, Query

from app.dependencies import CurrentUser, DBSession
from app.schemas.audit import AuditLogResponse
from app.services.audit import list_audit_logs

router = APIRouter()


@router.get("/audit-logs", response_model=list[AuditLogResponse])
async def list_user_audit_logs(
    db: DBSession,
    user: CurrentUser,
    resource_id: str | None = Query(default=None, alias="resourceId"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[AuditLogResponse]:
    """List audit records for actions the current user performed."""
    entries = await list_audit_logs(
        db, user.id, resource_id=resource_id, limit=limit, offset=offset
    )
    return [
        AuditLogResponse(
            id=entry.id,
            action=entry.action,
            resource_type=entry.resource_type,
            resource_id=entry.resource_id,
            actor_id=entry.actor_id,
            details=entry.details or {},
            created_at=entry.created_at,
        )
        for entry in entries
    ]
