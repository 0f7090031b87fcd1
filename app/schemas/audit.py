from datetime import datetime
from typing import Any

from pydantic import BaseModel


class AuditLogResponse(BaseModel):
    """Response model for an audit record."""

    id: str
    action: str
    resource_type: str
    resource_id: str
    actor_id: str | None
    details: dict[str, Any]
    created_at: datetime
