from typing import Annotated

from fastapi import Cookie, Depends, Header, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.core.database import get_db
from app.core.locks import DatasetLocks
from app.core.security import is_expired, verify_worker_token
from app.models.user import Session, User
from app.services.lifecycle import RequestContext
from app.services.notifier import ProgressNotifier

# Type aliases for dependency injection
DBSession = Annotated[AsyncSession, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_settings)]


async def get_current_user_optional(
    db: DBSession,
    session_id: str | None = Cookie(default=None, alias="session_id"),
) -> User | None:
    """Get the current user if authenticated, None otherwise."""
    if not session_id:
        return None

    result = await db.execute(select(Session).where(Session.id == session_id))
    session = result.scalar_one_or_none()

    if not session:
        return None

    if is_expired(session.expires_at):
        await db.delete(session)
        return None

    user: User = session.user
    if not user.is_active:
        return None
    return user


async def get_current_user(
    user: User | None = Depends(get_current_user_optional),
) -> User:
    """Get the current user, raise 401 if not authenticated."""
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return user


async def require_worker(
    settings: AppSettings,
    x_worker_token: str | None = Header(default=None, alias="X-Worker-Token"),
) -> None:
    """Guard internal endpoints called by the processing worker."""
    if not verify_worker_token(x_worker_token, settings.worker_api_token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid worker token",
        )


def get_notifier(request: Request) -> ProgressNotifier:
    """The app-owned notifier, created in the lifespan handler."""
    notifier: ProgressNotifier = request.app.state.notifier
    return notifier


def get_dataset_locks(request: Request) -> DatasetLocks:
    locks: DatasetLocks = request.app.state.dataset_locks
    return locks


def get_request_context(
    request: Request,
    user_agent: str | None = Header(default=None),
) -> RequestContext:
    return RequestContext(
        ip_address=request.client.host if request.client else None,
        user_agent=user_agent[:255] if user_agent else None,
    )


# Type aliases for authenticated endpoints
CurrentUser = Annotated[User, Depends(get_current_user)]
WorkerAuth = Depends(require_worker)
Notifier = Annotated[ProgressNotifier, Depends(get_notifier)]
Locks = Annotated[DatasetLocks, Depends(get_dataset_locks)]
AuditContext = Annotated[RequestContext, Depends(get_request_context)]
