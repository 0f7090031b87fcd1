"""Server-Sent Events: live job and dataset updates for the dashboard."""

from collections.abc import AsyncIterator

from fastapi import APIRouter, Query, Request
from fastapi.responses import StreamingResponse

from app.core.logging import get_logger
from app.core.security import generate_client_id
from app.dependencies import CurrentUser, Notifier, WorkerAuth
from app.schemas.sse import (
    ConnectionStatsResponse,
    DatasetUpdateRequest,
    JobUpdateRequest,
    NotificationRequest,
    RelayResponse,
)
from app.services.notifier import ProgressNotifier, Subscriber

logger = get_logger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def _stream(
    request: Request, notifier: ProgressNotifier, subscriber: Subscriber
) -> AsyncIterator[str]:
    try:
        async for message in subscriber.messages():
            if await request.is_disconnected():
                break
            yield message
    finally:
        notifier.remove(subscriber.id, subscriber)


@router.get("/sse/events")
async def stream_events(
    request: Request,
    user: CurrentUser,
    notifier: Notifier,
    client_id: str | None = Query(default=None, alias="clientId"),
) -> StreamingResponse:
    """
    Open an event stream for the current user.

    Sends a `connected` event first, then job_status, dataset_update,
    notification and heartbeat events as they happen.
    """
    # Reconnects with the same clientId replace the previous stream
    subscriber_id = f"{user.id}:{client_id}" if client_id else generate_client_id()
    subscriber = notifier.add(subscriber_id, user.id)
    logger.bind(
        subscriber_id=subscriber.id,
        user_id=user.id,
        client_host=request.client.host if request.client else None,
    ).info("sse_stream_opened")

    return StreamingResponse(
        _stream(request, notifier, subscriber),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/sse/status", response_model=ConnectionStatsResponse)
async def connection_status(notifier: Notifier) -> ConnectionStatsResponse:
    """Connected subscriber counts."""
    return ConnectionStatsResponse(**notifier.connection_stats())


@router.post("/sse/job-update", response_model=RelayResponse, dependencies=[WorkerAuth])
async def relay_job_update(body: JobUpdateRequest, notifier: Notifier) -> RelayResponse:
    """Relay a job progress event from the worker to the owner's streams."""
    notifier.send_job_update(body.job_id, body.status, body.user_id, body.progress, body.message)
    return RelayResponse(message="Job update sent")


@router.post("/sse/dataset-update", response_model=RelayResponse, dependencies=[WorkerAuth])
async def relay_dataset_update(body: DatasetUpdateRequest, notifier: Notifier) -> RelayResponse:
    notifier.send_dataset_update(body.dataset_id, body.status, body.user_id, body.findings_count)
    return RelayResponse(message="Dataset update sent")


@router.post("/sse/notification", response_model=RelayResponse, dependencies=[WorkerAuth])
async def relay_notification(body: NotificationRequest, notifier: Notifier) -> RelayResponse:
    notifier.send_notification(body.user_id, body.title, body.message, body.type)
    return RelayResponse(message="Notification sent")
