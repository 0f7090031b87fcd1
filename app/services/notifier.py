"""Progress notifier: best-effort fan-out of job and dataset events.

Delivery is at-most-once per connected subscriber with no retry and no
persistence; the job store stays the source of truth. Each subscriber owns a
bounded queue drained by its SSE response. Fan-out only calls
`put_nowait`, so a slow or dead subscriber never blocks the others: a full
or closed queue gets that subscriber removed.

The registry is mutated only from synchronous methods running on the event
loop, so add/remove/notify never interleave.
"""

import asyncio
import contextlib
import json
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from app.core.datetime_utils import to_iso_utc, utc_now
from app.core.logging import get_logger

logger = get_logger(__name__)

EventType = Literal["connected", "job_status", "dataset_update", "notification", "heartbeat"]


@dataclass
class NotificationEvent:
    """One event on the notification bus.

    An event with no user_id is broadcast to every subscriber.
    """

    type: EventType
    data: dict[str, Any]
    user_id: str | None = None
    timestamp: datetime = field(default_factory=utc_now)

    def to_sse(self) -> str:
        payload = json.dumps(
            {"type": self.type, "data": self.data, "timestamp": to_iso_utc(self.timestamp)}
        )
        return f"data: {payload}\n\n"


class Subscriber:
    """A connected client: the user it belongs to plus its outbound queue."""

    def __init__(self, subscriber_id: str, user_id: str, queue_size: int) -> None:
        self.id = subscriber_id
        self.user_id = user_id
        self.connected_at = utc_now()
        self.last_delivery = self.connected_at
        self.closed = False
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=queue_size)

    def offer(self, message: str) -> bool:
        """Queue a message without waiting. False if the subscriber can't take it."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        self.last_delivery = utc_now()
        return True

    def close(self) -> None:
        """Mark closed and wake the reader so its stream ends."""
        if self.closed:
            return
        self.closed = True
        # Make room for the end-of-stream marker; pending messages are dropped
        while self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    async def messages(self) -> AsyncIterator[str]:
        while True:
            message = await self._queue.get()
            if message is None:
                return
            yield message


class ProgressNotifier:
    """Registry of subscribers plus the heartbeat that keeps them honest."""

    def __init__(self, heartbeat_seconds: float = 30.0, queue_size: int = 100) -> None:
        self.heartbeat_seconds = heartbeat_seconds
        self.queue_size = queue_size
        self._subscribers: dict[str, Subscriber] = {}
        self._heartbeat_task: asyncio.Task[None] | None = None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start the heartbeat loop. Idempotent."""
        if self._heartbeat_task is None or self._heartbeat_task.done():
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
            logger.bind(interval_seconds=self.heartbeat_seconds).info("notifier_started")

    async def shutdown(self) -> None:
        """Stop the heartbeat and close every subscriber. Idempotent."""
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._heartbeat_task
            self._heartbeat_task = None

        for subscriber_id in list(self._subscribers):
            self.remove(subscriber_id)
        logger.info("notifier_stopped")

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_seconds)
            self.heartbeat()

    def heartbeat(self) -> int:
        """Broadcast a liveness event; subscribers that can't take it are pruned."""
        now = utc_now()
        return self.notify(
            NotificationEvent(type="heartbeat", data={"timestamp": to_iso_utc(now)}, timestamp=now)
        )

    # -------------------------------------------------------------------------
    # Registry
    # -------------------------------------------------------------------------

    def add(self, subscriber_id: str, user_id: str) -> Subscriber:
        """Register a subscriber, replacing any previous one with the same id."""
        self.remove(subscriber_id)

        subscriber = Subscriber(subscriber_id, user_id, self.queue_size)
        self._subscribers[subscriber_id] = subscriber
        subscriber.offer(
            NotificationEvent(
                type="connected",
                data={"message": "SSE connection established", "clientId": subscriber_id},
                user_id=user_id,
            ).to_sse()
        )

        logger.bind(subscriber_id=subscriber_id, user_id=user_id).info("subscriber_added")
        return subscriber

    def remove(self, subscriber_id: str, subscriber: Subscriber | None = None) -> bool:
        """Remove a subscriber. Removing an unknown id is a no-op.

        When subscriber is given, the id is only removed while it still maps to
        that exact subscriber, so a stream replaced by a reconnect cannot tear
        down its replacement.
        """
        current = self._subscribers.get(subscriber_id)
        if current is None or (subscriber is not None and current is not subscriber):
            return False
        del self._subscribers[subscriber_id]
        current.close()
        logger.bind(subscriber_id=subscriber_id, user_id=current.user_id).info(
            "subscriber_removed"
        )
        return True

    def __contains__(self, subscriber_id: str) -> bool:
        return subscriber_id in self._subscribers

    def __len__(self) -> int:
        return len(self._subscribers)

    def connection_stats(self) -> dict[str, Any]:
        by_user: dict[str, int] = {}
        for subscriber in self._subscribers.values():
            by_user[subscriber.user_id] = by_user.get(subscriber.user_id, 0) + 1
        return {"total": len(self._subscribers), "by_user": by_user}

    # -------------------------------------------------------------------------
    # Fan-out
    # -------------------------------------------------------------------------

    def notify(self, event: NotificationEvent) -> int:
        """Deliver an event to matching subscribers.

        Returns:
            Number of subscribers the event was queued for
        """
        message = event.to_sse()
        failed: list[str] = []
        delivered = 0

        for subscriber_id, subscriber in self._subscribers.items():
            if event.user_id is not None and subscriber.user_id != event.user_id:
                continue
            if subscriber.offer(message):
                delivered += 1
            else:
                failed.append(subscriber_id)

        for subscriber_id in failed:
            logger.bind(subscriber_id=subscriber_id, event_type=event.type).warning(
                "notification_delivery_failed"
            )
            self.remove(subscriber_id)

        return delivered

    def send_job_update(
        self,
        job_id: str,
        status: str,
        user_id: str,
        progress: int | None = None,
        message: str | None = None,
    ) -> int:
        return self.notify(
            NotificationEvent(
                type="job_status",
                data={
                    "jobId": job_id,
                    "status": status,
                    "progress": progress or 0,
                    "message": message or f"Job {status}",
                },
                user_id=user_id,
            )
        )

    def send_dataset_update(
        self,
        dataset_id: str,
        status: str,
        user_id: str,
        findings_count: int | None = None,
    ) -> int:
        return self.notify(
            NotificationEvent(
                type="dataset_update",
                data={
                    "datasetId": dataset_id,
                    "status": status,
                    "findingsCount": findings_count or 0,
                    "message": f"Dataset {status}",
                },
                user_id=user_id,
            )
        )

    def send_notification(
        self,
        user_id: str,
        title: str,
        message: str,
        level: str = "info",
    ) -> int:
        now = utc_now()
        return self.notify(
            NotificationEvent(
                type="notification",
                data={
                    "id": f"notification_{int(now.timestamp() * 1000)}",
                    "title": title,
                    "message": message,
                    "type": level,
                },
                user_id=user_id,
                timestamp=now,
            )
        )
