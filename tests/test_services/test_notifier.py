"""Tests for the progress notifier."""

import asyncio
import json

import pytest

from app.services.notifier import NotificationEvent, ProgressNotifier


def _drain(subscriber) -> list[dict]:
    """Pop every queued SSE frame and decode its JSON payload."""
    events = []
    while not subscriber._queue.empty():
        message = subscriber._queue.get_nowait()
        if message is None:
            break
        assert message.startswith("data: ")
        assert message.endswith("\n\n")
        events.append(json.loads(message[len("data: ") :]))
    return events


@pytest.fixture
def notifier() -> ProgressNotifier:
    return ProgressNotifier(heartbeat_seconds=3600, queue_size=3)


class TestSubscribers:
    """Tests for add/remove."""

    def test_add_sends_connected_event(self, notifier):
        """Should greet a new subscriber with a connected event."""
        subscriber = notifier.add("tab-1", "user-1")

        events = _drain(subscriber)
        assert [e["type"] for e in events] == ["connected"]
        assert events[0]["data"]["clientId"] == "tab-1"
        assert events[0]["timestamp"].endswith("Z")

    def test_add_replaces_same_id(self, notifier):
        """Should close the previous subscriber registered under the same id."""
        first = notifier.add("tab-1", "user-1")
        second = notifier.add("tab-1", "user-1")

        assert first.closed is True
        assert second.closed is False
        assert len(notifier) == 1

    def test_remove_is_idempotent(self, notifier):
        """Should ignore removing an unknown or already removed id."""
        notifier.add("tab-1", "user-1")

        assert notifier.remove("tab-1") is True
        assert notifier.remove("tab-1") is False
        assert notifier.remove("never-added") is False
        assert "tab-1" not in notifier

    def test_remove_ignores_replaced_subscriber(self, notifier):
        """Should not remove the replacement when the old subscriber is removed."""
        first = notifier.add("tab-1", "user-1")
        second = notifier.add("tab-1", "user-1")

        assert notifier.remove("tab-1", first) is False
        assert "tab-1" in notifier
        assert second.closed is False

        assert notifier.remove("tab-1", second) is True
        assert "tab-1" not in notifier

    def test_connection_stats(self, notifier):
        """Should count subscribers per user."""
        notifier.add("a", "user-1")
        notifier.add("b", "user-1")
        notifier.add("c", "user-2")

        assert notifier.connection_stats() == {
            "total": 3,
            "by_user": {"user-1": 2, "user-2": 1},
        }


class TestNotify:
    """Tests for fan-out."""

    def test_user_scoped_event(self, notifier):
        """Should deliver a user's event only to that user's subscribers."""
        mine = notifier.add("mine", "user-1")
        theirs = notifier.add("theirs", "user-2")
        _drain(mine)
        _drain(theirs)

        delivered = notifier.send_job_update("job-1", "RUNNING", "user-1", progress=40)

        assert delivered == 1
        events = _drain(mine)
        assert events[0]["type"] == "job_status"
        assert events[0]["data"] == {
            "jobId": "job-1",
            "status": "RUNNING",
            "progress": 40,
            "message": "Job RUNNING",
        }
        assert _drain(theirs) == []

    def test_broadcast_event(self, notifier):
        """Should deliver an event without a user to everyone."""
        a = notifier.add("a", "user-1")
        b = notifier.add("b", "user-2")

        delivered = notifier.notify(NotificationEvent(type="notification", data={"x": 1}))

        assert delivered == 2
        assert _drain(a)[-1]["data"] == {"x": 1}
        assert _drain(b)[-1]["data"] == {"x": 1}

    def test_full_subscriber_is_pruned(self, notifier):
        """Should drop a subscriber whose queue is full and keep serving others."""
        slow = notifier.add("slow", "user-1")
        fast = notifier.add("fast", "user-1")

        # queue_size=3; "connected" already takes one slot
        for i in range(2):
            notifier.send_dataset_update(f"ds-{i}", "PROCESSING", "user-1")
            _drain(fast)

        delivered = notifier.send_dataset_update("ds-2", "COMPLETED", "user-1")

        assert delivered == 1
        assert "slow" not in notifier
        assert "fast" in notifier
        assert slow.closed is True

    def test_closed_subscriber_is_pruned(self, notifier):
        """Should remove a subscriber that was closed behind the registry's back."""
        subscriber = notifier.add("tab-1", "user-1")
        subscriber.close()

        assert notifier.send_notification("user-1", "Done", "Your dataset is ready") == 0
        assert len(notifier) == 0

    def test_notification_payload(self, notifier):
        """Should carry title, message and level."""
        subscriber = notifier.add("tab-1", "user-1")
        _drain(subscriber)

        notifier.send_notification("user-1", "Scan finished", "12 findings", level="success")

        event = _drain(subscriber)[0]
        assert event["type"] == "notification"
        assert event["data"]["title"] == "Scan finished"
        assert event["data"]["type"] == "success"
        assert event["data"]["id"].startswith("notification_")

    def test_heartbeat_reaches_everyone(self, notifier):
        """Should broadcast a heartbeat to every subscriber."""
        a = notifier.add("a", "user-1")
        b = notifier.add("b", "user-2")

        assert notifier.heartbeat() == 2
        assert _drain(a)[-1]["type"] == "heartbeat"
        assert _drain(b)[-1]["type"] == "heartbeat"


class TestLifecycle:
    """Tests for start/shutdown and stream termination."""

    @pytest.mark.asyncio
    async def test_messages_end_after_remove(self, notifier):
        """Should end a subscriber's stream once it is removed."""
        subscriber = notifier.add("tab-1", "user-1")
        received = []

        async def consume():
            async for message in subscriber.messages():
                received.append(message)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)
        notifier.remove("tab-1")
        await asyncio.wait_for(task, timeout=1)

        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_heartbeat_loop(self):
        """Should send heartbeats on the configured interval."""
        notifier = ProgressNotifier(heartbeat_seconds=0.01, queue_size=10)
        subscriber = notifier.add("tab-1", "user-1")

        notifier.start()
        await asyncio.sleep(0.05)
        await notifier.shutdown()

        types = [json.loads(m[len("data: ") :])["type"] for m in _pending(subscriber)]
        assert "heartbeat" in types

    @pytest.mark.asyncio
    async def test_shutdown_is_idempotent(self, notifier):
        """Should close every subscriber and tolerate a second shutdown."""
        subscriber = notifier.add("tab-1", "user-1")
        notifier.start()

        await notifier.shutdown()
        await notifier.shutdown()

        assert len(notifier) == 0
        assert subscriber.closed is True


def _pending(subscriber) -> list[str]:
    messages = []
    while not subscriber._queue.empty():
        message = subscriber._queue.get_nowait()
        if message is not None:
            messages.append(message)
    return messages
