"""Tests for tracking/notifications.py.

Covers:
- Message formatting and truncation
- Fan-out to sinks
- Failing sinks are logged, not raised
- Slack webhook sink over httpx
"""

from __future__ import annotations

import json

import httpx
import pytest

from codedrift.tracking.notifications import (
    MAX_CONTENT_LENGTH,
    ConflictType,
    Notification,
    NotificationService,
    Resolution,
    SlackWebhookSink,
    format_change_message,
    format_conflict_message,
    format_summary_message,
)


class RecordingSink:
    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)


class FailingSink:
    async def send(self, notification: Notification) -> None:
        raise RuntimeError("sink down")


class TestFormatting:
    def test_deleted_shows_original(self) -> None:
        message = format_change_message("r1", "deleted", "x = 1")

        assert message.startswith("Code reference r1 has been deleted.")
        assert "Original content:\n```\nx = 1\n```" in message

    def test_modified_shows_both_sides(self) -> None:
        message = format_change_message("r1", "modified", "old", "new")

        assert "Old content:\n```\nold\n```" in message
        assert "New content:\n```\nnew\n```" in message

    def test_long_content_is_truncated(self) -> None:
        message = format_change_message("r1", "moved", "a" * (MAX_CONTENT_LENGTH + 50))

        assert "a" * MAX_CONTENT_LENGTH + "..." in message
        assert "a" * (MAX_CONTENT_LENGTH + 1) not in message

    @pytest.mark.parametrize(
        ("resolution", "expected"),
        [
            ("manual", "Manual intervention needed"),
            ("auto", "Automatically resolved"),
            ("ignore", "Ignored"),
            ("escalate", "Resolution required: escalate"),
        ],
    )
    def test_conflict_resolutions(self, resolution: str, expected: str) -> None:
        message = format_conflict_message("r1", "modified", resolution)

        assert "Conflict type: modified" in message
        assert expected in message

    def test_summary(self) -> None:
        message = format_summary_message("acme/api", 4, 2)

        assert "Repository: acme/api" in message
        assert "Total changes: 4" in message
        assert "Affected code references: 2" in message


class TestNotificationService:
    @pytest.mark.asyncio
    async def test_change_notification_reaches_every_sink(self) -> None:
        first, second = RecordingSink(), RecordingSink()
        service = NotificationService([first, second])

        delivered = await service.send_change_notification("r1", "modified", "old", "new", document_ids=["d1"])

        assert delivered == 2
        (note,) = first.sent
        assert note.kind == "code_change"
        assert note.payload["document_ids"] == ["d1"]
        assert second.sent == first.sent

    @pytest.mark.asyncio
    async def test_conflict_payload(self) -> None:
        sink = RecordingSink()
        service = NotificationService([sink])

        await service.send_conflict_notification(
            "r1", ConflictType.MODIFIED, "old", Resolution.MANUAL, new_start_line=4, new_end_line=6
        )

        payload = sink.sent[0].payload
        assert payload["conflict_type"] == "modified"
        assert payload["resolution"] == "manual"
        assert (payload["new_start_line"], payload["new_end_line"]) == (4, 6)
        assert payload["document_ids"] == []

    @pytest.mark.asyncio
    async def test_failing_sink_does_not_raise(self) -> None:
        # Given one broken and one working sink
        working = RecordingSink()
        service = NotificationService([FailingSink(), working])

        # When sending
        delivered = await service.send_repository_summary("acme/api", 3, 1)

        # Then the working sink still receives it
        assert delivered == 1
        assert working.sent[0].kind == "summary"

    def test_defaults_to_log_sink(self) -> None:
        service = NotificationService()

        assert [type(s).__name__ for s in service.sinks] == ["LogNotificationSink"]


class TestSlackWebhookSink:
    @pytest.mark.asyncio
    async def test_posts_message_text(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, text="ok")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            sink = SlackWebhookSink("https://hooks.example.com/T1", client=client)
            await sink.send(Notification(kind="summary", message="hello"))

        assert str(requests[0].url) == "https://hooks.example.com/T1"
        assert json.loads(requests[0].content) == {"text": "hello"}

    @pytest.mark.asyncio
    async def test_http_error_raises(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(500))

        async with httpx.AsyncClient(transport=transport) as client:
            sink = SlackWebhookSink("https://hooks.example.com/T1", client=client)
            with pytest.raises(httpx.HTTPStatusError):
                await sink.send(Notification(kind="summary", message="hello"))
