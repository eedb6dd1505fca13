"""Change and conflict notifications for tracked citations.

NotificationService formats messages and hands them to sinks. A failing sink
is logged and skipped; notification errors never reach the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

import httpx
import structlog

log = structlog.get_logger(__name__)

MAX_CONTENT_LENGTH = 200


class ConflictType(str, Enum):
    DELETED = "deleted"
    MOVED = "moved"
    MODIFIED = "modified"


class Resolution(str, Enum):
    MANUAL = "manual"
    AUTO = "auto"
    IGNORE = "ignore"


@dataclass(frozen=True, slots=True)
class Notification:
    """A formatted message plus its structured payload."""

    kind: str  # code_change | conflict | summary
    message: str
    payload: dict[str, Any] = field(default_factory=dict)


class NotificationSink(Protocol):
    async def send(self, notification: Notification) -> None: ...


class LogNotificationSink:
    """Writes notifications to the structured log."""

    async def send(self, notification: Notification) -> None:
        log.info(
            "notification",
            kind=notification.kind,
            message=notification.message,
            **{k: v for k, v in notification.payload.items() if k not in ("old_content", "new_content")},
        )


class SlackWebhookSink:
    """Posts notifications to a Slack incoming webhook."""

    def __init__(self, webhook_url: str, timeout: float = 10.0, client: httpx.AsyncClient | None = None) -> None:
        self._url = webhook_url
        self._timeout = timeout
        self._client = client

    async def send(self, notification: Notification) -> None:
        body = {"text": notification.message}
        if self._client is not None:
            response = await self._client.post(self._url, json=body, timeout=self._timeout)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self._url, json=body)
        response.raise_for_status()


def _truncate(content: str) -> str:
    if len(content) > MAX_CONTENT_LENGTH:
        return content[:MAX_CONTENT_LENGTH] + "..."
    return content


def format_change_message(reference_id: str, change_type: str, old_content: str, new_content: str | None = None) -> str:
    message = f"Code reference {reference_id} has been {change_type}."
    if change_type == "deleted":
        message += f"\n\nOriginal content:\n```\n{_truncate(old_content)}\n```"
    elif change_type == "modified" and new_content:
        message += f"\n\nOld content:\n```\n{_truncate(old_content)}\n```"
        message += f"\n\nNew content:\n```\n{_truncate(new_content)}\n```"
    else:
        message += f"\n\nContent:\n```\n{_truncate(old_content)}\n```"
    return message


def format_conflict_message(reference_id: str, conflict_type: str, resolution: str) -> str:
    message = f"Code conflict detected for reference {reference_id}.\n\nConflict type: {conflict_type}"
    match resolution:
        case Resolution.MANUAL:
            message += "\n\nResolution required: Manual intervention needed"
            message += "\nPlease review and update the affected documentation."
        case Resolution.AUTO:
            message += "\n\nResolution: Automatically resolved"
            message += "\nThe code reference has been automatically updated."
        case Resolution.IGNORE:
            message += "\n\nResolution: Ignored"
            message += "\nThe conflict has been marked as ignored."
        case _:
            message += f"\n\nResolution required: {resolution}"
    return message


def format_summary_message(repository: str, total_changes: int, affected_references: int) -> str:
    return (
        "Repository Update Summary\n\n"
        f"Repository: {repository}\n"
        f"Total changes: {total_changes}\n"
        f"Affected code references: {affected_references}"
    )


class NotificationService:
    """Fans notifications out to every configured sink."""

    def __init__(self, sinks: list[NotificationSink] | None = None) -> None:
        self.sinks: list[NotificationSink] = sinks if sinks is not None else [LogNotificationSink()]

    async def _dispatch(self, notification: Notification) -> int:
        delivered = 0
        for sink in self.sinks:
            try:
                await sink.send(notification)
                delivered += 1
            except Exception as e:
                log.warning(
                    "notification_failed",
                    sink=type(sink).__name__,
                    kind=notification.kind,
                    error=str(e),
                )
        return delivered

    async def send_change_notification(
        self,
        reference_id: str,
        change_type: str,
        old_content: str,
        new_content: str | None = None,
        document_ids: list[str] | None = None,
    ) -> int:
        """Report an applied citation change. Returns the number of sinks reached."""
        return await self._dispatch(
            Notification(
                kind="code_change",
                message=format_change_message(reference_id, change_type, old_content, new_content),
                payload={
                    "reference_id": reference_id,
                    "document_ids": document_ids or [],
                    "change_type": change_type,
                    "old_content": old_content,
                    "new_content": new_content,
                },
            )
        )

    async def send_conflict_notification(
        self,
        reference_id: str,
        conflict_type: ConflictType,
        old_content: str,
        resolution: Resolution = Resolution.MANUAL,
        *,
        new_content: str | None = None,
        new_start_line: int | None = None,
        new_end_line: int | None = None,
        document_ids: list[str] | None = None,
    ) -> int:
        """Report a citation that could not be relocated automatically."""
        return await self._dispatch(
            Notification(
                kind="conflict",
                message=format_conflict_message(reference_id, conflict_type.value, resolution.value),
                payload={
                    "reference_id": reference_id,
                    "document_ids": document_ids or [],
                    "conflict_type": conflict_type.value,
                    "resolution": resolution.value,
                    "old_content": old_content,
                    "new_content": new_content,
                    "new_start_line": new_start_line,
                    "new_end_line": new_end_line,
                },
            )
        )

    async def send_repository_summary(self, repository: str, total_changes: int, affected_references: int) -> int:
        return await self._dispatch(
            Notification(
                kind="summary",
                message=format_summary_message(repository, total_changes, affected_references),
                payload={
                    "repository": repository,
                    "total_changes": total_changes,
                    "affected_references": affected_references,
                },
            )
        )
