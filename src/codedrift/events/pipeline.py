"""Change Event Pipeline.

Webhook push -> CodeChangeEvent rows -> CitationTracker, one event at a time.

Event lifecycle: pending -> processing -> completed | failed. Only pending
events are processed. Failed events stay failed until requeued; there is no
automatic retry.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import col, select

from codedrift.core.errors import EventError, WebhookError
from codedrift.events.webhooks import (
    EVENT_HEADER,
    SIGNATURE_HEADER,
    PingEvent,
    PushCommit,
    PushEvent,
    UnrecognizedEvent,
    decode_webhook,
    verify_signature,
)
from codedrift.store.database import Database
from codedrift.store.models import CodeChangeEvent, EventChangeType, EventStatus, utcnow
from codedrift.tracking.references import CitationTracker

log = structlog.get_logger(__name__)

DEFAULT_PENDING_LIMIT = 50


@dataclass
class WebhookOutcome:
    """Result of one webhook delivery."""

    status: str  # success | ignored
    event: str
    events_created: int = 0
    duplicates: int = 0
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status": self.status, "event": self.event}
        if self.message:
            data["message"] = self.message
        if self.event == "push":
            data["events_created"] = self.events_created
            data["duplicates"] = self.duplicates
        return data


@dataclass
class ProcessingSummary:
    """Result of one process_pending pass."""

    processed: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    failures: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "completed": self.completed,
            "failed": self.failed,
            "skipped": self.skipped,
            "failures": self.failures,
        }


def _as_utc(value: datetime | None) -> datetime:
    if value is None:
        return utcnow()
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class ChangeEventPipeline:
    """Turns webhook pushes into change events and drives them to completion."""

    def __init__(
        self,
        db: Database,
        tracker: CitationTracker,
        webhook_secret: str | None,
        pending_limit: int = DEFAULT_PENDING_LIMIT,
    ) -> None:
        self.db = db
        self.tracker = tracker
        self.webhook_secret = webhook_secret
        self.pending_limit = pending_limit
        self._lock = asyncio.Lock()

    # =========================================================================
    # Ingestion
    # =========================================================================

    async def handle_webhook(self, headers: Mapping[str, str], raw_body: bytes) -> WebhookOutcome:
        """Verify, decode and apply one webhook delivery.

        Raises:
            WebhookError: secret unset, signature missing or invalid, or a
                malformed payload. Raised before any row is written.
        """
        lowered = {k.lower(): v for k, v in headers.items()}
        if not self.webhook_secret:
            raise WebhookError.secret_missing()
        signature = lowered.get(SIGNATURE_HEADER)
        if not signature:
            raise WebhookError.signature_missing()
        if not verify_signature(raw_body, signature, self.webhook_secret):
            raise WebhookError.signature_invalid()

        event = decode_webhook(lowered.get(EVENT_HEADER), raw_body)
        match event:
            case PushEvent():
                return self._handle_push(event)
            case PingEvent():
                log.info("webhook_ping", hook_id=event.hook_id)
                return WebhookOutcome("success", "ping", message="Webhook is configured correctly")
            case UnrecognizedEvent():
                log.info("webhook_ignored", event_name=event.event)
                return WebhookOutcome("ignored", event.event)

    def _handle_push(self, push: PushEvent) -> WebhookOutcome:
        repository = push.repository.full_name
        outcome = WebhookOutcome("success", "push")
        if not push.commits:
            log.warning("push_without_commits", repository=repository)
            return outcome

        for commit in push.commits:
            for file_path, change_type in self._touched_files(commit):
                refs = self.tracker.active_references(repository, file_path)
                if not refs:
                    continue
                created = self._create_event(
                    CodeChangeEvent(
                        repository=repository,
                        file_path=file_path,
                        change_type=change_type,
                        commit_hash=commit.id,
                        timestamp=_as_utc(commit.timestamp),
                        affected_references=[r.id for r in refs],
                    )
                )
                if created:
                    outcome.events_created += 1
                else:
                    outcome.duplicates += 1

        log.info(
            "push_processed",
            repository=repository,
            commits=len(push.commits),
            events_created=outcome.events_created,
            duplicates=outcome.duplicates,
        )
        return outcome

    @staticmethod
    def _touched_files(commit: PushCommit) -> list[tuple[str, EventChangeType]]:
        """Added files count as modified; a new file may be cited ahead of time."""
        touched = [(p, EventChangeType.MODIFIED) for p in commit.added]
        touched += [(p, EventChangeType.DELETED) for p in commit.removed]
        touched += [(p, EventChangeType.MODIFIED) for p in commit.modified]
        return touched

    def _create_event(self, event: CodeChangeEvent) -> bool:
        """Insert unless (repository, file_path, commit_hash) already exists."""
        try:
            with self.db.immediate_transaction() as session:
                existing = session.exec(
                    select(CodeChangeEvent.id)
                    .where(CodeChangeEvent.repository == event.repository)
                    .where(CodeChangeEvent.file_path == event.file_path)
                    .where(CodeChangeEvent.commit_hash == event.commit_hash)
                ).first()
                if existing is not None:
                    log.debug("change_event_duplicate", event_id=existing, file_path=event.file_path)
                    return False
                session.add(event)
        except IntegrityError:
            log.debug("change_event_duplicate", file_path=event.file_path, commit=event.commit_hash)
            return False
        log.info(
            "change_event_created",
            event_id=event.id,
            repository=event.repository,
            file_path=event.file_path,
            change_type=event.change_type.value,
            references=len(event.affected_references),
        )
        return True

    # =========================================================================
    # Processing
    # =========================================================================

    def pending_events(self, limit: int | None = None) -> list[CodeChangeEvent]:
        """Oldest pending events first."""
        with self.db.session() as session:
            stmt = (
                select(CodeChangeEvent)
                .where(CodeChangeEvent.processing_status == EventStatus.PENDING)
                .order_by(col(CodeChangeEvent.timestamp), col(CodeChangeEvent.created_at))
                .limit(limit or self.pending_limit)
            )
            return list(session.exec(stmt).all())

    async def process_pending(self, limit: int | None = None) -> ProcessingSummary:
        """Process pending events sequentially. Concurrent calls queue up."""
        async with self._lock:
            summary = ProcessingSummary()
            events = self.pending_events(limit)
            log.info("processing_pending_events", count=len(events))
            for event in events:
                claimed = self._claim(event.id)
                if claimed is None:
                    summary.skipped += 1
                    continue
                summary.processed += 1
                error = await self._process(claimed)
                if error is None:
                    summary.completed += 1
                else:
                    summary.failed += 1
                    summary.failures[claimed.id] = error
            return summary

    def _claim(self, event_id: str) -> CodeChangeEvent | None:
        """pending -> processing, persisted; None if no longer pending."""
        with self.db.immediate_transaction() as session:
            event = session.get(CodeChangeEvent, event_id)
            if event is None or not event.is_processable:
                return None
            event.mark_as_processing()
            session.add(event)
        return event

    async def _process(self, event: CodeChangeEvent) -> str | None:
        """Run the tracker; returns the failure message, if any."""
        log.info("change_event_processing", event_id=event.id, file_path=event.file_path)
        try:
            summary = await self.tracker.process_event(event)
        except Exception as e:
            message = str(e) or type(e).__name__
            log.error("change_event_failed", event_id=event.id, error=message, exc_info=True)
            self._finish(event.id, error=message)
            return message
        self._finish(event.id)
        log.info("change_event_completed", event_id=event.id, outcomes=summary.outcomes)
        return None

    def _finish(self, event_id: str, error: str | None = None) -> None:
        with self.db.session() as session:
            event = session.get(CodeChangeEvent, event_id)
            if event is None:
                return
            if error is None:
                event.mark_as_completed()
            else:
                event.mark_as_failed(error)
            session.add(event)
            session.commit()

    # =========================================================================
    # Administration
    # =========================================================================

    def get_event(self, event_id: str) -> CodeChangeEvent:
        with self.db.session() as session:
            event = session.get(CodeChangeEvent, event_id)
        if event is None:
            raise EventError.not_found(event_id)
        return event

    def requeue(self, event_id: str) -> CodeChangeEvent:
        """failed -> pending. Any other state is rejected."""
        with self.db.immediate_transaction() as session:
            event = session.get(CodeChangeEvent, event_id)
            if event is None:
                raise EventError.not_found(event_id)
            if event.processing_status != EventStatus.FAILED:
                raise EventError.invalid_state(event_id, event.processing_status.value, EventStatus.FAILED.value)
            event.processing_status = EventStatus.PENDING
            event.processing_error = None
            session.add(event)
        log.info("change_event_requeued", event_id=event_id)
        return event

    def list_events(self, status: EventStatus | None = None, limit: int = 100) -> list[CodeChangeEvent]:
        with self.db.session() as session:
            stmt = select(CodeChangeEvent)
            if status is not None:
                stmt = stmt.where(CodeChangeEvent.processing_status == status)
            stmt = stmt.order_by(col(CodeChangeEvent.timestamp).desc()).limit(limit)
            return list(session.exec(stmt).all())

    def status_counts(self) -> dict[str, int]:
        counts = {s.value: 0 for s in EventStatus}
        with self.db.session() as session:
            rows = session.exec(
                select(CodeChangeEvent.processing_status, func.count()).group_by(
                    col(CodeChangeEvent.processing_status)
                )
            ).all()
        for status, count in rows:
            counts[EventStatus(status).value] = count
        return counts
