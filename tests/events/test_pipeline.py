"""Tests for events/pipeline.py.

Covers:
- Webhook authentication before any write
- Push fan-out into change events, with redelivery idempotency
- process_pending success and failure paths
- requeue, get_event, list_events, status_counts
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import timedelta
from typing import Any

import pytest
import pytest_asyncio
from sqlmodel import select

from codedrift.core.errors import ErrorCode, EventError, WebhookError
from codedrift.events.pipeline import ChangeEventPipeline
from codedrift.events.webhooks import compute_signature
from codedrift.store.database import Database
from codedrift.store.models import CodeChangeEvent, CodeReference, EventChangeType, EventStatus
from codedrift.tracking.notifications import NotificationService
from codedrift.tracking.references import CitationTracker

SECRET = "hook-secret"

APP = """import os


def greet(name):
    return f"hi {name}"


def farewell(name):
    return f"bye {name}"
"""


class SilentSink:
    async def send(self, notification: Any) -> None:
        return None


def push_body(*commits: dict[str, Any], repository: str = "acme/api") -> bytes:
    return json.dumps({"ref": "refs/heads/main", "repository": {"full_name": repository}, "commits": list(commits)}).encode()


def commit(
    sha: str, *, added: Sequence[str] = (), removed: Sequence[str] = (), modified: Sequence[str] = ()
) -> dict[str, Any]:
    return {
        "id": sha,
        "message": "change",
        "timestamp": "2026-01-01T10:00:00+02:00",
        "added": list(added),
        "removed": list(removed),
        "modified": list(modified),
    }


def signed(body: bytes, event: str = "push") -> dict[str, str]:
    return {"X-Hub-Signature-256": compute_signature(body, SECRET), "X-GitHub-Event": event}


@pytest.fixture
def tracker(db: Database, fake_vcs: Any) -> CitationTracker:
    fake_vcs.set_files(None, {"src/app.py": APP})
    return CitationTracker(db, fake_vcs, NotificationService([SilentSink()]))


@pytest.fixture
def pipeline(db: Database, tracker: CitationTracker) -> ChangeEventPipeline:
    return ChangeEventPipeline(db, tracker, SECRET)


@pytest_asyncio.fixture
async def reference_id(tracker: CitationTracker) -> str:
    (citation,) = await tracker.scan_document("doc-1", "[bye](github://acme/api/src/app.py:8-9)")
    return citation.code_reference_id


def _events(db: Database) -> list[CodeChangeEvent]:
    with db.session() as session:
        return list(session.exec(select(CodeChangeEvent)).all())


class TestWebhookAuthentication:
    @pytest.mark.asyncio
    async def test_missing_secret(self, db: Database, tracker: CitationTracker) -> None:
        pipeline = ChangeEventPipeline(db, tracker, None)

        with pytest.raises(WebhookError) as exc_info:
            await pipeline.handle_webhook({}, b"{}")

        assert exc_info.value.code == ErrorCode.WEBHOOK_SECRET_MISSING

    @pytest.mark.asyncio
    async def test_missing_signature(self, pipeline: ChangeEventPipeline) -> None:
        with pytest.raises(WebhookError) as exc_info:
            await pipeline.handle_webhook({"X-GitHub-Event": "push"}, b"{}")

        assert exc_info.value.code == ErrorCode.WEBHOOK_SIGNATURE_MISSING

    @pytest.mark.asyncio
    async def test_invalid_signature_writes_nothing(
        self, pipeline: ChangeEventPipeline, db: Database, reference_id: str
    ) -> None:
        body = push_body(commit("c2", modified=["src/app.py"]))
        headers = {"X-Hub-Signature-256": compute_signature(body, "wrong"), "X-GitHub-Event": "push"}

        with pytest.raises(WebhookError) as exc_info:
            await pipeline.handle_webhook(headers, body)

        assert exc_info.value.code == ErrorCode.WEBHOOK_SIGNATURE_INVALID
        assert _events(db) == []


class TestHandleWebhook:
    @pytest.mark.asyncio
    async def test_ping(self, pipeline: ChangeEventPipeline) -> None:
        body = b'{"zen": "hi", "hook_id": 1}'

        outcome = await pipeline.handle_webhook(signed(body, "ping"), body)

        assert outcome.to_dict() == {"status": "success", "event": "ping", "message": "Webhook is configured correctly"}

    @pytest.mark.asyncio
    async def test_unrecognized_event_is_ignored(self, pipeline: ChangeEventPipeline) -> None:
        body = b"{}"

        outcome = await pipeline.handle_webhook(signed(body, "issues"), body)

        assert outcome.status == "ignored"
        assert outcome.event == "issues"

    @pytest.mark.asyncio
    async def test_push_creates_event_for_cited_file(
        self, pipeline: ChangeEventPipeline, db: Database, reference_id: str
    ) -> None:
        # Given a push touching one cited and one uncited file
        body = push_body(commit("c2", modified=["src/app.py", "README.md"]))

        # When the webhook arrives
        outcome = await pipeline.handle_webhook(signed(body), body)

        # Then one pending event references the citation
        assert outcome.to_dict() == {"status": "success", "event": "push", "events_created": 1, "duplicates": 0}
        (event,) = _events(db)
        assert event.change_type == EventChangeType.MODIFIED
        assert event.affected_references == [reference_id]
        assert event.processing_status == EventStatus.PENDING
        assert event.commit_hash == "c2"
        assert event.timestamp.utcoffset() == timedelta(0)
        assert event.timestamp.hour == 8

    @pytest.mark.asyncio
    async def test_redelivery_is_idempotent(
        self, pipeline: ChangeEventPipeline, db: Database, reference_id: str
    ) -> None:
        body = push_body(commit("c2", modified=["src/app.py"]))
        await pipeline.handle_webhook(signed(body), body)

        outcome = await pipeline.handle_webhook(signed(body), body)

        assert (outcome.events_created, outcome.duplicates) == (0, 1)
        assert len(_events(db)) == 1

    @pytest.mark.asyncio
    async def test_removed_and_added_files(
        self, pipeline: ChangeEventPipeline, db: Database, reference_id: str
    ) -> None:
        body = push_body(commit("c2", added=["src/app.py"]), commit("c3", removed=["src/app.py"]))

        outcome = await pipeline.handle_webhook(signed(body), body)

        assert outcome.events_created == 2
        kinds = {e.commit_hash: e.change_type for e in _events(db)}
        assert kinds == {"c2": EventChangeType.MODIFIED, "c3": EventChangeType.DELETED}

    @pytest.mark.asyncio
    async def test_push_for_other_repository(self, pipeline: ChangeEventPipeline, db: Database, reference_id: str) -> None:
        body = push_body(commit("c2", modified=["src/app.py"]), repository="acme/web")

        outcome = await pipeline.handle_webhook(signed(body), body)

        assert outcome.events_created == 0
        assert _events(db) == []

    @pytest.mark.asyncio
    async def test_push_without_commits(self, pipeline: ChangeEventPipeline) -> None:
        body = push_body()

        outcome = await pipeline.handle_webhook(signed(body), body)

        assert outcome.status == "success"
        assert outcome.events_created == 0

    @pytest.mark.asyncio
    async def test_malformed_push(self, pipeline: ChangeEventPipeline) -> None:
        body = b'{"commits": "nope"}'

        with pytest.raises(WebhookError) as exc_info:
            await pipeline.handle_webhook(signed(body), body)

        assert exc_info.value.code == ErrorCode.WEBHOOK_INVALID_PAYLOAD


class TestProcessPending:
    async def _push(self, pipeline: ChangeEventPipeline, sha: str = "c2") -> CodeChangeEvent:
        body = push_body(commit(sha, modified=["src/app.py"]))
        await pipeline.handle_webhook(signed(body), body)
        (event,) = [e for e in pipeline.list_events() if e.commit_hash == sha]
        return event

    @pytest.mark.asyncio
    async def test_completes_and_relocates(
        self, pipeline: ChangeEventPipeline, fake_vcs: Any, db: Database, reference_id: str
    ) -> None:
        # Given a pending event whose commit shifts the cited lines
        event = await self._push(pipeline)
        fake_vcs.set_files("c2", {"src/app.py": "# header\n\n" + APP})

        # When processing
        summary = await pipeline.process_pending()

        # Then the event completes and the reference moves
        assert summary.to_dict() == {"processed": 1, "completed": 1, "failed": 0, "skipped": 0, "failures": {}}
        assert pipeline.get_event(event.id).processing_status == EventStatus.COMPLETED
        with db.session() as session:
            ref = session.get(CodeReference, reference_id)
        assert ref is not None
        assert (ref.start_line, ref.end_line) == (10, 11)

    @pytest.mark.asyncio
    async def test_failure_is_recorded(self, pipeline: ChangeEventPipeline, fake_vcs: Any, reference_id: str) -> None:
        event = await self._push(pipeline)
        fake_vcs.fail_with = RuntimeError("host unreachable")

        summary = await pipeline.process_pending()

        assert summary.failed == 1
        assert summary.failures == {event.id: "host unreachable"}
        stored = pipeline.get_event(event.id)
        assert stored.processing_status == EventStatus.FAILED
        assert stored.processing_error == "host unreachable"

    @pytest.mark.asyncio
    async def test_failed_events_are_not_retried(
        self, pipeline: ChangeEventPipeline, fake_vcs: Any, reference_id: str
    ) -> None:
        await self._push(pipeline)
        fake_vcs.fail_with = RuntimeError("boom")
        await pipeline.process_pending()
        fake_vcs.fail_with = None

        summary = await pipeline.process_pending()

        assert summary.processed == 0

    @pytest.mark.asyncio
    async def test_nothing_pending(self, pipeline: ChangeEventPipeline) -> None:
        summary = await pipeline.process_pending()

        assert summary.processed == 0
        assert summary.failures == {}


class TestAdministration:
    async def _failed_event(self, pipeline: ChangeEventPipeline, fake_vcs: Any) -> CodeChangeEvent:
        body = push_body(commit("c2", modified=["src/app.py"]))
        await pipeline.handle_webhook(signed(body), body)
        fake_vcs.fail_with = RuntimeError("boom")
        await pipeline.process_pending()
        fake_vcs.fail_with = None
        (event,) = pipeline.list_events(EventStatus.FAILED)
        return event

    @pytest.mark.asyncio
    async def test_requeue_failed_event(self, pipeline: ChangeEventPipeline, fake_vcs: Any, reference_id: str) -> None:
        event = await self._failed_event(pipeline, fake_vcs)
        fake_vcs.set_files("c2", {"src/app.py": APP})

        requeued = pipeline.requeue(event.id)

        assert requeued.processing_status == EventStatus.PENDING
        assert requeued.processing_error is None
        summary = await pipeline.process_pending()
        assert summary.completed == 1

    @pytest.mark.asyncio
    async def test_requeue_rejects_non_failed(self, pipeline: ChangeEventPipeline, reference_id: str) -> None:
        body = push_body(commit("c2", modified=["src/app.py"]))
        await pipeline.handle_webhook(signed(body), body)
        (event,) = pipeline.list_events()

        with pytest.raises(EventError) as exc_info:
            pipeline.requeue(event.id)

        assert exc_info.value.code == ErrorCode.EVENT_INVALID_STATE

    def test_unknown_event(self, pipeline: ChangeEventPipeline) -> None:
        with pytest.raises(EventError) as exc_info:
            pipeline.get_event("missing")
        assert exc_info.value.code == ErrorCode.EVENT_NOT_FOUND

        with pytest.raises(EventError):
            pipeline.requeue("missing")

    @pytest.mark.asyncio
    async def test_status_counts(self, pipeline: ChangeEventPipeline, fake_vcs: Any, reference_id: str) -> None:
        await self._failed_event(pipeline, fake_vcs)
        body = push_body(commit("c3", modified=["src/app.py"]))
        await pipeline.handle_webhook(signed(body), body)

        counts = pipeline.status_counts()

        assert counts == {"pending": 1, "processing": 0, "completed": 0, "failed": 1}
        assert len(pipeline.list_events(EventStatus.PENDING)) == 1
