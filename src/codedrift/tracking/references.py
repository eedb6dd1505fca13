"""Citation tracking: create citations from documents and keep them current.

CitationTracker is the stateful side of relocation. It loads CodeReference
rows, fetches the changed file, runs the pure relocator and persists the
outcome:

- applied (relocated/updated): lines, content, hash and commit rewritten,
  staleness cleared, change notification sent;
- low confidence: marked stale, conflict notification carrying the
  suggested lines (not applied);
- not found: marked stale, conflict notification ``modified``;
- file deleted: deactivated, conflict notification ``deleted``;
- reference already inactive: skipped with outcome ``inactive``; the row
  is left untouched and no notification goes out.

Notifications go out after the row is committed.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field

import structlog
from sqlmodel import col, select

from codedrift.clients.base import VcsClient
from codedrift.core.errors import CodeDriftError
from codedrift.core.languages import detect_language
from codedrift.extraction.locator import locate_function
from codedrift.extraction.models import NotFound
from codedrift.store.database import Database
from codedrift.store.models import (
    CodeChangeEvent,
    CodeReference,
    DocumentCitation,
    EventChangeType,
    ReferenceType,
)
from codedrift.tracking.links import CodeLink, parse_code_links, snippet_block, validate_code_reference
from codedrift.tracking.notifications import ConflictType, NotificationService
from codedrift.tracking.relocator import (
    ReferenceView,
    RelocationOutcome,
    RelocationResult,
    extract_snippet,
    relocate,
)

log = structlog.get_logger(__name__)

# Outcome for a reference that was deactivated before the event reached it
INACTIVE = "inactive"


@dataclass
class TrackingSummary:
    """Per-event tally of reference outcomes."""

    event_id: str
    outcomes: dict[str, str] = field(default_factory=dict)  # reference_id -> outcome
    missing: list[str] = field(default_factory=list)

    def count(self, outcome: str) -> int:
        return sum(1 for o in self.outcomes.values() if o == outcome)


class CitationTracker:
    """Applies file changes to the citations that point into them."""

    def __init__(self, db: Database, vcs: VcsClient, notifications: NotificationService | None = None) -> None:
        self.db = db
        self.vcs = vcs
        self.notifications = notifications or NotificationService()

    # =========================================================================
    # Queries
    # =========================================================================

    def active_references(self, repository: str, file_path: str) -> list[CodeReference]:
        """Active citations into one file of ``owner/name``."""
        owner, _, name = repository.partition("/")
        with self.db.session() as session:
            stmt = (
                select(CodeReference)
                .where(CodeReference.repository_owner == owner)
                .where(CodeReference.repository_name == name)
                .where(CodeReference.file_path == file_path)
                .where(col(CodeReference.is_active).is_(True))
                .order_by(col(CodeReference.created_at))
            )
            return list(session.exec(stmt).all())

    def references_for_document(self, document_id: str) -> list[CodeReference]:
        with self.db.session() as session:
            stmt = (
                select(CodeReference)
                .join(DocumentCitation, col(DocumentCitation.code_reference_id) == col(CodeReference.id))
                .where(DocumentCitation.document_id == document_id)
                .order_by(col(DocumentCitation.created_at))
            )
            return list(session.exec(stmt).all())

    def _document_ids(self, reference_id: str) -> list[str]:
        with self.db.session() as session:
            stmt = select(DocumentCitation.document_id).where(DocumentCitation.code_reference_id == reference_id)
            return sorted(set(session.exec(stmt).all()))

    def _find_existing(self, link: CodeLink, start_line: int | None, end_line: int | None) -> CodeReference | None:
        with self.db.session() as session:
            stmt = (
                select(CodeReference)
                .where(CodeReference.repository_owner == link.owner)
                .where(CodeReference.repository_name == link.repo)
                .where(CodeReference.file_path == link.file_path)
                .where(CodeReference.reference_type == link.reference_type)
                .where(col(CodeReference.is_active).is_(True))
            )
            if link.reference_type == ReferenceType.FUNCTION:
                stmt = stmt.where(CodeReference.function_name == link.function_name)
            else:
                stmt = stmt.where(CodeReference.start_line == start_line).where(CodeReference.end_line == end_line)
            return session.exec(stmt).first()

    def _save(self, row: CodeReference | DocumentCitation) -> None:
        with self.db.session() as session:
            session.add(row)
            session.commit()

    # =========================================================================
    # Event processing
    # =========================================================================

    async def process_event(self, event: CodeChangeEvent) -> TrackingSummary:
        """Run every affected reference of an event through relocation.

        Missing references are skipped. Transport errors propagate so the
        caller can fail the event.
        """
        summary = TrackingSummary(event_id=event.id)
        for reference_id in event.affected_references:
            with self.db.session() as session:
                ref = session.get(CodeReference, reference_id)
            if ref is None:
                log.warning("reference_not_found", reference_id=reference_id, event_id=event.id)
                summary.missing.append(reference_id)
                continue
            outcome = await self.track_reference(ref, event)
            summary.outcomes[reference_id] = outcome
        return summary

    async def track_reference(self, ref: CodeReference, event: CodeChangeEvent) -> str:
        """Apply one event to one reference and return the outcome name.

        Relocation scans the whole file, so it runs in a worker thread.
        """
        if not ref.is_active:
            log.info("reference_inactive_skipped", reference_id=ref.id, event_id=event.id)
            return INACTIVE

        if event.change_type == EventChangeType.DELETED:
            await self._handle_deleted(ref)
            return "deleted"

        if (
            event.change_type in (EventChangeType.MOVED, EventChangeType.RENAMED)
            and event.old_file_path == ref.file_path
            and event.file_path != ref.file_path
        ):
            log.info("reference_file_moved", reference_id=ref.id, old=ref.file_path, new=event.file_path)
            ref.file_path = event.file_path

        text = await self.vcs.get_file_content(
            ref.repository_owner, ref.repository_name, ref.file_path, event.commit_hash
        )
        if text is None:
            await self._handle_deleted(ref)
            return "deleted"

        view = ReferenceView.from_reference(ref, detect_language(ref.file_path))
        result = await asyncio.to_thread(relocate, view, text)
        await self._apply(ref, result, event.commit_hash)
        return result.outcome.value

    async def _handle_deleted(self, ref: CodeReference) -> None:
        ref.mark_as_deleted()
        with self.db.session() as session:
            session.add(ref)
            citations = session.exec(
                select(DocumentCitation).where(DocumentCitation.code_reference_id == ref.id)
            ).all()
            for citation in citations:
                citation.is_active = False
                session.add(citation)
            session.commit()
        log.info("reference_deactivated", reference_id=ref.id, file_path=ref.file_path)
        await self.notifications.send_conflict_notification(
            ref.id,
            ConflictType.DELETED,
            ref.content,
            document_ids=self._document_ids(ref.id),
        )

    async def _apply(self, ref: CodeReference, result: RelocationResult, commit_sha: str) -> None:
        old_content = ref.content
        match result.outcome:
            case RelocationOutcome.UNCHANGED:
                ref.update_commit_info(commit_sha)
                ref.mark_as_fresh()
                self._save(ref)
                log.debug("reference_unchanged", reference_id=ref.id)

            case RelocationOutcome.RELOCATED | RelocationOutcome.UPDATED:
                assert result.start_line is not None and result.content is not None
                end_line = None if ref.reference_type == ReferenceType.LINE else result.end_line
                ref.update_line_numbers(result.start_line, end_line)
                ref.update_content(result.content)
                ref.update_commit_info(commit_sha)
                ref.mark_as_fresh()
                self._save(ref)
                log.info(
                    "reference_relocated",
                    reference_id=ref.id,
                    outcome=result.outcome.value,
                    method=result.method.value if result.method else None,
                    confidence=round(result.confidence, 3),
                    start_line=result.start_line,
                    end_line=end_line,
                )
                change_type = "moved" if result.outcome == RelocationOutcome.RELOCATED else "modified"
                await self.notifications.send_change_notification(
                    ref.id,
                    change_type,
                    old_content,
                    result.content,
                    document_ids=self._document_ids(ref.id),
                )

            case RelocationOutcome.LOW_CONFIDENCE | RelocationOutcome.NOT_FOUND:
                ref.mark_as_stale()
                self._save(ref)
                log.warning(
                    "reference_stale",
                    reference_id=ref.id,
                    outcome=result.outcome.value,
                    confidence=round(result.confidence, 3),
                    reason=result.reason,
                )
                await self.notifications.send_conflict_notification(
                    ref.id,
                    ConflictType.MODIFIED,
                    old_content,
                    new_content=result.content,
                    new_start_line=result.start_line,
                    new_end_line=result.end_line,
                    document_ids=self._document_ids(ref.id),
                )

    # =========================================================================
    # Documents
    # =========================================================================

    async def scan_document(self, document_id: str, markdown: str, ref: str | None = None) -> list[DocumentCitation]:
        """Create references and citations for every link in a document.

        A link that cannot be resolved is logged and skipped. Links that
        resolve to an existing active reference reuse it.
        """
        links = parse_code_links(markdown)
        if not links:
            log.info("no_code_links", document_id=document_id)
            return []

        created: list[DocumentCitation] = []
        for link in links:
            try:
                citation = await self._citation_for(document_id, link, ref)
            except CodeDriftError as e:
                log.warning("code_link_failed", document_id=document_id, link=link.original_text, error=str(e))
                continue
            if citation is not None:
                created.append(citation)

        log.info("document_scanned", document_id=document_id, links=len(links), citations=len(created))
        return created

    async def _citation_for(self, document_id: str, link: CodeLink, ref: str | None) -> DocumentCitation | None:
        if not validate_code_reference(
            owner=link.owner,
            repo=link.repo,
            file_path=link.file_path,
            reference_type=link.reference_type,
            start_line=link.start_line,
            end_line=link.end_line,
            function_name=link.function_name,
        ):
            log.warning("code_link_invalid", document_id=document_id, link=link.original_text)
            return None

        text = await self.vcs.get_file_content(link.owner, link.repo, link.file_path, ref)
        if text is None:
            log.warning("code_link_file_missing", document_id=document_id, link=link.original_text)
            return None

        if link.reference_type == ReferenceType.FUNCTION:
            assert link.function_name is not None
            span = locate_function(text, link.function_name, detect_language(link.file_path))
            if isinstance(span, NotFound):
                log.warning("code_link_function_missing", document_id=document_id, function=link.function_name)
                return None
            start_line, end_line = span.start_line, span.end_line
        else:
            assert link.start_line is not None
            start_line, end_line = link.start_line, link.end_line
            total = len(text.split("\n"))
            if max(start_line, end_line or start_line) > total:
                log.warning("code_link_out_of_range", document_id=document_id, link=link.original_text, lines=total)
                return None

        reference = self._find_existing(link, start_line, end_line)
        if reference is None:
            reference = CodeReference(
                repository_owner=link.owner,
                repository_name=link.repo,
                file_path=link.file_path,
                reference_type=link.reference_type,
                start_line=start_line,
                end_line=end_line,
                function_name=link.function_name,
                commit_sha=ref,
            )
            reference.update_content(extract_snippet(text, start_line, end_line or start_line))

        citation = DocumentCitation(
            document_id=document_id,
            code_reference_id=reference.id,
            placeholder_text=link.original_text,
            context=link.context or None,
        )
        self._save(reference)
        self._save(citation)
        return citation

    def render_document(self, document_id: str, markdown: str) -> str:
        """Replace each active citation link with a fenced snippet."""
        with self.db.session() as session:
            stmt = (
                select(DocumentCitation, CodeReference)
                .join(CodeReference, col(DocumentCitation.code_reference_id) == col(CodeReference.id))
                .where(DocumentCitation.document_id == document_id)
            )
            rows: Iterable[tuple[DocumentCitation, CodeReference]] = session.exec(stmt).all()

        rendered = markdown
        for citation, reference in rows:
            if citation.is_active and reference.is_active:
                rendered = rendered.replace(
                    citation.placeholder_text, snippet_block(reference.file_path, reference.content), 1
                )
        return rendered

    def deactivate_reference(self, reference_id: str) -> bool:
        with self.db.session() as session:
            ref = session.get(CodeReference, reference_id)
            if ref is None:
                return False
            ref.mark_as_deleted()
            session.add(ref)
            for citation in session.exec(
                select(DocumentCitation).where(DocumentCitation.code_reference_id == reference_id)
            ).all():
                citation.is_active = False
                session.add(citation)
            session.commit()
        log.info("reference_deactivated", reference_id=reference_id)
        return True
