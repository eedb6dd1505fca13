"""Documentation-impact advisory.

After a sync classifies structure changes, the analyzer asks the language
model whether the repository's documentation needs an update. The verdict is
advisory: any model failure (transport, timeout, malformed or invalid reply)
falls back to a deterministic verdict computed from the changes themselves,
and nothing here ever fails a sync job.

Impact of one changed function:
- exported and complexity > 10, or public and complexity > 5: high
- exported or public: medium
- complexity > 15: medium
- otherwise: low

A change is significant when its impact is high, or medium on a public
function.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Literal

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel
from sqlmodel import select

from codedrift.clients.base import CommitInfo, LanguageModelClient
from codedrift.diff.models import DiffResult, StructureRecord
from codedrift.store.database import Database
from codedrift.store.models import DocumentationUpdate, Priority, Repository, UpdateType

log = structlog.get_logger(__name__)

DEFAULT_CONFIDENCE_THRESHOLD = 30
DEFAULT_TIMEOUT_SEC = 60.0
MAX_COMMIT_DETAILS = 5

_PRIORITY_RANK = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


# =============================================================================
# Verdict models
# =============================================================================


class _Suggestion(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    should_update: bool = False
    priority: Priority = Priority.MEDIUM

    @field_validator("priority", mode="before")
    @classmethod
    def coerce_priority(cls, v: Any) -> Any:
        if isinstance(v, str) and v.lower() in {p.value for p in Priority}:
            return v.lower()
        return Priority.MEDIUM


class ReadmeSuggestion(_Suggestion):
    sections: list[str] = Field(default_factory=list)
    suggested_content: str = ""


class ApiDocsSuggestion(_Suggestion):
    affected_endpoints: list[str] = Field(default_factory=list)
    suggested_content: str = ""


class ChangelogSuggestion(_Suggestion):
    entry_type: Literal["patch", "minor", "major"] = "patch"
    suggested_entry: str = ""


class SuggestedUpdates(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    readme: ReadmeSuggestion = Field(default_factory=ReadmeSuggestion)
    api_docs: ApiDocsSuggestion = Field(default_factory=ApiDocsSuggestion)
    changelog: ChangelogSuggestion = Field(default_factory=ChangelogSuggestion)


class ImpactVerdict(BaseModel):
    """Validated model reply (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    should_update: bool = False
    confidence: int = 0
    reasoning: str = ""
    suggested_updates: SuggestedUpdates = Field(default_factory=SuggestedUpdates)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> int:
        return max(0, min(100, round(float(v))))


# =============================================================================
# Change context
# =============================================================================


def change_impact(record: StructureRecord) -> Priority:
    public = record.is_public or record.is_exported
    if record.is_exported and record.complexity > 10:
        return Priority.HIGH
    if public and record.complexity > 5:
        return Priority.HIGH
    if public:
        return Priority.MEDIUM
    if record.complexity > 15:
        return Priority.MEDIUM
    return Priority.LOW


def is_significant(record: StructureRecord) -> bool:
    impact = change_impact(record)
    return impact == Priority.HIGH or (impact == Priority.MEDIUM and (record.is_public or record.is_exported))


def _function_summary(record: StructureRecord) -> dict[str, Any]:
    return {
        "function_name": record.qualified_name,
        "file_path": record.file_path,
        "signature": record.signature,
        "is_public": record.is_public or record.is_exported,
        "is_exported": record.is_exported,
        "complexity": record.complexity,
        "impact": change_impact(record).value,
    }


@dataclass
class ChangeContext:
    """Everything the model sees about one sync's changes."""

    repository: dict[str, Any]
    commits: dict[str, Any]
    changes: dict[str, list[dict[str, Any]]]
    summary: dict[str, Any]

    @classmethod
    def build(cls, repository: Repository, commits: Sequence[CommitInfo], diff: DiffResult) -> ChangeContext:
        """Commits are newest first, as the host returns them."""
        added = [c.current for c in diff.added]
        modified = [c.current for c in [*diff.modified, *diff.moved, *diff.renamed]]
        deleted = [c.current for c in diff.deleted]
        records = [*added, *modified, *deleted]
        complexities = [r.complexity for r in records]

        return cls(
            repository={
                "full_name": repository.full_name,
                "language": repository.language,
                "description": repository.description,
            },
            commits={
                "count": len(commits),
                "from_sha": commits[-1].sha[:7] if commits else None,
                "to_sha": commits[0].sha[:7] if commits else None,
                "details": [
                    {
                        "sha": c.sha[:7],
                        "message": c.message.split("\n", 1)[0],
                        "author": c.author,
                    }
                    for c in commits[:MAX_COMMIT_DETAILS]
                ],
            },
            changes={
                "added": [_function_summary(r) for r in added],
                "modified": [_function_summary(r) for r in modified],
                "deleted": [_function_summary(r) for r in deleted],
            },
            summary={
                "total_functions": len(records),
                "changed_functions": len(modified),
                "significant_changes": sum(1 for r in records if is_significant(r)),
                "average_complexity": sum(complexities) / len(complexities) if complexities else 0.0,
                "highest_complexity": max(complexities, default=0),
            },
        )

    @property
    def has_public_changes(self) -> bool:
        return any(c["is_public"] or c["is_exported"] for bucket in self.changes.values() for c in bucket)

    def to_dict(self) -> dict[str, Any]:
        return {
            "repository": self.repository,
            "commits": self.commits,
            "changes": self.changes,
            "summary": self.summary,
        }


def fallback_verdict(context: ChangeContext) -> ImpactVerdict:
    """Deterministic verdict used whenever the model is unavailable."""
    significant = context.summary["significant_changes"]
    public = context.has_public_changes
    docs_priority = Priority.HIGH if significant else Priority.MEDIUM
    return ImpactVerdict(
        should_update=significant > 0 or public,
        confidence=80 if significant else 50,
        reasoning=(
            f"Fallback analysis: {significant} significant changes detected"
            f"{' including public API changes' if public else ''}."
        ),
        suggested_updates=SuggestedUpdates(
            readme=ReadmeSuggestion(should_update=public, sections=["API", "Usage"], priority=docs_priority),
            api_docs=ApiDocsSuggestion(should_update=public, priority=docs_priority),
            changelog=ChangelogSuggestion(
                should_update=True,
                entry_type="minor" if significant else "patch",
                priority=Priority.MEDIUM,
            ),
        ),
    )


def choose_update_type(verdict: ImpactVerdict) -> tuple[UpdateType, Priority]:
    s = verdict.suggested_updates
    wanted = [u for u in (s.readme, s.api_docs, s.changelog) if u.should_update]
    if len(wanted) > 1:
        return UpdateType.MULTIPLE, Priority.HIGH
    if s.readme.should_update:
        return UpdateType.README, s.readme.priority
    if s.api_docs.should_update:
        return UpdateType.API_DOCS, s.api_docs.priority
    return UpdateType.CHANGELOG, s.changelog.priority


# =============================================================================
# Analyzer
# =============================================================================


@dataclass
class ImpactAnalysis:
    verdict: ImpactVerdict
    source: str  # model | fallback
    update: DocumentationUpdate | None = None


class DocumentationImpactAnalyzer:
    """Turns a sync's classified changes into an optional DocumentationUpdate."""

    def __init__(
        self,
        db: Database,
        llm: LanguageModelClient | None = None,
        confidence_threshold: int = DEFAULT_CONFIDENCE_THRESHOLD,
        timeout: float = DEFAULT_TIMEOUT_SEC,
    ) -> None:
        self.db = db
        self.llm = llm
        self.confidence_threshold = confidence_threshold
        self.timeout = timeout

    async def analyze(
        self,
        repository: Repository,
        commits: Sequence[CommitInfo],
        diff: DiffResult,
        sync_job_id: str | None = None,
    ) -> ImpactAnalysis:
        context = ChangeContext.build(repository, commits, diff)
        verdict, source = await self._verdict(context)
        analysis = ImpactAnalysis(verdict=verdict, source=source)

        log.info(
            "documentation_impact_analyzed",
            repository=repository.full_name,
            source=source,
            should_update=verdict.should_update,
            confidence=verdict.confidence,
        )
        if verdict.should_update and verdict.confidence > self.confidence_threshold:
            analysis.update = self._record(repository, commits, diff, context, verdict, source, sync_job_id)
        return analysis

    async def _verdict(self, context: ChangeContext) -> tuple[ImpactVerdict, str]:
        if self.llm is None:
            return fallback_verdict(context), "fallback"
        try:
            raw = await asyncio.wait_for(self.llm.analyze_changes(context.to_dict()), timeout=self.timeout)
            return ImpactVerdict.model_validate(raw), "model"
        except TimeoutError:
            log.warning("documentation_impact_timeout", timeout_sec=self.timeout)
        except ValidationError as e:
            log.warning("documentation_impact_invalid_reply", errors=e.error_count())
        except Exception as e:
            log.warning("documentation_impact_failed", error=str(e), error_type=type(e).__name__)
        return fallback_verdict(context), "fallback"

    def _record(
        self,
        repository: Repository,
        commits: Sequence[CommitInfo],
        diff: DiffResult,
        context: ChangeContext,
        verdict: ImpactVerdict,
        source: str,
        sync_job_id: str | None,
    ) -> DocumentationUpdate:
        update_type, priority = choose_update_type(verdict)
        update = DocumentationUpdate(
            repository_id=repository.id,
            sync_job_id=sync_job_id,
            priority=priority,
            update_type=update_type,
            confidence=verdict.confidence,
            reasoning=verdict.reasoning,
            analysis_result={**verdict.model_dump(mode="json"), "source": source},
            change_context={
                "commits": {
                    "from": commits[-1].sha if commits else None,
                    "to": commits[0].sha if commits else None,
                    "count": len(commits),
                },
                "changes": {
                    "added": len(diff.added),
                    "modified": len(diff.modified) + len(diff.moved) + len(diff.renamed),
                    "deleted": len(diff.deleted),
                },
                "significant_changes": context.summary["significant_changes"],
            },
        )
        update.set_due_date()
        with self.db.session() as session:
            session.add(update)
            session.commit()
        log.info(
            "documentation_update_created",
            update_id=update.id,
            repository=repository.full_name,
            update_type=update_type.value,
            priority=priority.value,
        )
        return update

    def pending_updates(
        self,
        repository_id: str | None = None,
        priority: Priority | None = None,
    ) -> list[DocumentationUpdate]:
        """Pending updates, highest priority and confidence first."""
        with self.db.session() as session:
            stmt = select(DocumentationUpdate).where(DocumentationUpdate.status == "pending")
            if repository_id is not None:
                stmt = stmt.where(DocumentationUpdate.repository_id == repository_id)
            if priority is not None:
                stmt = stmt.where(DocumentationUpdate.priority == priority)
            rows = list(session.exec(stmt).all())
        return sorted(rows, key=lambda u: (_PRIORITY_RANK[Priority(u.priority)], -u.confidence, u.created_at))
