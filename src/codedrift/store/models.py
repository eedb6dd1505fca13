"""SQLModel definitions for the drift store.

Single source of truth for all table schemas.

Conventions:
- Primary keys are uuid4 hex strings (occurrences use an integer rowid).
- Timestamps are timezone-aware UTC. SQLite stores them naive; UTCDateTime
  converts on the way in and out.
- JSON columns are always *reassigned*, never mutated in place; SQLAlchemy
  does not track in-place mutation of plain JSON values.
- Rows are never deleted. Structures and references are deactivated.
"""

from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, UniqueConstraint
from sqlalchemy.types import TypeDecorator
from sqlmodel import Field, SQLModel

from codedrift.core.hashing import sha256_hex, short_fingerprint


def utcnow() -> datetime:
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator[datetime]):
    """Aware UTC datetimes over a naive SQLite column.

    Naive input is taken to be UTC already.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value.replace(tzinfo=None)

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        return value.replace(tzinfo=UTC)


def _new_id() -> str:
    return uuid4().hex


def _timestamp() -> Any:
    return Field(default_factory=utcnow, sa_type=UTCDateTime)


def _optional_timestamp() -> Any:
    return Field(default=None, sa_type=UTCDateTime)


def _json_column() -> Any:
    return Field(default_factory=dict, sa_column=Column(JSON, nullable=False))


def _json_list_column() -> Any:
    return Field(default_factory=list, sa_column=Column(JSON, nullable=False))


# ============================================================================
# ENUMS
# ============================================================================


class ReferenceType(str, Enum):
    """How a citation addresses code."""

    LINE = "line"
    FUNCTION = "function"
    RANGE = "range"


class ChangeKind(str, Enum):
    """Classified structure change between two commits."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    MOVED = "moved"
    RENAMED = "renamed"


class EventChangeType(str, Enum):
    """File-level change carried by a CodeChangeEvent."""

    MODIFIED = "modified"
    MOVED = "moved"
    DELETED = "deleted"
    RENAMED = "renamed"


class EventStatus(str, Enum):
    """CodeChangeEvent lifecycle: pending -> processing -> completed | failed."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncJobType(str, Enum):
    SCHEDULED = "scheduled"
    MANUAL = "manual"
    WEBHOOK = "webhook"


class SyncJobStatus(str, Enum):
    """SyncJob lifecycle: pending -> running -> completed | failed | cancelled."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SyncJobStatus.COMPLETED, SyncJobStatus.FAILED, SyncJobStatus.CANCELLED)


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class UpdateType(str, Enum):
    README = "readme"
    API_DOCS = "api_docs"
    CHANGELOG = "changelog"
    MULTIPLE = "multiple"


# ============================================================================
# REPOSITORIES
# ============================================================================


class Repository(SQLModel, table=True):
    """A tracked repository on the version-control host.

    sync_config keys (all optional): enabled, branch, include_paths,
    exclude_paths, file_extensions, sync_frequency (daily|weekly|manual).
    """

    __tablename__ = "repositories"
    __table_args__ = (UniqueConstraint("owner", "name"),)

    id: str = Field(default_factory=_new_id, primary_key=True)
    owner: str = Field(index=True)
    name: str = Field(index=True)
    default_branch: str = "main"
    description: str | None = None
    language: str | None = None
    last_commit_sha: str | None = None
    last_synced_at: datetime | None = _optional_timestamp()
    active: bool = True
    sync_config: dict[str, Any] = _json_column()
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def sync_enabled(self) -> bool:
        return self.sync_config.get("enabled") is not False

    @property
    def sync_frequency(self) -> str | None:
        return self.sync_config.get("sync_frequency")

    @property
    def tracked_branch(self) -> str:
        return self.sync_config.get("branch") or self.default_branch

    def is_due_for_daily_sync(self) -> bool:
        return self.active and self.sync_enabled and self.sync_frequency in (None, "daily")


# ============================================================================
# STRUCTURES
# ============================================================================


class CodeStructure(SQLModel, table=True):
    """One function/method identity, keyed by fingerprint within a repository.

    Written once. file_path, commit_sha, the line span, ast_data and metrics
    record where and how the fingerprint was first seen; only ``active``
    (and ``updated_at`` with it) changes afterwards. Per-commit positions and
    metrics live in StructureOccurrence.
    """

    __tablename__ = "code_structures"
    __table_args__ = (UniqueConstraint("repository_id", "fingerprint"),)

    id: str = Field(default_factory=_new_id, primary_key=True)
    repository_id: str = Field(foreign_key="repositories.id", index=True)
    file_path: str = Field(index=True)
    commit_sha: str
    function_name: str = Field(index=True)
    class_name: str | None = None
    signature: str
    fingerprint: str = Field(index=True)
    start_line: int
    end_line: int
    language: str
    ast_data: dict[str, Any] = _json_column()
    metrics: dict[str, Any] = _json_column()
    active: bool = True
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()

    @property
    def short_fingerprint(self) -> str:
        return short_fingerprint(self.fingerprint)

    @property
    def qualified_name(self) -> str:
        return f"{self.class_name}.{self.function_name}" if self.class_name else self.function_name

    @property
    def location(self) -> str:
        return f"{self.file_path}:{self.start_line}-{self.end_line}"


class StructureOccurrence(SQLModel, table=True):
    """A structure present in one file at a given commit.

    The same fingerprint can occur in several files at one commit, so the
    file path is part of the key.
    """

    __tablename__ = "structure_occurrences"
    __table_args__ = (UniqueConstraint("structure_id", "commit_sha", "file_path"),)

    id: int | None = Field(default=None, primary_key=True)
    repository_id: str = Field(foreign_key="repositories.id", index=True)
    commit_sha: str = Field(index=True)
    structure_id: str = Field(foreign_key="code_structures.id", index=True)
    file_path: str
    start_line: int
    end_line: int
    ast_data: dict[str, Any] = _json_column()
    metrics: dict[str, Any] = _json_column()


class CodeChangeLog(SQLModel, table=True):
    """One classified structure change between two commits."""

    __tablename__ = "code_change_logs"

    id: str = Field(default_factory=_new_id, primary_key=True)
    repository_id: str = Field(foreign_key="repositories.id", index=True)
    code_structure_id: str | None = Field(default=None, foreign_key="code_structures.id")
    sync_job_id: str | None = Field(default=None, index=True)
    from_commit_sha: str
    to_commit_sha: str = Field(index=True)
    change_type: ChangeKind
    file_path: str
    old_file_path: str | None = None
    function_name: str | None = None
    old_function_name: str | None = None
    class_name: str | None = None
    change_details: dict[str, Any] = _json_column()
    created_at: datetime = _timestamp()

    @property
    def is_significant_change(self) -> bool:
        details = self.change_details
        return (
            self.change_type in (ChangeKind.ADDED, ChangeKind.DELETED)
            or details.get("lines_added", 0) > 10
            or details.get("lines_deleted", 0) > 10
            or details.get("old_signature") != details.get("new_signature")
        )

    @property
    def change_description(self) -> str:
        what = f"function {self.function_name}" if self.function_name else "code"
        match self.change_type:
            case ChangeKind.ADDED:
                return f"Added {what} in {self.file_path}"
            case ChangeKind.DELETED:
                return f"Deleted {what} from {self.file_path}"
            case ChangeKind.MODIFIED:
                return f"Modified {what} in {self.file_path}"
            case ChangeKind.MOVED:
                return f"Moved {what} from {self.old_file_path} to {self.file_path}"
            case ChangeKind.RENAMED:
                return f"Renamed {self.old_function_name} to {self.function_name} in {self.file_path}"
        return f"Changed {self.file_path}"

    @property
    def impact_level(self) -> Priority:
        details = self.change_details
        total = details.get("lines_added", 0) + details.get("lines_deleted", 0)
        if self.change_type == ChangeKind.DELETED or total > 50:
            return Priority.HIGH
        if self.change_type == ChangeKind.ADDED or total > 10:
            return Priority.MEDIUM
        return Priority.LOW


# ============================================================================
# CITATIONS
# ============================================================================


class CodeReference(SQLModel, table=True):
    """A citation of code (line, range or function) held by a document.

    Invariant: hash == sha256(content) after every content mutation.
    """

    __tablename__ = "code_references"

    id: str = Field(default_factory=_new_id, primary_key=True)
    repository_owner: str = Field(index=True)
    repository_name: str = Field(index=True)
    file_path: str = Field(index=True)
    reference_type: ReferenceType
    start_line: int | None = None
    end_line: int | None = None
    function_name: str | None = None
    content: str = ""
    hash: str = ""
    commit_sha: str | None = None
    last_modified: datetime | None = _optional_timestamp()
    is_active: bool = True
    is_stale: bool = False
    dependencies: list[str] = _json_list_column()
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()

    @property
    def full_repository_name(self) -> str:
        return f"{self.repository_owner}/{self.repository_name}"

    @property
    def is_line_based(self) -> bool:
        return self.reference_type == ReferenceType.LINE

    @property
    def is_function_based(self) -> bool:
        return self.reference_type == ReferenceType.FUNCTION

    @property
    def is_range_based(self) -> bool:
        return self.reference_type == ReferenceType.RANGE

    def generate_hash(self) -> str:
        return sha256_hex(self.content)

    def validate_hash(self) -> bool:
        return self.hash == self.generate_hash()

    def _touch(self) -> None:
        self.updated_at = utcnow()

    def mark_as_deleted(self) -> None:
        self.is_active = False
        self._touch()

    def update_line_numbers(self, start_line: int, end_line: int | None = None) -> None:
        self.start_line = start_line
        self.end_line = end_line
        self._touch()

    def update_content(self, content: str) -> None:
        self.content = content
        self.hash = self.generate_hash()
        self.last_modified = utcnow()
        self._touch()

    def mark_as_stale(self) -> None:
        self.is_stale = True
        self._touch()

    def mark_as_fresh(self) -> None:
        self.is_stale = False
        self._touch()

    def update_commit_info(self, commit_sha: str, last_modified: datetime | None = None) -> None:
        self.commit_sha = commit_sha
        self.last_modified = last_modified or utcnow()
        self._touch()

    def add_dependency(self, dependency: str) -> None:
        if dependency not in self.dependencies:
            self.dependencies = [*self.dependencies, dependency]

    def remove_dependency(self, dependency: str) -> None:
        self.dependencies = [d for d in self.dependencies if d != dependency]

    def has_dependency(self, dependency: str) -> bool:
        return dependency in self.dependencies


class DocumentCitation(SQLModel, table=True):
    """Link from a document to the CodeReference one of its citations resolves to."""

    __tablename__ = "document_citations"

    id: str = Field(default_factory=_new_id, primary_key=True)
    document_id: str = Field(index=True)
    code_reference_id: str = Field(foreign_key="code_references.id", index=True)
    placeholder_text: str
    context: str | None = None
    is_active: bool = True
    created_at: datetime = _timestamp()


# ============================================================================
# EVENTS AND JOBS
# ============================================================================


class CodeChangeEvent(SQLModel, table=True):
    """A file change that touches at least one tracked citation.

    Unique per (repository, file_path, commit_hash) so webhook redelivery
    never creates a second event.
    """

    __tablename__ = "code_change_events"
    __table_args__ = (UniqueConstraint("repository", "file_path", "commit_hash"),)

    id: str = Field(default_factory=_new_id, primary_key=True)
    repository: str = Field(index=True)
    file_path: str
    change_type: EventChangeType
    old_content: str | None = None
    new_content: str | None = None
    old_file_path: str | None = None
    affected_references: list[str] = _json_list_column()
    commit_hash: str
    timestamp: datetime = Field(default_factory=utcnow, index=True, sa_type=UTCDateTime)
    processing_status: EventStatus = Field(default=EventStatus.PENDING, index=True)
    processing_error: str | None = None
    created_at: datetime = _timestamp()

    @property
    def is_processable(self) -> bool:
        return self.processing_status == EventStatus.PENDING

    @property
    def has_affected_references(self) -> bool:
        return len(self.affected_references) > 0

    def repository_info(self) -> tuple[str, str]:
        owner, _, name = self.repository.partition("/")
        return owner, name

    def mark_as_processing(self) -> None:
        self.processing_status = EventStatus.PROCESSING
        self.processing_error = None

    def mark_as_completed(self) -> None:
        self.processing_status = EventStatus.COMPLETED
        self.processing_error = None

    def mark_as_failed(self, error: str) -> None:
        self.processing_status = EventStatus.FAILED
        self.processing_error = error


class SyncJob(SQLModel, table=True):
    """A unit of repository synchronization work.

    job_metadata keys: from_commit, to_commit, files_analyzed,
    functions_found, changes_detected, total_files.
    """

    __tablename__ = "sync_jobs"

    id: str = Field(default_factory=_new_id, primary_key=True)
    repository_id: str = Field(foreign_key="repositories.id", index=True)
    type: SyncJobType = SyncJobType.MANUAL
    status: SyncJobStatus = Field(default=SyncJobStatus.PENDING, index=True)
    started_at: datetime | None = _optional_timestamp()
    completed_at: datetime | None = _optional_timestamp()
    error: str | None = None
    job_metadata: dict[str, Any] = _json_column()
    retry_count: int = 0
    max_retries: int = 3
    next_retry_at: datetime | None = _optional_timestamp()
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()

    @property
    def duration(self) -> timedelta | None:
        if self.started_at is None or self.completed_at is None:
            return None
        return self.completed_at - self.started_at

    @property
    def progress(self) -> int:
        """Coarse progress from persisted metadata, 0-100."""
        if self.status == SyncJobStatus.COMPLETED:
            return 100
        total = self.job_metadata.get("total_files") or 0
        analyzed = self.job_metadata.get("files_analyzed") or 0
        if not total:
            return 0
        return min(100, round(analyzed / total * 100))

    def update_status(self, status: SyncJobStatus, error: str | None = None) -> None:
        now = utcnow()
        self.status = status
        self.updated_at = now
        if status == SyncJobStatus.RUNNING:
            self.started_at = now
        elif status.is_terminal:
            self.completed_at = now
        if error is not None:
            self.error = error

    def merge_metadata(self, **values: Any) -> None:
        self.job_metadata = {**self.job_metadata, **values}


_DUE_DAYS = {Priority.HIGH: 1, Priority.MEDIUM: 3, Priority.LOW: 7}


class DocumentationUpdate(SQLModel, table=True):
    """Advisory recommendation produced by documentation-impact analysis."""

    __tablename__ = "documentation_updates"

    id: str = Field(default_factory=_new_id, primary_key=True)
    repository_id: str = Field(foreign_key="repositories.id", index=True)
    sync_job_id: str | None = Field(default=None, index=True)
    status: str = "pending"
    priority: Priority = Priority.MEDIUM
    update_type: UpdateType
    confidence: int
    reasoning: str
    analysis_result: dict[str, Any] = _json_column()
    change_context: dict[str, Any] = _json_column()
    due_date: datetime | None = _optional_timestamp()
    created_at: datetime = _timestamp()

    def set_due_date(self) -> None:
        self.due_date = self.created_at + timedelta(days=_DUE_DAYS[Priority(self.priority)])

    @property
    def is_overdue(self) -> bool:
        return self.due_date is not None and utcnow() > self.due_date
