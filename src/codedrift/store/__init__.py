"""Persistence layer: SQLModel tables and the SQLite Database."""

from codedrift.store.database import Database
from codedrift.store.models import (
    ChangeKind,
    CodeChangeEvent,
    CodeChangeLog,
    CodeReference,
    CodeStructure,
    DocumentationUpdate,
    DocumentCitation,
    EventChangeType,
    EventStatus,
    Priority,
    ReferenceType,
    Repository,
    StructureOccurrence,
    SyncJob,
    SyncJobStatus,
    SyncJobType,
    UpdateType,
    utcnow,
)

__all__ = [
    "Database",
    "ChangeKind",
    "CodeChangeEvent",
    "CodeChangeLog",
    "CodeReference",
    "CodeStructure",
    "DocumentationUpdate",
    "DocumentCitation",
    "EventChangeType",
    "EventStatus",
    "Priority",
    "ReferenceType",
    "Repository",
    "StructureOccurrence",
    "SyncJob",
    "SyncJobStatus",
    "SyncJobType",
    "UpdateType",
    "utcnow",
]
