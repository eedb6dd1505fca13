"""Data models for the commit diff classifier.

All models are plain dataclasses / frozen dataclasses, no DB coupling.
The sync layer converts CodeStructure rows and extractor output into
StructureRecords before classifying.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from codedrift.store.models import ChangeKind

if TYPE_CHECKING:
    from codedrift.extraction.models import ExtractedStructure
    from codedrift.store.models import CodeStructure, StructureOccurrence


@dataclass(frozen=True, slots=True)
class StructureRecord:
    """Point-in-time snapshot of one function or method.

    This is the comparison unit. Identity across commits is the fingerprint
    within a file; the same fingerprint in another file is a move.
    """

    file_path: str
    function_name: str
    class_name: str | None
    signature: str
    fingerprint: str
    start_line: int = 0
    end_line: int = 0
    structure_id: str | None = None
    is_public: bool = False
    is_exported: bool = False
    complexity: int = 1

    @property
    def qualified_name(self) -> str:
        return f"{self.class_name}.{self.function_name}" if self.class_name else self.function_name

    @property
    def location_key(self) -> tuple[str, str]:
        """Fingerprint within a file. The fingerprint alone does not carry the path."""
        return (self.file_path, self.fingerprint)

    @property
    def sort_key(self) -> tuple[str, int, str, str]:
        return (self.file_path, self.start_line, self.qualified_name, self.fingerprint)

    @classmethod
    def from_extracted(cls, s: ExtractedStructure, structure_id: str | None = None) -> StructureRecord:
        return cls(
            file_path=s.file_path,
            function_name=s.function_name,
            class_name=s.class_name,
            signature=s.signature,
            fingerprint=s.fingerprint,
            start_line=s.start_line,
            end_line=s.end_line,
            structure_id=structure_id,
            is_public=s.is_public,
            is_exported=s.is_exported,
            complexity=s.cyclomatic_complexity,
        )

    @classmethod
    def from_occurrence(cls, row: CodeStructure, occ: StructureOccurrence) -> StructureRecord:
        """Build from a stored structure as it stood in one file at one commit."""
        return cls(
            file_path=occ.file_path,
            function_name=row.function_name,
            class_name=row.class_name,
            signature=row.signature,
            fingerprint=row.fingerprint,
            start_line=occ.start_line,
            end_line=occ.end_line,
            structure_id=row.id,
            is_public=bool(occ.ast_data.get("is_public", False)),
            is_exported=bool(occ.ast_data.get("is_exported", False)),
            complexity=int(occ.metrics.get("cyclomatic_complexity", 1)),
        )


@dataclass(frozen=True, slots=True)
class StructureChange:
    """One classified change. ``old`` is None for added, ``new`` for deleted."""

    kind: ChangeKind
    old: StructureRecord | None = None
    new: StructureRecord | None = None
    similarity: float | None = None

    @property
    def current(self) -> StructureRecord:
        record = self.new or self.old
        assert record is not None
        return record

    @property
    def file_path(self) -> str:
        return self.current.file_path

    @property
    def function_name(self) -> str:
        return self.current.function_name

    @property
    def is_significant(self) -> bool:
        """Added, deleted and renamed always count; otherwise only signature edits."""
        if self.kind in (ChangeKind.ADDED, ChangeKind.DELETED, ChangeKind.RENAMED):
            return True
        return self.old is not None and self.new is not None and self.old.signature != self.new.signature

    def details(self) -> dict[str, Any]:
        """Machine-readable payload for a change log row."""
        old, new = self.old, self.new
        return {
            "old_signature": old.signature if old else None,
            "new_signature": new.signature if new else None,
            "old_fingerprint": old.fingerprint if old else None,
            "new_fingerprint": new.fingerprint if new else None,
            "old_start_line": old.start_line if old else None,
            "old_end_line": old.end_line if old else None,
            "new_start_line": new.start_line if new else None,
            "new_end_line": new.end_line if new else None,
            "similarity_score": self.similarity,
        }


@dataclass
class DiffResult:
    """Partition of two record sets. Unchanged records are only counted."""

    added: list[StructureChange] = field(default_factory=list)
    deleted: list[StructureChange] = field(default_factory=list)
    modified: list[StructureChange] = field(default_factory=list)
    moved: list[StructureChange] = field(default_factory=list)
    renamed: list[StructureChange] = field(default_factory=list)
    unchanged: int = 0

    @property
    def total_changes(self) -> int:
        return len(self.added) + len(self.deleted) + len(self.modified) + len(self.moved) + len(self.renamed)

    @property
    def is_empty(self) -> bool:
        return self.total_changes == 0

    @property
    def significant_count(self) -> int:
        return sum(1 for c in self.changes() if c.is_significant)

    def changes(self) -> Iterator[StructureChange]:
        """All changes, bucket by bucket in classification order."""
        yield from self.modified
        yield from self.moved
        yield from self.renamed
        yield from self.deleted
        yield from self.added

    def summary(self) -> dict[str, int]:
        return {
            "added": len(self.added),
            "deleted": len(self.deleted),
            "modified": len(self.modified),
            "moved": len(self.moved),
            "renamed": len(self.renamed),
            "unchanged": self.unchanged,
        }
