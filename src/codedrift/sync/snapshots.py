"""Per-commit structure snapshots and change logs.

CodeStructure rows carry identity (one row per fingerprint per repository),
StructureOccurrence rows carry presence: a snapshot of commit C is the set of
structures with an occurrence at C. Occurrences also carry that commit's span,
ast data and metrics, so a CodeStructure row is never rewritten after insert
except for its active flag. Saving a snapshot never deletes rows: fingerprints
that disappear are deactivated, and a fingerprint that comes back is
reactivated.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog
from sqlmodel import col, select

from codedrift.diff.models import DiffResult, StructureChange, StructureRecord
from codedrift.extraction.models import ExtractedStructure
from codedrift.store.database import Database
from codedrift.store.models import ChangeKind, CodeChangeLog, CodeStructure, StructureOccurrence, utcnow

log = structlog.get_logger(__name__)


@dataclass
class SnapshotStats:
    """Row-level effect of one save_snapshot call."""

    commit_sha: str
    structures: int = 0
    inserted: int = 0
    reactivated: int = 0
    deactivated: int = 0
    duplicates: int = 0
    records: list[StructureRecord] = field(default_factory=list)


@dataclass
class FileStructure:
    file_path: str
    functions: list[str] = field(default_factory=list)
    classes: list[str] = field(default_factory=list)
    average_complexity: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_path": self.file_path,
            "functions": self.functions,
            "classes": self.classes,
            "complexity": {"average": self.average_complexity},
        }


@dataclass
class RepositoryStructure:
    files: list[FileStructure] = field(default_factory=list)
    total_functions: int = 0
    total_classes: int = 0
    average_complexity: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "files": [f.to_dict() for f in self.files],
            "summary": {
                "total_files": len(self.files),
                "total_functions": self.total_functions,
                "total_classes": self.total_classes,
                "average_complexity": self.average_complexity,
            },
        }


def _span_lines(record: StructureRecord | None) -> int:
    if record is None:
        return 0
    return max(record.end_line - record.start_line + 1, 0)


def _change_log(
    repository_id: str,
    from_sha: str,
    to_sha: str,
    change: StructureChange,
    sync_job_id: str | None,
) -> CodeChangeLog:
    old, new = change.old, change.new
    old_lines, new_lines = _span_lines(old), _span_lines(new)
    details = change.details()
    details["lines_added"] = max(new_lines - old_lines, 0)
    details["lines_deleted"] = max(old_lines - new_lines, 0)

    current = change.current
    return CodeChangeLog(
        repository_id=repository_id,
        code_structure_id=current.structure_id,
        sync_job_id=sync_job_id,
        from_commit_sha=from_sha,
        to_commit_sha=to_sha,
        change_type=change.kind,
        file_path=current.file_path,
        old_file_path=old.file_path if old is not None and change.kind == ChangeKind.MOVED else None,
        function_name=current.function_name,
        old_function_name=old.function_name if old is not None and change.kind == ChangeKind.RENAMED else None,
        class_name=current.class_name,
        change_details=details,
    )


class StructureStore:
    """Reads and writes structure snapshots for one database."""

    def __init__(self, db: Database) -> None:
        self.db = db

    # =========================================================================
    # Snapshots
    # =========================================================================

    def save_snapshot(
        self,
        repository_id: str,
        commit_sha: str,
        structures: Sequence[ExtractedStructure],
    ) -> SnapshotStats:
        """Persist the structures present at ``commit_sha``.

        CodeStructure rows are never rewritten: a fingerprint seen before only
        gains an occurrence carrying this commit's span, ast data and metrics.
        A fingerprint repeated within one file keeps its first declaration by
        line; the same fingerprint in several files gets one occurrence per
        file. Saving the same commit twice adds no rows. The returned records
        carry structure ids and are ready for classification.
        """
        stats = SnapshotStats(commit_sha=commit_sha)
        now = utcnow()

        with self.db.session() as session:
            existing = {
                row.fingerprint: row
                for row in session.exec(select(CodeStructure).where(CodeStructure.repository_id == repository_id)).all()
            }
            occurred = {
                (structure_id, file_path)
                for structure_id, file_path in session.exec(
                    select(StructureOccurrence.structure_id, StructureOccurrence.file_path)
                    .where(StructureOccurrence.repository_id == repository_id)
                    .where(StructureOccurrence.commit_sha == commit_sha)
                ).all()
            }

            seen: set[str] = set()
            located: dict[tuple[str, str], ExtractedStructure] = {}
            occurrences: list[StructureOccurrence] = []
            for s in sorted(structures, key=lambda s: (s.file_path, s.start_line, s.end_line, s.qualified_name)):
                kept = located.get((s.file_path, s.fingerprint))
                if kept is not None:
                    stats.duplicates += 1
                    log.warning(
                        "duplicate_fingerprint_dropped",
                        file_path=s.file_path,
                        function=s.qualified_name,
                        kept_line=kept.start_line,
                        dropped_line=s.start_line,
                    )
                    continue
                located[(s.file_path, s.fingerprint)] = s
                seen.add(s.fingerprint)

                row = existing.get(s.fingerprint)
                if row is None:
                    row = CodeStructure(
                        repository_id=repository_id,
                        file_path=s.file_path,
                        commit_sha=commit_sha,
                        function_name=s.function_name,
                        class_name=s.class_name,
                        signature=s.signature,
                        fingerprint=s.fingerprint,
                        start_line=s.start_line,
                        end_line=s.end_line,
                        language=s.language,
                        ast_data=s.ast_data(),
                        metrics=s.metrics(),
                    )
                    session.add(row)
                    existing[s.fingerprint] = row
                    stats.inserted += 1
                elif not row.active:
                    row.active = True
                    row.updated_at = now
                    session.add(row)
                    stats.reactivated += 1

                if (row.id, s.file_path) not in occurred:
                    occurred.add((row.id, s.file_path))
                    occurrences.append(
                        StructureOccurrence(
                            repository_id=repository_id,
                            commit_sha=commit_sha,
                            structure_id=row.id,
                            file_path=s.file_path,
                            start_line=s.start_line,
                            end_line=s.end_line,
                            ast_data=s.ast_data(),
                            metrics=s.metrics(),
                        )
                    )
                stats.records.append(StructureRecord.from_extracted(s, structure_id=row.id))

            for fingerprint, row in existing.items():
                if row.active and fingerprint not in seen:
                    row.active = False
                    row.updated_at = now
                    session.add(row)
                    stats.deactivated += 1

            # Structures first; occurrences reference them
            session.flush()
            session.add_all(occurrences)
            session.commit()

        stats.structures = len(stats.records)
        log.info(
            "snapshot_saved",
            repository_id=repository_id,
            commit=commit_sha,
            structures=stats.structures,
            inserted=stats.inserted,
            reactivated=stats.reactivated,
            deactivated=stats.deactivated,
            duplicates=stats.duplicates,
        )
        return stats

    def load_snapshot(self, repository_id: str, commit_sha: str) -> list[StructureRecord]:
        """Records present at ``commit_sha``; empty if the commit was never saved."""
        with self.db.session() as session:
            rows = session.exec(
                select(CodeStructure, StructureOccurrence)
                .join(StructureOccurrence, col(StructureOccurrence.structure_id) == col(CodeStructure.id))
                .where(StructureOccurrence.repository_id == repository_id)
                .where(StructureOccurrence.commit_sha == commit_sha)
            ).all()
        return [StructureRecord.from_occurrence(structure, occ) for structure, occ in rows]

    def has_snapshot(self, repository_id: str, commit_sha: str) -> bool:
        with self.db.session() as session:
            hit = session.exec(
                select(StructureOccurrence.id)
                .where(StructureOccurrence.repository_id == repository_id)
                .where(StructureOccurrence.commit_sha == commit_sha)
                .limit(1)
            ).first()
        return hit is not None

    # =========================================================================
    # Change logs
    # =========================================================================

    def write_change_logs(
        self,
        repository_id: str,
        from_sha: str,
        to_sha: str,
        diff: DiffResult,
        sync_job_id: str | None = None,
    ) -> list[CodeChangeLog]:
        logs = [_change_log(repository_id, from_sha, to_sha, change, sync_job_id) for change in diff.changes()]
        if not logs:
            return []
        with self.db.session() as session:
            session.add_all(logs)
            session.commit()
        log.info("change_logs_written", repository_id=repository_id, count=len(logs), **diff.summary())
        return logs

    def change_logs(self, repository_id: str, to_sha: str | None = None) -> list[CodeChangeLog]:
        with self.db.session() as session:
            stmt = select(CodeChangeLog).where(CodeChangeLog.repository_id == repository_id)
            if to_sha is not None:
                stmt = stmt.where(CodeChangeLog.to_commit_sha == to_sha)
            return list(session.exec(stmt.order_by(col(CodeChangeLog.created_at).desc())).all())

    # =========================================================================
    # Queries
    # =========================================================================

    def find_function(
        self,
        repository_id: str,
        function_name: str,
        class_name: str | None = None,
    ) -> list[CodeStructure]:
        """Active structures with this name (optionally within a class)."""
        with self.db.session() as session:
            stmt = (
                select(CodeStructure)
                .where(CodeStructure.repository_id == repository_id)
                .where(CodeStructure.function_name == function_name)
                .where(col(CodeStructure.active).is_(True))
            )
            if class_name:
                stmt = stmt.where(CodeStructure.class_name == class_name)
            return list(session.exec(stmt.order_by(col(CodeStructure.file_path))).all())

    def function_history(
        self,
        repository_id: str,
        function_name: str,
        class_name: str | None = None,
        limit: int = 50,
    ) -> list[CodeChangeLog]:
        """Change logs naming the function, old or new name, newest first."""
        with self.db.session() as session:
            stmt = (
                select(CodeChangeLog)
                .where(CodeChangeLog.repository_id == repository_id)
                .where(
                    (col(CodeChangeLog.function_name) == function_name)
                    | (col(CodeChangeLog.old_function_name) == function_name)
                )
            )
            if class_name:
                stmt = stmt.where(CodeChangeLog.class_name == class_name)
            stmt = stmt.order_by(col(CodeChangeLog.created_at).desc()).limit(limit)
            return list(session.exec(stmt).all())

    def repository_structure(self, repository_id: str, commit_sha: str | None = None) -> RepositoryStructure:
        """Functions and classes grouped by file, at a commit or as currently active."""
        if commit_sha is not None:
            records = self.load_snapshot(repository_id, commit_sha)
        else:
            with self.db.session() as session:
                rows = session.exec(
                    select(CodeStructure)
                    .where(CodeStructure.repository_id == repository_id)
                    .where(col(CodeStructure.active).is_(True))
                ).all()
            records = [
                StructureRecord(
                    file_path=r.file_path,
                    function_name=r.function_name,
                    class_name=r.class_name,
                    signature=r.signature,
                    fingerprint=r.fingerprint,
                    start_line=r.start_line,
                    end_line=r.end_line,
                    structure_id=r.id,
                    complexity=int(r.metrics.get("cyclomatic_complexity", 1)),
                )
                for r in rows
            ]
        records.sort(key=lambda r: r.sort_key)

        by_file: dict[str, list[StructureRecord]] = {}
        for rec in records:
            by_file.setdefault(rec.file_path, []).append(rec)

        result = RepositoryStructure()
        for file_path, file_records in by_file.items():
            complexities = [r.complexity for r in file_records]
            classes: list[str] = []
            for r in file_records:
                if r.class_name and r.class_name not in classes:
                    classes.append(r.class_name)
            result.files.append(
                FileStructure(
                    file_path=file_path,
                    functions=[r.qualified_name for r in file_records],
                    classes=classes,
                    average_complexity=round(sum(complexities) / len(complexities), 2),
                )
            )

        all_complexities = [r.complexity for r in records]
        result.total_functions = sum(1 for r in records if not r.class_name)
        result.total_classes = len({(r.file_path, r.class_name) for r in records if r.class_name})
        if all_complexities:
            result.average_complexity = round(sum(all_complexities) / len(all_complexities), 2)
        return result
