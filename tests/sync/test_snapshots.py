"""Tests for sync/snapshots.py.

Covers:
- Saving a snapshot inserts, deactivates and reactivates, never deletes
- Re-saving the same commit adds no rows
- Structure rows are immutable; per-commit data lives on occurrences
- Duplicate fingerprints within and across files
- load_snapshot / has_snapshot
- Change logs and structure queries
"""

from __future__ import annotations

import pytest
from sqlmodel import select

from codedrift.diff import classify_changes
from codedrift.extraction.extractor import extract_structures
from codedrift.store.database import Database
from codedrift.store.models import ChangeKind, CodeStructure, Repository, StructureOccurrence
from codedrift.sync.snapshots import StructureStore

V1 = """def alpha(x):
    return x


def beta(y):
    return y
"""

V2 = """def alpha(x):
    return x


def compute_total(items, tax_rate):
    return sum(items) * tax_rate
"""


@pytest.fixture
def repo_id(db: Database) -> str:
    repo = Repository(owner="acme", name="api")
    with db.session() as session:
        session.add(repo)
        session.commit()
    return repo.id


@pytest.fixture
def store(db: Database) -> StructureStore:
    return StructureStore(db)


def _rows(db: Database, model: type) -> list:
    with db.session() as session:
        return list(session.exec(select(model)).all())


class TestSaveSnapshot:
    def test_first_snapshot_inserts(self, store: StructureStore, repo_id: str, db: Database) -> None:
        stats = store.save_snapshot(repo_id, "c1", extract_structures("a.py", V1))

        assert (stats.inserted, stats.deactivated, stats.reactivated) == (2, 0, 0)
        assert stats.structures == 2
        assert all(r.structure_id for r in stats.records)
        assert len(_rows(db, StructureOccurrence)) == 2

    def test_resaving_same_commit_adds_nothing(self, store: StructureStore, repo_id: str, db: Database) -> None:
        store.save_snapshot(repo_id, "c1", extract_structures("a.py", V1))

        stats = store.save_snapshot(repo_id, "c1", extract_structures("a.py", V1))

        assert stats.inserted == 0
        assert stats.structures == 2
        assert len(_rows(db, CodeStructure)) == 2
        assert len(_rows(db, StructureOccurrence)) == 2

    def test_disappearing_structure_is_deactivated(self, store: StructureStore, repo_id: str, db: Database) -> None:
        store.save_snapshot(repo_id, "c1", extract_structures("a.py", V1))

        stats = store.save_snapshot(repo_id, "c2", extract_structures("a.py", V2))

        assert (stats.inserted, stats.deactivated) == (1, 1)
        rows = {r.function_name: r for r in _rows(db, CodeStructure)}
        assert set(rows) == {"alpha", "beta", "compute_total"}
        assert not rows["beta"].active

    def test_returning_structure_is_reactivated(self, store: StructureStore, repo_id: str) -> None:
        store.save_snapshot(repo_id, "c1", extract_structures("a.py", V1))
        store.save_snapshot(repo_id, "c2", extract_structures("a.py", V2))

        stats = store.save_snapshot(repo_id, "c3", extract_structures("a.py", V1))

        assert (stats.inserted, stats.reactivated, stats.deactivated) == (0, 1, 1)

    def test_duplicate_fingerprints_are_counted(self, store: StructureStore, repo_id: str) -> None:
        structures = extract_structures("a.py", V1)

        stats = store.save_snapshot(repo_id, "c1", [*structures, structures[0]])

        assert stats.duplicates == 1
        assert stats.structures == 2

    def test_redefinition_in_one_file_keeps_first_declaration(self, store: StructureStore, repo_id: str) -> None:
        source = "def alpha(x):\n    return x\n\n\ndef alpha(x):\n    return -x\n"

        stats = store.save_snapshot(repo_id, "c1", list(reversed(extract_structures("a.py", source))))

        assert stats.duplicates == 1
        assert [(r.function_name, r.start_line) for r in store.load_snapshot(repo_id, "c1")] == [("alpha", 1)]

    def test_same_function_in_two_files_shares_one_row(
        self, store: StructureStore, repo_id: str, db: Database
    ) -> None:
        structures = extract_structures("a.py", V1) + extract_structures("b.py", V1)

        stats = store.save_snapshot(repo_id, "c1", structures)

        assert (stats.inserted, stats.duplicates, stats.structures) == (2, 0, 4)
        assert len(_rows(db, CodeStructure)) == 2
        loaded = store.load_snapshot(repo_id, "c1")
        assert sorted((r.file_path, r.function_name) for r in loaded) == [
            ("a.py", "alpha"),
            ("a.py", "beta"),
            ("b.py", "alpha"),
            ("b.py", "beta"),
        ]

    def test_existing_rows_are_not_rewritten(self, store: StructureStore, repo_id: str, db: Database) -> None:
        # Given alpha saved once
        store.save_snapshot(repo_id, "c1", extract_structures("a.py", V1))
        (before,) = [r for r in _rows(db, CodeStructure) if r.function_name == "alpha"]

        # When alpha's body grows a branch at the next commit
        branchy = V1.replace("    return x\n", "    if x:\n        return x\n    return 0\n", 1)
        store.save_snapshot(repo_id, "c2", extract_structures("a.py", branchy))

        # Then the structure row is untouched and the occurrence carries the new metrics
        (after,) = [r for r in _rows(db, CodeStructure) if r.function_name == "alpha"]
        assert after.metrics == before.metrics
        assert after.ast_data == before.ast_data
        assert after.updated_at == before.updated_at
        at_c2 = {r.function_name: r for r in store.load_snapshot(repo_id, "c2")}
        assert at_c2["alpha"].complexity == before.metrics["cyclomatic_complexity"] + 1
        assert at_c2["alpha"].end_line == 4


class TestLoadSnapshot:
    def test_round_trip_with_per_commit_lines(self, store: StructureStore, repo_id: str) -> None:
        store.save_snapshot(repo_id, "c1", extract_structures("a.py", V1))
        shifted = "\n\n" + V1
        store.save_snapshot(repo_id, "c2", extract_structures("a.py", shifted))

        old = {r.function_name: r for r in store.load_snapshot(repo_id, "c1")}
        new = {r.function_name: r for r in store.load_snapshot(repo_id, "c2")}

        assert old["alpha"].start_line == 1
        assert new["alpha"].start_line == 3
        assert old["alpha"].fingerprint == new["alpha"].fingerprint

    def test_unknown_commit(self, store: StructureStore, repo_id: str) -> None:
        assert store.load_snapshot(repo_id, "nope") == []
        assert not store.has_snapshot(repo_id, "nope")

    def test_has_snapshot(self, store: StructureStore, repo_id: str) -> None:
        store.save_snapshot(repo_id, "c1", extract_structures("a.py", V1))

        assert store.has_snapshot(repo_id, "c1")


class TestChangeLogs:
    def test_writes_one_log_per_change(self, store: StructureStore, repo_id: str) -> None:
        # Given two snapshots where beta disappears and compute_total appears
        old = store.save_snapshot(repo_id, "c1", extract_structures("a.py", V1)).records
        new = store.save_snapshot(repo_id, "c2", extract_structures("a.py", V2)).records
        diff = classify_changes(old, new)

        # When writing logs
        logs = store.write_change_logs(repo_id, "c1", "c2", diff)

        # Then each change is recorded with its kind
        assert {(log.function_name, log.change_type) for log in logs} == {
            ("beta", ChangeKind.DELETED),
            ("compute_total", ChangeKind.ADDED),
        }
        assert len(store.change_logs(repo_id, to_sha="c2")) == 2
        assert store.change_logs(repo_id, to_sha="c9") == []
        (history,) = store.function_history(repo_id, "beta")
        assert history.change_details["lines_deleted"] == 2

    def test_empty_diff_writes_nothing(self, store: StructureStore, repo_id: str) -> None:
        records = store.save_snapshot(repo_id, "c1", extract_structures("a.py", V1)).records

        assert store.write_change_logs(repo_id, "c1", "c1", classify_changes(records, records)) == []


class TestQueries:
    def test_find_function_only_active(self, store: StructureStore, repo_id: str) -> None:
        store.save_snapshot(repo_id, "c1", extract_structures("a.py", V1))
        store.save_snapshot(repo_id, "c2", extract_structures("a.py", V2))

        assert [s.function_name for s in store.find_function(repo_id, "alpha")] == ["alpha"]
        assert store.find_function(repo_id, "beta") == []

    def test_repository_structure(self, store: StructureStore, repo_id: str) -> None:
        store.save_snapshot(repo_id, "c1", extract_structures("a.py", V1))
        store.save_snapshot(repo_id, "c2", extract_structures("a.py", V2))

        current = store.repository_structure(repo_id)
        at_c1 = store.repository_structure(repo_id, "c1")

        assert current.files[0].functions == ["alpha", "compute_total"]
        assert at_c1.files[0].functions == ["alpha", "beta"]
        data = current.to_dict()
        assert data["summary"]["total_files"] == 1
        assert data["summary"]["total_functions"] == 2
        assert data["summary"]["total_classes"] == 0
