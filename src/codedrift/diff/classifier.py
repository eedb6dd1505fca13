"""Layer 2: Pure commit diff classifier.

Compares the structure records of two commits and partitions them. No DB or
network access; purely functional.

Records are keyed by (file_path, fingerprint). Rules, applied in order (a
record consumed by one rule is never reconsidered):
1. Same fingerprint in the same file on both sides: unchanged (excluded,
   only counted).
2. Same (file_path, function_name, class_name): modified.
3. Same (function_name, class_name) in a different file: moved.
4. Signature similarity above the rename threshold, names differ: renamed.
5. Leftovers: old side deleted, new side added.

Inputs are sorted before matching so the result does not depend on the
order records arrive in.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

import structlog

from codedrift.core.hashing import similarity
from codedrift.diff.models import DiffResult, StructureChange, StructureRecord
from codedrift.store.models import ChangeKind

log = structlog.get_logger(__name__)

# Exclusive lower bound for signature similarity of a rename
RENAME_SIMILARITY_THRESHOLD = 0.8

_Key = tuple[str | None, ...]
_Location = tuple[str, str]


def classify_changes(
    old: Iterable[StructureRecord],
    new: Iterable[StructureRecord],
    rename_threshold: float = RENAME_SIMILARITY_THRESHOLD,
) -> DiffResult:
    """Classify the differences between two record sets.

    Args:
        old: Records at the base commit.
        new: Records at the target commit.
        rename_threshold: Signature similarity must be strictly greater.

    Returns:
        DiffResult where every input record is accounted for exactly once.
    """
    old_map = _by_location(old, "old")
    new_map = _by_location(new, "new")
    result = DiffResult()

    # Pass 1: Same fingerprint in the same file is unchanged
    shared = old_map.keys() & new_map.keys()
    result.unchanged = len(shared)

    removed = sorted((r for key, r in old_map.items() if key not in shared), key=lambda r: r.sort_key)
    added = sorted((r for key, r in new_map.items() if key not in shared), key=lambda r: r.sort_key)

    # Pass 2: Same place, same name -> modified
    pairs, removed, added = _pair_by_key(removed, added, lambda r: (r.file_path, r.function_name, r.class_name))
    result.modified = [StructureChange(ChangeKind.MODIFIED, o, n) for o, n in pairs]

    # Pass 3: Same name, other file -> moved
    pairs, removed, added = _pair_by_key(removed, added, lambda r: (r.function_name, r.class_name))
    result.moved = [StructureChange(ChangeKind.MOVED, o, n) for o, n in pairs]

    # Pass 4: Similar signature, different name -> renamed
    renames, removed, added = _detect_renames(removed, added, rename_threshold)
    result.renamed = [StructureChange(ChangeKind.RENAMED, o, n, similarity=score) for o, n, score in renames]

    # Pass 5: Leftovers
    result.deleted = [StructureChange(ChangeKind.DELETED, old=r) for r in removed]
    result.added = [StructureChange(ChangeKind.ADDED, new=r) for r in added]

    log.debug("changes_classified", **result.summary())
    return result


def _by_location(records: Iterable[StructureRecord], side: str) -> dict[_Location, StructureRecord]:
    """Index records by location; a repeated location keeps its first record in sort order."""
    indexed: dict[_Location, StructureRecord] = {}
    for rec in sorted(records, key=lambda r: r.sort_key):
        kept = indexed.get(rec.location_key)
        if kept is None:
            indexed[rec.location_key] = rec
        else:
            log.warning(
                "duplicate_structure_dropped",
                side=side,
                file_path=rec.file_path,
                function=rec.qualified_name,
                kept_line=kept.start_line,
                dropped_line=rec.start_line,
            )
    return indexed


def _pair_by_key(
    removed: list[StructureRecord],
    added: list[StructureRecord],
    key: Callable[[StructureRecord], _Key],
) -> tuple[list[tuple[StructureRecord, StructureRecord]], list[StructureRecord], list[StructureRecord]]:
    """1-to-1 pairing on an identity key; first unused candidate wins."""
    added_by_key: dict[_Key, list[StructureRecord]] = {}
    for rec in added:
        added_by_key.setdefault(key(rec), []).append(rec)

    pairs: list[tuple[StructureRecord, StructureRecord]] = []
    used: set[_Location] = set()
    leftover_removed: list[StructureRecord] = []
    for rec in removed:
        candidates = added_by_key.get(key(rec), [])
        match = next((c for c in candidates if c.location_key not in used), None)
        if match is None:
            leftover_removed.append(rec)
            continue
        used.add(match.location_key)
        pairs.append((rec, match))

    leftover_added = [r for r in added if r.location_key not in used]
    return pairs, leftover_removed, leftover_added


def _detect_renames(
    removed: list[StructureRecord],
    added: list[StructureRecord],
    threshold: float,
) -> tuple[list[tuple[StructureRecord, StructureRecord, float]], list[StructureRecord], list[StructureRecord]]:
    """Greedy best-match on signature similarity; ties go to the earlier candidate."""
    renames: list[tuple[StructureRecord, StructureRecord, float]] = []
    used: set[_Location] = set()
    leftover_removed: list[StructureRecord] = []

    for rec in removed:
        best: StructureRecord | None = None
        best_score = threshold
        for cand in added:
            if cand.location_key in used or cand.qualified_name == rec.qualified_name:
                continue
            score = similarity(rec.signature, cand.signature)
            if score > best_score:
                best, best_score = cand, score
        if best is None:
            leftover_removed.append(rec)
            continue
        used.add(best.location_key)
        renames.append((rec, best, best_score))

    leftover_added = [r for r in added if r.location_key not in used]
    return renames, leftover_removed, leftover_added
