"""Commit diff classifier: partition two structure snapshots into changes."""

from codedrift.diff.classifier import RENAME_SIMILARITY_THRESHOLD, classify_changes
from codedrift.diff.models import DiffResult, StructureChange, StructureRecord

__all__ = [
    "RENAME_SIMILARITY_THRESHOLD",
    "DiffResult",
    "StructureChange",
    "StructureRecord",
    "classify_changes",
]
