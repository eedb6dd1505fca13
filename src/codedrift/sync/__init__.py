"""Sync Job Orchestrator: repository-wide extraction, classification and retries."""

from codedrift.sync.impact import (
    ChangeContext,
    DocumentationImpactAnalyzer,
    ImpactAnalysis,
    ImpactVerdict,
    change_impact,
    fallback_verdict,
)
from codedrift.sync.orchestrator import BatchSummary, ExtractionReport, SyncOrchestrator, SyncResult, select_files
from codedrift.sync.progress import ProgressRegistry, SyncProgress
from codedrift.sync.retry import RetryDecision, backoff_delay, decide_retry
from codedrift.sync.snapshots import RepositoryStructure, SnapshotStats, StructureStore

__all__ = [
    "BatchSummary",
    "ChangeContext",
    "DocumentationImpactAnalyzer",
    "ExtractionReport",
    "ImpactAnalysis",
    "ImpactVerdict",
    "ProgressRegistry",
    "RepositoryStructure",
    "RetryDecision",
    "SnapshotStats",
    "StructureStore",
    "SyncOrchestrator",
    "SyncProgress",
    "SyncResult",
    "backoff_delay",
    "change_impact",
    "decide_retry",
    "fallback_verdict",
    "select_files",
]
