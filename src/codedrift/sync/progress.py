"""In-memory progress of running sync jobs.

The registry is process-wide and keyed by job id. Only the orchestrator
writes to it; the HTTP and CLI surfaces read snapshots.
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, replace
from typing import Any

STAGE_INITIALIZING = "initializing"
STAGE_FETCHING_COMMITS = "fetching_commits"
STAGE_ANALYZING_FILES = "analyzing_files"
STAGE_SAVING_RESULTS = "saving_results"
STAGE_COMPLETED = "completed"

STAGE_PROGRESS = {
    STAGE_INITIALIZING: 0,
    STAGE_FETCHING_COMMITS: 10,
    STAGE_ANALYZING_FILES: 30,
    STAGE_SAVING_RESULTS: 90,
    STAGE_COMPLETED: 100,
}


@dataclass(frozen=True, slots=True)
class SyncProgress:
    job_id: str
    stage: str = STAGE_INITIALIZING
    progress: int = 0
    processed_files: int = 0
    total_files: int = 0
    current_file: str | None = None
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ProgressRegistry:
    """Job id -> latest SyncProgress."""

    def __init__(self) -> None:
        self._entries: dict[str, SyncProgress] = {}
        self._lock = threading.Lock()

    def start(self, job_id: str) -> SyncProgress:
        entry = SyncProgress(job_id=job_id, message="Initializing sync job")
        with self._lock:
            self._entries[job_id] = entry
        return entry

    def update(self, job_id: str, **changes: Any) -> SyncProgress | None:
        """Merge changes into the entry. A removed entry stays removed."""
        with self._lock:
            current = self._entries.get(job_id)
            if current is None:
                return None
            if "stage" in changes and "progress" not in changes:
                changes["progress"] = STAGE_PROGRESS.get(changes["stage"], current.progress)
            updated = replace(current, **changes)
            self._entries[job_id] = updated
            return updated

    def get(self, job_id: str) -> SyncProgress | None:
        with self._lock:
            return self._entries.get(job_id)

    def remove(self, job_id: str) -> bool:
        with self._lock:
            return self._entries.pop(job_id, None) is not None

    def snapshot(self) -> list[SyncProgress]:
        with self._lock:
            return list(self._entries.values())

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
