"""Sync Job Orchestrator.

Entry points:
- run_daily_sync: every active repository whose sync is enabled with a
  daily (or unset) frequency, synced concurrently, failures isolated.
- sync_repository: one repository, manual or webhook-triggered.
- retry_due_jobs: rearmed jobs whose backoff has elapsed.

Job lifecycle: pending -> running -> completed | failed | cancelled. A failed
job with retries left goes back to pending with next_retry_at set.

At most one job per repository is running. The check and the write share a
BEGIN IMMEDIATE transaction, both when a job is created and when it starts.

Stages (progress): initializing (0), fetching_commits (10), analyzing_files
(30 to 70), saving_results (90), completed (100). Each stage boundary is a
cancellation checkpoint; work committed before a cancel is kept.

Documentation-impact analysis runs after the job has completed, so the
language-model call never holds the repository's running slot.
"""

from __future__ import annotations

import asyncio
import fnmatch
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog
from sqlmodel import col, select

from codedrift.clients.base import CommitInfo, VcsClient
from codedrift.config.models import SyncConfig
from codedrift.core.errors import CodeDriftError, ErrorCode, SyncError
from codedrift.core.languages import detect_language, is_analyzable_file
from codedrift.diff.classifier import RENAME_SIMILARITY_THRESHOLD, classify_changes
from codedrift.diff.models import DiffResult
from codedrift.extraction.extractor import extract_structures
from codedrift.extraction.models import ExtractedStructure, FileExtraction
from codedrift.store.database import Database
from codedrift.store.models import Repository, SyncJob, SyncJobStatus, SyncJobType, utcnow
from codedrift.sync.impact import DocumentationImpactAnalyzer, ImpactAnalysis
from codedrift.sync.progress import (
    STAGE_ANALYZING_FILES,
    STAGE_COMPLETED,
    STAGE_FETCHING_COMMITS,
    STAGE_SAVING_RESULTS,
    ProgressRegistry,
    SyncProgress,
)
from codedrift.sync.retry import decide_retry
from codedrift.sync.snapshots import StructureStore

log = structlog.get_logger(__name__)

_ANALYSIS_START = 30
_ANALYSIS_END = 70


@dataclass
class ExtractionReport:
    """Per-file outcome of extracting one commit."""

    commit_sha: str
    files: list[FileExtraction] = field(default_factory=list)

    @property
    def structures(self) -> list[ExtractedStructure]:
        return [s for f in self.files for s in f.structures]

    @property
    def errors(self) -> dict[str, str]:
        return {f.file_path: f.error for f in self.files if f.error}

    @property
    def files_analyzed(self) -> int:
        return sum(1 for f in self.files if f.error is None)


@dataclass
class SyncResult:
    job: SyncJob
    commits: list[CommitInfo] = field(default_factory=list)
    diff: DiffResult | None = None
    extraction_errors: dict[str, str] = field(default_factory=dict)
    impact: ImpactAnalysis | None = None
    cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "job_id": self.job.id,
            "status": self.job.status.value,
            "metadata": self.job.job_metadata,
            "commits": len(self.commits),
            "extraction_errors": self.extraction_errors,
        }
        if self.diff is not None:
            data["changes"] = self.diff.summary()
        if self.impact is not None:
            data["documentation_update"] = self.impact.update.id if self.impact.update else None
        return data


@dataclass
class BatchSummary:
    """Outcome of a sweep over several jobs."""

    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    def to_dict(self) -> dict[str, Any]:
        return {"total": self.total, "succeeded": self.succeeded, "failed": self.failed}


def _matches_any(path: str, patterns: Sequence[str]) -> bool:
    return any(fnmatch.fnmatch(path, p) or path.startswith(p.rstrip("/") + "/") for p in patterns)


def select_files(paths: Sequence[str], sync_config: dict[str, Any]) -> list[str]:
    """Filter a file listing by extension and include/exclude globs.

    An empty include list admits everything; exclude wins over include.
    """
    extensions = sync_config.get("file_extensions") or None
    include = sync_config.get("include_paths") or []
    exclude = sync_config.get("exclude_paths") or []
    selected = []
    for path in paths:
        if not is_analyzable_file(path, extensions):
            continue
        if include and not _matches_any(path, include):
            continue
        if exclude and _matches_any(path, exclude):
            continue
        selected.append(path)
    return sorted(selected)


def _is_cancellation(error: BaseException) -> bool:
    return isinstance(error, SyncError) and error.code == ErrorCode.SYNC_JOB_CANCELLED


class SyncOrchestrator:
    """Creates, runs, retries and cancels repository sync jobs."""

    def __init__(
        self,
        db: Database,
        vcs: VcsClient,
        *,
        registry: ProgressRegistry | None = None,
        store: StructureStore | None = None,
        analyzer: DocumentationImpactAnalyzer | None = None,
        config: SyncConfig | None = None,
        rename_threshold: float = RENAME_SIMILARITY_THRESHOLD,
    ) -> None:
        self.db = db
        self.vcs = vcs
        self.registry = registry or ProgressRegistry()
        self.store = store or StructureStore(db)
        self.analyzer = analyzer
        self.config = config or SyncConfig()
        self.rename_threshold = rename_threshold

    # =========================================================================
    # Repositories
    # =========================================================================

    def add_repository(
        self,
        owner: str,
        name: str,
        *,
        default_branch: str = "main",
        description: str | None = None,
        language: str | None = None,
        sync_config: dict[str, Any] | None = None,
    ) -> Repository:
        """Register a repository; an existing owner/name is updated in place."""
        with self.db.immediate_transaction() as session:
            repo = session.exec(
                select(Repository).where(Repository.owner == owner).where(Repository.name == name)
            ).first()
            if repo is None:
                repo = Repository(owner=owner, name=name)
            repo.default_branch = default_branch
            repo.description = description or repo.description
            repo.language = language or repo.language
            if sync_config is not None:
                repo.sync_config = {**repo.sync_config, **sync_config}
            repo.active = True
            repo.updated_at = utcnow()
            session.add(repo)
        log.info("repository_registered", repository=repo.full_name, repository_id=repo.id)
        return repo

    def get_repository(self, repository_id: str) -> Repository:
        with self.db.session() as session:
            repo = session.get(Repository, repository_id)
        if repo is None:
            raise SyncError.repository_not_found(repository_id)
        return repo

    def find_repository(self, full_name: str) -> Repository | None:
        owner, _, name = full_name.partition("/")
        with self.db.session() as session:
            return session.exec(
                select(Repository).where(Repository.owner == owner).where(Repository.name == name)
            ).first()

    def list_repositories(self, active_only: bool = True) -> list[Repository]:
        with self.db.session() as session:
            stmt = select(Repository)
            if active_only:
                stmt = stmt.where(col(Repository.active).is_(True))
            return list(session.exec(stmt.order_by(col(Repository.owner), col(Repository.name))).all())

    # =========================================================================
    # Entry points
    # =========================================================================

    async def run_daily_sync(self) -> BatchSummary:
        """Sync every repository due for a daily sync, concurrently."""
        due = [r for r in self.list_repositories() if r.is_due_for_daily_sync()]
        log.info("daily_sync_started", repositories=len(due))
        summary = await self._gather(
            [r.full_name for r in due],
            [self.sync_repository(r.id, SyncJobType.SCHEDULED) for r in due],
        )
        log.info("daily_sync_finished", succeeded=len(summary.succeeded), failed=len(summary.failed))
        return summary

    async def sync_repository(self, repository_id: str, job_type: SyncJobType = SyncJobType.MANUAL) -> SyncResult:
        """Create a job for the repository and run it to completion.

        Raises:
            SyncError: repository unknown, or a job is already running.
            CodeDriftError: the job failed (it is already failed or rearmed).
        """
        job = self.create_job(repository_id, job_type)
        return await self.execute_job(job.id)

    async def retry_due_jobs(self, limit: int | None = None) -> BatchSummary:
        """Re-execute rearmed jobs whose next_retry_at has elapsed."""
        now = utcnow()
        with self.db.session() as session:
            jobs = list(
                session.exec(
                    select(SyncJob)
                    .where(SyncJob.status == SyncJobStatus.PENDING)
                    .where(SyncJob.retry_count > 0)
                    .where(col(SyncJob.next_retry_at).is_not(None))
                    .where(col(SyncJob.next_retry_at) <= now)
                    .order_by(col(SyncJob.next_retry_at))
                    .limit(limit or self.config.retry_batch_size)
                ).all()
            )
        if not jobs:
            return BatchSummary()
        log.info("retrying_sync_jobs", count=len(jobs))
        return await self._gather([j.id for j in jobs], [self.execute_job(j.id) for j in jobs])

    async def _gather(self, keys: list[str], runs: list[Awaitable[SyncResult]]) -> BatchSummary:
        summary = BatchSummary()
        semaphore = asyncio.Semaphore(self.config.max_concurrent_jobs)

        async def bounded(run: Awaitable[SyncResult]) -> SyncResult:
            async with semaphore:
                return await run

        outcomes = await asyncio.gather(*(bounded(r) for r in runs), return_exceptions=True)
        for key, outcome in zip(keys, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                summary.failed[key] = str(outcome) or type(outcome).__name__
                log.error("sync_failed", target=key, error=summary.failed[key])
            else:
                summary.succeeded.append(key)
        return summary

    # =========================================================================
    # Job lifecycle
    # =========================================================================

    def create_job(self, repository_id: str, job_type: SyncJobType = SyncJobType.MANUAL) -> SyncJob:
        """Insert a pending job unless the repository already has a running one."""
        with self.db.immediate_transaction() as session:
            if session.get(Repository, repository_id) is None:
                raise SyncError.repository_not_found(repository_id)
            running = self._running_job_id(session, repository_id)
            if running is not None:
                raise SyncError.job_conflict(repository_id, running)
            job = SyncJob(
                repository_id=repository_id,
                type=job_type,
                max_retries=self.config.default_max_retries,
            )
            session.add(job)
        log.info("sync_job_created", job_id=job.id, repository_id=repository_id, type=job_type.value)
        return job

    @staticmethod
    def _running_job_id(session: Any, repository_id: str, exclude: str | None = None) -> str | None:
        stmt = (
            select(SyncJob.id)
            .where(SyncJob.repository_id == repository_id)
            .where(SyncJob.status == SyncJobStatus.RUNNING)
        )
        if exclude is not None:
            stmt = stmt.where(SyncJob.id != exclude)
        return session.exec(stmt).first()

    def _start(self, job_id: str) -> tuple[SyncJob, Repository]:
        """pending -> running, re-checking exclusivity in the same transaction.

        A job that loses the race to another running job is cancelled so it
        cannot linger as pending.
        """
        with self.db.immediate_transaction() as session:
            job = session.get(SyncJob, job_id)
            if job is None:
                raise SyncError.job_not_found(job_id)
            if job.status != SyncJobStatus.PENDING:
                raise SyncError.invalid_state(job_id, job.status.value, SyncJobStatus.PENDING.value)
            repo = session.get(Repository, job.repository_id)
            if repo is None:
                raise SyncError.repository_not_found(job.repository_id)
            running = self._running_job_id(session, job.repository_id, exclude=job.id)
            if running is None:
                job.update_status(SyncJobStatus.RUNNING)
            else:
                job.update_status(SyncJobStatus.CANCELLED, error=f"superseded by running job {running}")
            job.next_retry_at = None
            session.add(job)

        if running is not None:
            log.warning("sync_job_superseded", job_id=job_id, running_job_id=running)
            raise SyncError.job_conflict(job.repository_id, running)
        return job, repo

    async def execute_job(self, job_id: str) -> SyncResult:
        """Run a pending job through every stage.

        A cancelled job returns with ``cancelled`` set. Any other failure
        fails the job (rearming it when retries remain) and re-raises.
        """
        job, repo = self._start(job_id)
        self.registry.start(job.id)
        log.info(
            "sync_job_started",
            job_id=job.id,
            repository=repo.full_name,
            type=job.type.value,
            attempt=job.retry_count + 1,
        )

        try:
            result = await self._run(job, repo)
        except asyncio.CancelledError:
            self.fail_job(job.id, "sync task interrupted")
            raise
        except Exception as e:
            if _is_cancellation(e):
                log.info("sync_job_stopped_at_checkpoint", job_id=job.id)
                return SyncResult(job=self.get_job(job.id), cancelled=True)
            message = str(e) or type(e).__name__
            log.error("sync_job_error", job_id=job.id, error=message, exc_info=not isinstance(e, CodeDriftError))
            self.fail_job(job.id, message)
            raise
        finally:
            self.registry.remove(job.id)

        if result.diff is not None and not result.diff.is_empty and self.analyzer is not None:
            result.impact = await self._advise(repo, result)
        return result

    async def _run(self, job: SyncJob, repo: Repository) -> SyncResult:
        self._checkpoint(job.id)
        self._stage(job.id, STAGE_FETCHING_COMMITS, "Fetching commits from repository")
        commits = await self.vcs.get_commits(
            repo.owner,
            repo.name,
            since=repo.last_synced_at,
            sha=repo.tracked_branch,
            per_page=self.config.commits_per_page,
        )

        self._checkpoint(job.id)
        if not commits:
            log.info("no_new_commits", job_id=job.id, repository=repo.full_name)
            self._stage(job.id, STAGE_SAVING_RESULTS, "No new commits")
            done = self._complete(
                job.id,
                repo.id,
                None,
                files_analyzed=0,
                functions_found=0,
                changes_detected=0,
                total_files=0,
            )
            return SyncResult(job=done)

        latest = commits[0]
        self._stage(job.id, STAGE_ANALYZING_FILES, f"Analyzing commit {latest.sha[:7]}")
        report = await self.extract_repository(repo, latest.sha, job_id=job.id)
        self.registry.update(job.id, progress=_ANALYSIS_END, current_file=None)

        self._checkpoint(job.id)
        snapshot = self.store.save_snapshot(repo.id, latest.sha, report.structures)

        diff: DiffResult | None = None
        baseline = repo.last_commit_sha
        if baseline and baseline != latest.sha:
            if self.store.has_snapshot(repo.id, baseline):
                old = self.store.load_snapshot(repo.id, baseline)
                diff = classify_changes(old, snapshot.records, self.rename_threshold)
                self.store.write_change_logs(repo.id, baseline, latest.sha, diff, sync_job_id=job.id)
            else:
                log.warning("baseline_snapshot_missing", job_id=job.id, commit=baseline)

        self._stage(job.id, STAGE_SAVING_RESULTS, "Saving results")
        done = self._complete(
            job.id,
            repo.id,
            latest.sha,
            from_commit=commits[-1].sha,
            to_commit=latest.sha,
            baseline_commit=baseline,
            files_analyzed=report.files_analyzed,
            functions_found=snapshot.structures,
            changes_detected=diff.total_changes if diff else 0,
            total_files=len(report.files),
            extraction_errors=len(report.errors),
        )
        return SyncResult(job=done, commits=list(commits), diff=diff, extraction_errors=report.errors)

    def _stage(self, job_id: str, stage: str, message: str) -> None:
        self.registry.update(job_id, stage=stage, message=message)
        log.debug("sync_stage", job_id=job_id, stage=stage)

    def _checkpoint(self, job_id: str) -> None:
        """Raise SyncError.cancelled if the job was cancelled meanwhile."""
        with self.db.session() as session:
            job = session.get(SyncJob, job_id)
        if job is None or job.status == SyncJobStatus.CANCELLED:
            raise SyncError.cancelled(job_id)

    def _complete(self, job_id: str, repository_id: str, commit_sha: str | None, **metadata: Any) -> SyncJob:
        """Final checkpoint: advance the repository and complete the job atomically."""
        with self.db.immediate_transaction() as session:
            job = session.get(SyncJob, job_id)
            if job is None or job.status != SyncJobStatus.RUNNING:
                raise SyncError.cancelled(job_id)
            repo = session.get(Repository, repository_id)
            if repo is not None:
                now = utcnow()
                if commit_sha is not None:
                    repo.last_commit_sha = commit_sha
                repo.last_synced_at = now
                repo.updated_at = now
                session.add(repo)
            job.merge_metadata(**metadata)
            job.update_status(SyncJobStatus.COMPLETED)
            session.add(job)

        self.registry.update(job_id, stage=STAGE_COMPLETED, message="Sync completed")
        log.info("sync_job_completed", job_id=job_id, **{k: v for k, v in metadata.items() if v is not None})
        return job

    def fail_job(self, job_id: str, error: str) -> SyncJob:
        """Mark a job failed and rearm it if retries remain."""
        with self.db.immediate_transaction() as session:
            job = session.get(SyncJob, job_id)
            if job is None:
                raise SyncError.job_not_found(job_id)
            if job.status == SyncJobStatus.CANCELLED:
                return job
            job.update_status(SyncJobStatus.FAILED, error=error)
            decision = decide_retry(job.status, job.retry_count, job.max_retries)
            if decision.retry:
                job.retry_count = decision.retry_count
                job.next_retry_at = decision.next_retry_at(utcnow())
                job.status = SyncJobStatus.PENDING
                job.completed_at = None
            session.add(job)

        if job.status == SyncJobStatus.PENDING:
            log.warning(
                "sync_job_rearmed",
                job_id=job_id,
                retry_count=job.retry_count,
                next_retry_at=job.next_retry_at.isoformat() if job.next_retry_at else None,
                error=error,
            )
        else:
            log.error("sync_job_failed", job_id=job_id, retry_count=job.retry_count, error=error)
        return job

    def cancel_job(self, job_id: str) -> SyncJob:
        """running -> cancelled. The task stops at its next checkpoint."""
        with self.db.immediate_transaction() as session:
            job = session.get(SyncJob, job_id)
            if job is None:
                raise SyncError.job_not_found(job_id)
            if job.status != SyncJobStatus.RUNNING:
                raise SyncError.invalid_state(job_id, job.status.value, SyncJobStatus.RUNNING.value)
            job.update_status(SyncJobStatus.CANCELLED)
            session.add(job)
        self.registry.remove(job_id)
        log.info("sync_job_cancelled", job_id=job_id)
        return job

    # =========================================================================
    # Extraction and advisory
    # =========================================================================

    async def extract_repository(self, repo: Repository, ref: str, job_id: str | None = None) -> ExtractionReport:
        """Extract every selected file at ``ref``.

        Files that vanish or fail extraction are recorded, not raised.
        Transport errors propagate and fail the job.
        """
        paths = select_files(await self.vcs.list_files(repo.owner, repo.name, ref), repo.sync_config)
        report = ExtractionReport(commit_sha=ref)
        total = len(paths)
        if job_id:
            self.registry.update(job_id, total_files=total, processed_files=0)

        for index, path in enumerate(paths):
            if job_id:
                self.registry.update(
                    job_id,
                    current_file=path,
                    processed_files=index,
                    progress=_ANALYSIS_START + (_ANALYSIS_END - _ANALYSIS_START) * index // max(total, 1),
                )
            language = detect_language(path)
            text = await self.vcs.get_file_content(repo.owner, repo.name, path, ref)
            if text is None:
                report.files.append(FileExtraction(path, language, error="file not found at ref"))
                continue
            try:
                structures = extract_structures(path, text, language)
            except CodeDriftError as e:
                log.warning("file_extraction_failed", file_path=path, error=str(e))
                report.files.append(FileExtraction(path, language, error=str(e)))
                continue
            report.files.append(FileExtraction(path, language, structures=structures))

        if job_id:
            self.registry.update(job_id, processed_files=total)
        log.info(
            "repository_extracted",
            repository=repo.full_name,
            commit=ref[:7],
            files=total,
            structures=len(report.structures),
            errors=len(report.errors),
        )
        return report

    async def _advise(self, repo: Repository, result: SyncResult) -> ImpactAnalysis | None:
        assert self.analyzer is not None and result.diff is not None
        try:
            return await self.analyzer.analyze(repo, result.commits, result.diff, sync_job_id=result.job.id)
        except Exception as e:
            log.error("documentation_impact_error", job_id=result.job.id, error=str(e), exc_info=True)
            return None

    # =========================================================================
    # Queries
    # =========================================================================

    def get_progress(self, job_id: str) -> SyncProgress | None:
        return self.registry.get(job_id)

    def get_job(self, job_id: str) -> SyncJob:
        with self.db.session() as session:
            job = session.get(SyncJob, job_id)
        if job is None:
            raise SyncError.job_not_found(job_id)
        return job

    def list_jobs(self, repository_id: str, limit: int = 10) -> list[SyncJob]:
        with self.db.session() as session:
            return list(
                session.exec(
                    select(SyncJob)
                    .where(SyncJob.repository_id == repository_id)
                    .order_by(col(SyncJob.created_at).desc())
                    .limit(limit)
                ).all()
            )

    def status_counts(self) -> dict[str, int]:
        counts = {s.value: 0 for s in SyncJobStatus}
        with self.db.session() as session:
            for status in session.exec(select(SyncJob.status)).all():
                counts[SyncJobStatus(status).value] += 1
        return counts
