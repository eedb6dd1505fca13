"""HTTP routes for the codedrift server.

A thin boundary: every handler delegates to a service on the AppContext and
maps CodeDriftError codes onto HTTP status codes.
"""

from __future__ import annotations

import asyncio
import importlib.metadata
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import structlog
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from codedrift.core.errors import CodeDriftError, ErrorCode
from codedrift.store.models import DocumentationUpdate, EventStatus, Priority, SyncJob, SyncJobType

if TYPE_CHECKING:
    from codedrift.daemon.context import AppContext
    from codedrift.daemon.scheduler import SyncScheduler

logger = structlog.get_logger()

_STATUS_BY_CODE = {
    ErrorCode.WEBHOOK_SECRET_MISSING: 400,
    ErrorCode.WEBHOOK_SIGNATURE_MISSING: 400,
    ErrorCode.WEBHOOK_SIGNATURE_INVALID: 400,
    ErrorCode.WEBHOOK_INVALID_PAYLOAD: 400,
    ErrorCode.EVENT_NOT_FOUND: 404,
    ErrorCode.EVENT_INVALID_STATE: 409,
    ErrorCode.SYNC_JOB_CONFLICT: 409,
    ErrorCode.SYNC_JOB_NOT_FOUND: 404,
    ErrorCode.SYNC_REPOSITORY_NOT_FOUND: 404,
    ErrorCode.SYNC_INVALID_STATE: 409,
    ErrorCode.TRANSPORT_REQUEST_FAILED: 502,
    ErrorCode.TRANSPORT_TIMEOUT: 504,
}

Handler = Callable[[Request], Awaitable[JSONResponse]]


def _get_version() -> str:
    """Get package version from installed metadata."""
    try:
        return importlib.metadata.version("codedrift")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def error_response(error: CodeDriftError) -> JSONResponse:
    return JSONResponse(error.to_dict(), status_code=_STATUS_BY_CODE.get(error.code, 500))


def _handles_errors(handler: Handler) -> Handler:
    async def wrapped(request: Request) -> JSONResponse:
        try:
            return await handler(request)
        except CodeDriftError as e:
            logger.warning("request_failed", path=request.url.path, error=e.error_name, message=e.message)
            return error_response(e)

    return wrapped


def job_to_dict(job: SyncJob) -> dict[str, Any]:
    data = job.model_dump(mode="json")
    data["progress"] = job.progress
    data["duration_seconds"] = job.duration.total_seconds() if job.duration else None
    return data


def update_to_dict(update: DocumentationUpdate) -> dict[str, Any]:
    data = update.model_dump(mode="json")
    data["is_overdue"] = update.is_overdue
    return data


def create_routes(ctx: AppContext, scheduler: SyncScheduler | None = None) -> list[Route]:
    """Create HTTP routes bound to the application context."""
    start_time = time.time()
    version = _get_version()
    background: set[asyncio.Task[Any]] = set()

    async def health(request: Request) -> JSONResponse:
        """Liveness check."""
        _ = request  # unused
        return JSONResponse(
            {
                "status": "healthy",
                "version": version,
                "uptime_seconds": round(time.time() - start_time, 1),
            }
        )

    # -----------------------------------------------------------------
    # Webhooks
    # -----------------------------------------------------------------

    @_handles_errors
    async def github_webhook(request: Request) -> JSONResponse:
        raw_body = await request.body()
        outcome = await ctx.pipeline.handle_webhook(request.headers, raw_body)
        return JSONResponse(outcome.to_dict())

    @_handles_errors
    async def process_pending(request: Request) -> JSONResponse:
        limit = request.query_params.get("limit")
        summary = await ctx.pipeline.process_pending(int(limit) if limit else None)
        return JSONResponse({"status": "success", **summary.to_dict()})

    async def webhook_status(request: Request) -> JSONResponse:
        _ = request  # unused
        return JSONResponse(
            {
                "status": "active" if ctx.config.webhook.secret else "unconfigured",
                "endpoint": "/webhooks/github",
                "supported_events": ["push", "ping"],
                "events": ctx.pipeline.status_counts(),
            }
        )

    @_handles_errors
    async def list_events(request: Request) -> JSONResponse:
        raw_status = request.query_params.get("status")
        status = EventStatus(raw_status) if raw_status in {s.value for s in EventStatus} else None
        limit = int(request.query_params.get("limit", "100"))
        events = ctx.pipeline.list_events(status, limit)
        return JSONResponse({"events": [e.model_dump(mode="json") for e in events]})

    @_handles_errors
    async def requeue_event(request: Request) -> JSONResponse:
        event = ctx.pipeline.requeue(request.path_params["event_id"])
        return JSONResponse(event.model_dump(mode="json"))

    # -----------------------------------------------------------------
    # Sync
    # -----------------------------------------------------------------

    @_handles_errors
    async def trigger_sync(request: Request) -> JSONResponse:
        """Create a job (409 while one is running) and run it.

        ``?wait=true`` runs inline and returns the result; otherwise the job
        runs in the background and its id is returned for polling.
        """
        repository_id = request.path_params["repository_id"]
        raw_type = request.query_params.get("type", SyncJobType.MANUAL.value)
        job_type = SyncJobType(raw_type) if raw_type in {t.value for t in SyncJobType} else SyncJobType.MANUAL
        job = ctx.orchestrator.create_job(repository_id, job_type)

        if request.query_params.get("wait") in ("1", "true"):
            result = await ctx.orchestrator.execute_job(job.id)
            return JSONResponse(result.to_dict())

        async def run() -> None:
            try:
                await ctx.orchestrator.execute_job(job.id)
            except Exception as e:
                logger.error("background_sync_failed", job_id=job.id, error=str(e))

        task = asyncio.create_task(run())
        background.add(task)
        task.add_done_callback(background.discard)
        return JSONResponse({"job_id": job.id, "status": job.status.value}, status_code=202)

    @_handles_errors
    async def sync_all(request: Request) -> JSONResponse:
        _ = request  # unused
        summary = await ctx.orchestrator.run_daily_sync()
        return JSONResponse(summary.to_dict())

    @_handles_errors
    async def get_job(request: Request) -> JSONResponse:
        return JSONResponse(job_to_dict(ctx.orchestrator.get_job(request.path_params["job_id"])))

    async def get_progress(request: Request) -> JSONResponse:
        progress = ctx.orchestrator.get_progress(request.path_params["job_id"])
        if progress is None:
            return JSONResponse({"error": "No progress for job; it is not running."}, status_code=404)
        return JSONResponse(progress.to_dict())

    @_handles_errors
    async def cancel_job(request: Request) -> JSONResponse:
        job = ctx.orchestrator.cancel_job(request.path_params["job_id"])
        return JSONResponse({"message": "Sync job cancelled", "job": job_to_dict(job)})

    @_handles_errors
    async def repository_jobs(request: Request) -> JSONResponse:
        limit = int(request.query_params.get("limit", "10"))
        jobs = ctx.orchestrator.list_jobs(request.path_params["repository_id"], limit)
        return JSONResponse({"jobs": [job_to_dict(j) for j in jobs]})

    async def sync_stats(request: Request) -> JSONResponse:
        _ = request  # unused
        return JSONResponse(
            {
                "jobs": ctx.orchestrator.status_counts(),
                "running": [p.to_dict() for p in ctx.registry.snapshot()],
                "scheduler": scheduler.status() if scheduler is not None else None,
            }
        )

    async def documentation_updates(request: Request) -> JSONResponse:
        raw_priority = request.query_params.get("priority")
        priority = Priority(raw_priority) if raw_priority in {p.value for p in Priority} else None
        repository_id = request.path_params.get("repository_id") or request.query_params.get("repository_id")
        updates = ctx.analyzer.pending_updates(repository_id, priority)
        return JSONResponse({"updates": [update_to_dict(u) for u in updates]})

    return [
        Route("/health", health, methods=["GET"]),
        Route("/webhooks/github", github_webhook, methods=["POST"]),
        Route("/webhooks/process-pending", process_pending, methods=["POST"]),
        Route("/webhooks/status", webhook_status, methods=["GET"]),
        Route("/webhooks/events", list_events, methods=["GET"]),
        Route("/webhooks/events/{event_id}/requeue", requeue_event, methods=["POST"]),
        Route("/sync/all", sync_all, methods=["POST"]),
        Route("/sync/stats", sync_stats, methods=["GET"]),
        Route("/sync/documentation-updates", documentation_updates, methods=["GET"]),
        Route("/sync/jobs/{job_id}", get_job, methods=["GET"]),
        Route("/sync/jobs/{job_id}/progress", get_progress, methods=["GET"]),
        Route("/sync/jobs/{job_id}/cancel", cancel_job, methods=["POST"]),
        Route("/sync/repositories/{repository_id}/jobs", repository_jobs, methods=["GET"]),
        Route(
            "/sync/repositories/{repository_id}/documentation-updates",
            documentation_updates,
            methods=["GET"],
        ),
        Route("/sync/{repository_id}", trigger_sync, methods=["POST"]),
    ]
