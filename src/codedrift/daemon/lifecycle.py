"""Server lifecycle management."""

from __future__ import annotations

import contextlib
import os
from pathlib import Path

import structlog
import uvicorn

from codedrift.daemon.app import create_app
from codedrift.daemon.context import AppContext
from codedrift.daemon.scheduler import SyncScheduler

logger = structlog.get_logger()

# PID file location relative to .codedrift/
PID_FILE = "server.pid"
PORT_FILE = "server.port"


def write_pid_file(state_dir: Path, port: int) -> None:
    """Write PID and port files for server discovery."""
    state_dir.mkdir(parents=True, exist_ok=True)
    pid_path = state_dir / PID_FILE
    port_path = state_dir / PORT_FILE

    pid_path.write_text(str(os.getpid()))
    port_path.write_text(str(port))

    logger.debug("pid_file_written", pid_path=str(pid_path), port=port)


def remove_pid_file(state_dir: Path) -> None:
    """Remove PID and port files on shutdown."""
    for path in (state_dir / PID_FILE, state_dir / PORT_FILE):
        with contextlib.suppress(FileNotFoundError):
            path.unlink()


def read_server_info(state_dir: Path) -> tuple[int, int] | None:
    """Read server PID and port from files. Returns (pid, port) or None."""
    try:
        pid = int((state_dir / PID_FILE).read_text().strip())
        port = int((state_dir / PORT_FILE).read_text().strip())
        return (pid, port)
    except (FileNotFoundError, ValueError):
        return None


def is_server_running(state_dir: Path) -> bool:
    """Check if the server is running by verifying PID file and process."""
    info = read_server_info(state_dir)
    if info is None:
        return False

    pid, _ = info
    try:
        os.kill(pid, 0)
        return True
    except (OSError, ProcessLookupError):
        # Process doesn't exist - clean up stale files
        remove_pid_file(state_dir)
        return False


async def run_server(ctx: AppContext, state_dir: Path) -> None:
    """Serve HTTP and run the scheduler until a shutdown signal."""
    server_config = ctx.config.server
    scheduler = SyncScheduler(ctx.orchestrator, ctx.pipeline, ctx.config.sync)
    app = create_app(ctx, scheduler)

    uvicorn_config = uvicorn.Config(
        app,
        host=server_config.host,
        port=server_config.port,
        log_level="warning",  # Use structlog instead
        timeout_graceful_shutdown=server_config.shutdown_timeout_sec,
    )
    server = uvicorn.Server(uvicorn_config)

    write_pid_file(state_dir, server_config.port)

    base_url = f"http://{server_config.host}:{server_config.port}"
    logger.info("server_starting", url=base_url)
    logger.info("endpoint", name="webhook", url=f"{base_url}/webhooks/github")
    logger.info("endpoint", name="health", url=f"{base_url}/health")

    try:
        await server.serve()
    finally:
        await ctx.aclose()
        remove_pid_file(state_dir)
        logger.info("server_stopped")
