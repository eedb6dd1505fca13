"""CLI utilities."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import click
from rich.console import Console

from codedrift.config.loader import CONFIG_DIR_NAME, load_config, resolve_db_path
from codedrift.core.errors import CodeDriftError
from codedrift.daemon.context import AppContext
from codedrift.store.models import Repository

T = TypeVar("T")

console = Console()


def config_root(ctx: click.Context) -> Path:
    root = ctx.obj.get("config_root") if ctx.obj else None
    return Path(root) if root else Path.cwd()


def state_dir(ctx: click.Context) -> Path:
    return config_root(ctx) / CONFIG_DIR_NAME


def open_context(ctx: click.Context) -> AppContext:
    """Build the AppContext for a command.

    ``ctx.obj["vcs"]`` and ``ctx.obj["llm"]``, when present, replace the
    configured clients.
    """
    root = config_root(ctx)
    try:
        config = load_config(root)
    except CodeDriftError as e:
        raise click.ClickException(str(e)) from e
    return AppContext.create(
        config,
        resolve_db_path(config, root),
        vcs=ctx.obj.get("vcs"),
        llm=ctx.obj.get("llm"),
    )


def run_with_context(ctx: click.Context, action: Callable[[AppContext], Awaitable[T]]) -> T:
    """Run an async action against a fresh AppContext, closing it afterwards.

    CodeDriftError becomes a ClickException (exit code 1).
    """

    async def main() -> T:
        app_ctx = open_context(ctx)
        try:
            return await action(app_ctx)
        finally:
            await app_ctx.aclose()

    try:
        return asyncio.run(main())
    except CodeDriftError as e:
        raise click.ClickException(str(e)) from e


def require_repository(app_ctx: AppContext, full_name: str) -> Repository:
    if "/" not in full_name:
        raise click.BadParameter(f"expected OWNER/NAME, got {full_name!r}")
    repo = app_ctx.orchestrator.find_repository(full_name)
    if repo is None:
        raise click.ClickException(f"Repository not registered: {full_name}. Run 'drift repo add {full_name}' first.")
    return repo


def echo_json(data: dict[str, Any]) -> None:
    click.echo(json.dumps(data, indent=2, default=str))
