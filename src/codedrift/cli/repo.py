"""drift repo commands - register and list tracked repositories."""

import click
from rich.table import Table

from codedrift.cli.utils import console, echo_json, run_with_context
from codedrift.daemon.context import AppContext
from codedrift.store.models import Repository


def repository_to_dict(repo: Repository) -> dict[str, object]:
    return {
        "id": repo.id,
        "full_name": repo.full_name,
        "default_branch": repo.default_branch,
        "tracked_branch": repo.tracked_branch,
        "last_commit_sha": repo.last_commit_sha,
        "last_synced_at": repo.last_synced_at.isoformat() if repo.last_synced_at else None,
        "sync_config": repo.sync_config,
    }


@click.group()
def repo_group() -> None:
    """Manage tracked repositories."""


@repo_group.command("add")
@click.argument("full_name")
@click.option("--branch", "-b", default="main", show_default=True, help="Default branch")
@click.option("--track", "tracked_branch", help="Branch to sync, when not the default branch")
@click.option("--include", "include_paths", multiple=True, help="Include path or glob (repeatable)")
@click.option("--exclude", "exclude_paths", multiple=True, help="Exclude path or glob (repeatable)")
@click.option("--ext", "file_extensions", multiple=True, help="Restrict to extension, e.g. .py (repeatable)")
@click.option(
    "--frequency",
    type=click.Choice(["daily", "weekly", "manual"]),
    default="daily",
    show_default=True,
    help="Scheduled sync frequency",
)
@click.option("--disabled", is_flag=True, help="Register without enabling sync")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def add_command(
    ctx: click.Context,
    full_name: str,
    branch: str,
    tracked_branch: str | None,
    include_paths: tuple[str, ...],
    exclude_paths: tuple[str, ...],
    file_extensions: tuple[str, ...],
    frequency: str,
    disabled: bool,
    as_json: bool,
) -> None:
    """Register OWNER/NAME for syncing (updates it if already registered)."""
    owner, _, name = full_name.partition("/")
    if not owner or not name or "/" in name:
        raise click.BadParameter(f"expected OWNER/NAME, got {full_name!r}", param_hint="FULL_NAME")

    sync_config: dict[str, object] = {"enabled": not disabled, "sync_frequency": frequency}
    if tracked_branch:
        sync_config["branch"] = tracked_branch
    if include_paths:
        sync_config["include_paths"] = list(include_paths)
    if exclude_paths:
        sync_config["exclude_paths"] = list(exclude_paths)
    if file_extensions:
        sync_config["file_extensions"] = [e if e.startswith(".") else f".{e}" for e in file_extensions]

    async def action(app_ctx: AppContext) -> Repository:
        return app_ctx.orchestrator.add_repository(owner, name, default_branch=branch, sync_config=sync_config)

    repo = run_with_context(ctx, action)
    if as_json:
        echo_json(repository_to_dict(repo))
    else:
        console.print(f"Registered [bold]{repo.full_name}[/bold] ({repo.id})", highlight=False)


@repo_group.command("list")
@click.option("--all", "include_inactive", is_flag=True, help="Include inactive repositories")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def list_command(ctx: click.Context, include_inactive: bool, as_json: bool) -> None:
    """List tracked repositories."""

    async def action(app_ctx: AppContext) -> list[Repository]:
        return app_ctx.orchestrator.list_repositories(active_only=not include_inactive)

    repos = run_with_context(ctx, action)
    if as_json:
        echo_json({"repositories": [repository_to_dict(r) for r in repos]})
        return
    if not repos:
        click.echo("No repositories registered. Run 'drift repo add OWNER/NAME' first.")
        return

    table = Table(title="Repositories")
    table.add_column("Repository", style="bold")
    table.add_column("Branch")
    table.add_column("Frequency")
    table.add_column("Last commit")
    table.add_column("Last synced")
    for repo in repos:
        table.add_row(
            repo.full_name,
            repo.tracked_branch,
            repo.sync_frequency or "daily",
            (repo.last_commit_sha or "-")[:7],
            repo.last_synced_at.strftime("%Y-%m-%d %H:%M") if repo.last_synced_at else "never",
        )
    console.print(table)
