"""drift sync commands - run sync jobs from the command line."""

import click
from rich.table import Table

from codedrift.cli.utils import console, echo_json, require_repository, run_with_context
from codedrift.daemon.context import AppContext
from codedrift.store.models import Priority, UpdateType
from codedrift.sync.orchestrator import BatchSummary, SyncResult


def _print_result(full_name: str, result: SyncResult) -> None:
    if result.cancelled:
        console.print(f"[yellow]Sync of {full_name} was cancelled[/yellow] (job {result.job.id})", highlight=False)
        return

    metadata = result.job.job_metadata
    console.print(f"[green]Synced {full_name}[/green] (job {result.job.id})", highlight=False)
    if not result.commits:
        console.print("  No new commits.", highlight=False)
        return

    console.print(
        f"  Commits: {len(result.commits)}  "
        f"Files analyzed: {metadata.get('files_analyzed', 0)}  "
        f"Functions: {metadata.get('functions_found', 0)}",
        highlight=False,
    )
    if result.diff is not None:
        table = Table(show_header=True, box=None, pad_edge=False)
        for column in result.diff.summary():
            table.add_column(column.capitalize(), justify="right")
        table.add_row(*(str(v) for v in result.diff.summary().values()))
        console.print(table)
    for file_path, error in sorted(result.extraction_errors.items()):
        console.print(f"  [red]![/red] {file_path}: {error}", highlight=False)
    if result.impact is not None and result.impact.update is not None:
        update = result.impact.update
        console.print(
            f"  Documentation update recorded: {UpdateType(update.update_type).value} "
            f"({Priority(update.priority).value}, {update.confidence}%)",
            highlight=False,
        )


def _print_batch(title: str, summary: BatchSummary, as_json: bool) -> None:
    if as_json:
        echo_json(summary.to_dict())
        return
    if not summary.total:
        click.echo(f"{title}: nothing to do")
        return
    console.print(f"{title}: {len(summary.succeeded)} succeeded, {len(summary.failed)} failed", highlight=False)
    for key, error in summary.failed.items():
        console.print(f"  [red]✗[/red] {key}: {error}", highlight=False)


@click.command()
@click.argument("full_name")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def sync_command(ctx: click.Context, full_name: str, as_json: bool) -> None:
    """Sync OWNER/NAME now and wait for the job to finish."""

    async def action(app_ctx: AppContext) -> SyncResult:
        repo = require_repository(app_ctx, full_name)
        return await app_ctx.orchestrator.sync_repository(repo.id)

    result = run_with_context(ctx, action)
    if as_json:
        echo_json(result.to_dict())
    else:
        _print_result(full_name, result)


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def sync_all_command(ctx: click.Context, as_json: bool) -> None:
    """Sync every repository due for its daily sync."""

    async def action(app_ctx: AppContext) -> BatchSummary:
        return await app_ctx.orchestrator.run_daily_sync()

    _print_batch("Daily sync", run_with_context(ctx, action), as_json)


@click.command()
@click.option("--limit", type=int, default=None, help="Max jobs to retry")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def retry_command(ctx: click.Context, limit: int | None, as_json: bool) -> None:
    """Re-run failed sync jobs whose backoff has elapsed."""

    async def action(app_ctx: AppContext) -> BatchSummary:
        return await app_ctx.orchestrator.retry_due_jobs(limit)

    _print_batch("Retry sweep", run_with_context(ctx, action), as_json)
