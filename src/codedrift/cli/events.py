"""drift event commands - process and requeue change events."""

import click

from codedrift.cli.utils import console, echo_json, run_with_context
from codedrift.daemon.context import AppContext
from codedrift.events.pipeline import ProcessingSummary
from codedrift.store.models import CodeChangeEvent


@click.command()
@click.option("--limit", type=int, default=None, help="Max events to process")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def process_pending_command(ctx: click.Context, limit: int | None, as_json: bool) -> None:
    """Relocate citations for pending change events."""

    async def action(app_ctx: AppContext) -> ProcessingSummary:
        return await app_ctx.pipeline.process_pending(limit)

    summary = run_with_context(ctx, action)
    if as_json:
        echo_json(summary.to_dict())
        return
    console.print(
        f"Processed {summary.processed} events: {summary.completed} completed, "
        f"{summary.failed} failed, {summary.skipped} skipped",
        highlight=False,
    )
    for event_id, error in summary.failures.items():
        console.print(f"  [red]✗[/red] {event_id}: {error}", highlight=False)


@click.command()
@click.argument("event_id")
@click.pass_context
def requeue_command(ctx: click.Context, event_id: str) -> None:
    """Move a failed change event back to pending."""

    async def action(app_ctx: AppContext) -> CodeChangeEvent:
        return app_ctx.pipeline.requeue(event_id)

    event = run_with_context(ctx, action)
    click.echo(f"Requeued {event.id} ({event.repository}:{event.file_path})")
