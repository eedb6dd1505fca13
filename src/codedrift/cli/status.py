"""drift status command - show server and queue status."""

from typing import Any

import click
from rich.table import Table

from codedrift.cli.utils import console, echo_json, run_with_context, state_dir
from codedrift.daemon.context import AppContext
from codedrift.daemon.lifecycle import is_server_running, read_server_info


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def status_command(ctx: click.Context, as_json: bool) -> None:
    """Show server, sync job, change event and documentation update status."""
    state = state_dir(ctx)
    server: dict[str, Any] = {"running": False}
    if is_server_running(state):
        info = read_server_info(state)
        if info is not None:
            server = {"running": True, "pid": info[0], "port": info[1]}

    async def action(app_ctx: AppContext) -> dict[str, Any]:
        return {
            "server": server,
            "repositories": len(app_ctx.orchestrator.list_repositories()),
            "jobs": app_ctx.orchestrator.status_counts(),
            "events": app_ctx.pipeline.status_counts(),
            "pending_documentation_updates": len(app_ctx.analyzer.pending_updates()),
        }

    data = run_with_context(ctx, action)
    if as_json:
        echo_json(data)
        return

    if server["running"]:
        console.print(f"Server: [green]running[/green] (PID {server['pid']}, port {server['port']})", highlight=False)
    else:
        console.print("Server: [dim]not running[/dim]", highlight=False)
    console.print(f"Repositories: {data['repositories']}", highlight=False)

    table = Table(show_header=True)
    table.add_column("Queue")
    for name in ("pending", "running", "processing", "completed", "failed", "cancelled"):
        table.add_column(name.capitalize(), justify="right")
    for label, counts in (("Sync jobs", data["jobs"]), ("Change events", data["events"])):
        table.add_row(
            label,
            *(
                str(counts[name]) if name in counts else "-"
                for name in ("pending", "running", "processing", "completed", "failed", "cancelled")
            ),
        )
    console.print(table)
    console.print(f"Pending documentation updates: {data['pending_documentation_updates']}", highlight=False)
