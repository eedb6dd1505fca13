"""codedrift CLI - drift command."""

from pathlib import Path

import click

from codedrift.cli.events import process_pending_command, requeue_command
from codedrift.cli.repo import repo_group
from codedrift.cli.scan import scan_command
from codedrift.cli.serve import serve_command
from codedrift.cli.status import status_command
from codedrift.cli.sync import retry_command, sync_all_command, sync_command
from codedrift.core.logging import configure_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="drift")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option(
    "--config-root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding .codedrift/ (default: current directory)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_root: Path | None) -> None:
    """codedrift - keep documentation in step with the code it cites."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config_root"] = config_root
    # Commands print their own results; only warnings reach stderr by default.
    configure_logging(level="DEBUG" if verbose else "WARNING")


cli.add_command(serve_command, name="serve")
cli.add_command(repo_group, name="repo")
cli.add_command(sync_command, name="sync")
cli.add_command(sync_all_command, name="sync-all")
cli.add_command(retry_command, name="retry")
cli.add_command(process_pending_command, name="process-pending")
cli.add_command(requeue_command, name="requeue")
cli.add_command(status_command, name="status")
cli.add_command(scan_command, name="scan")


if __name__ == "__main__":
    cli()
