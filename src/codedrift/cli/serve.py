"""drift serve command - run the webhook server and scheduler."""

import asyncio
from importlib.metadata import PackageNotFoundError, version

import click

from codedrift.cli.utils import console, open_context, state_dir
from codedrift.core.logging import configure_logging
from codedrift.daemon.lifecycle import is_server_running, read_server_info, run_server


def _version() -> str:
    try:
        return version("codedrift")
    except PackageNotFoundError:
        return "dev"


def _print_banner(host: str, port: int) -> None:
    banner_width = 64
    rule_line = "─" * banner_width
    base_url = f"http://{host}:{port}"

    console.print()
    console.print(rule_line, style="dim cyan", highlight=False)
    console.print(f"codedrift v{_version()} · Ready".center(banner_width), style="bold cyan", highlight=False)
    console.print(rule_line, style="dim cyan", highlight=False)
    console.print()
    console.print(f"  Webhook:         {base_url}/webhooks/github", style="green", highlight=False)
    console.print(f"  Health Check:    {base_url}/health", highlight=False)
    console.print(f"  Sync Stats:      {base_url}/sync/stats", highlight=False)
    console.print()


@click.command()
@click.option("--host", type=str, help="Override bind address")
@click.option("--port", "-p", type=int, help="Override server port")
@click.pass_context
def serve_command(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Start the codedrift server in the foreground.

    Receives webhooks, processes pending change events and runs the daily
    and retry sync sweeps. If already running, reports the existing instance.
    """
    state = state_dir(ctx)
    if is_server_running(state):
        info = read_server_info(state)
        if info:
            pid, running_port = info
            click.echo(f"Server already running (PID {pid}, port {running_port})")
            return

    app_ctx = open_context(ctx)
    if host:
        app_ctx.config.server.host = host
    if port is not None:
        app_ctx.config.server.port = port

    if not ctx.obj.get("verbose"):
        configure_logging(config=app_ctx.config.logging)

    _print_banner(app_ctx.config.server.host, app_ctx.config.server.port)
    asyncio.run(run_server(app_ctx, state))
