"""CLI command: dlogstream server — start the capture server."""

from __future__ import annotations

import click
from rich.console import Console

from dlogstream.config import DlogStreamConfig

console = Console(stderr=True)


@click.command()
@click.option(
    "--port",
    type=int,
    default=None,
    help="Port to listen on (default: 3001).",
)
@click.pass_context
def server(ctx: click.Context, port: int | None) -> None:
    """Start the websocket capture server."""
    import uvicorn

    from dlogstream.web.app import create_app

    config = DlogStreamConfig.load(ctx.obj.get("config_path"))
    if port is not None:
        config.web_port = port

    console.print(
        f"[bold]dlogstream[/bold] server starting on "
        f"[cyan]http://{config.web_host}:{config.web_port}[/cyan]"
    )
    console.print(
        f"  Capture socket: [cyan]ws://{config.web_host}:{config.web_port}"
        "/api/ws/capture[/cyan]\n"
    )

    uvicorn.run(
        create_app(config),
        host=config.web_host,
        port=config.web_port,
        log_level="debug" if ctx.obj.get("verbose") else "info",
    )
