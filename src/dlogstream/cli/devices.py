"""CLI commands: dlogstream devices / connect — sdb device discovery."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console
from rich.table import Table

from dlogstream import devices as sdb_devices
from dlogstream.config import DlogStreamConfig
from dlogstream.errors import TransportError

console = Console(stderr=True)


@click.command()
@click.pass_context
def devices(ctx: click.Context) -> None:
    """List devices attached to sdb."""
    config = DlogStreamConfig.load(ctx.obj.get("config_path"))
    try:
        found = asyncio.run(sdb_devices.list_devices(config.sdb_path))
    except TransportError as exc:
        console.print(f"[red]{exc.message}[/red]")
        raise SystemExit(1)

    if not found:
        console.print("[dim]No devices attached.[/dim]")
        return

    table = Table(show_header=True, box=None, padding=(0, 2))
    table.add_column("Device ID", style="cyan")
    table.add_column("Type")
    for device in found:
        table.add_row(device.id, device.type)
    Console().print(table)


@click.command()
@click.argument("ip")
@click.pass_context
def connect(ctx: click.Context, ip: str) -> None:
    """Attach a network device by IP with sdb connect."""
    config = DlogStreamConfig.load(ctx.obj.get("config_path"))
    try:
        result = asyncio.run(
            sdb_devices.connect_device(
                ip, config.sdb_path, timeout=config.device_connect_timeout
            )
        )
    except TransportError as exc:
        console.print(f"[red]{exc.message}[/red]")
        raise SystemExit(1)

    if result.success:
        console.print(f"[green]✓[/green] {result.message}")
    else:
        console.print(f"[red]✗[/red] {result.message}")
        raise SystemExit(1)
