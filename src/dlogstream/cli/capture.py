"""CLI commands: dlogstream sdb / ssh — stream a device log to stdout."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable
from typing import Any

import click
from rich.console import Console

from dlogstream.config import DlogStreamConfig
from dlogstream.session.manager import SessionManager
from dlogstream.session.models import (
    AUTH_REQUEST,
    CAPTURE_STATUS,
    ERROR_EVENTS,
    LOG_DATA,
    Emitter,
    LocalCaptureRequest,
    RemoteCaptureRequest,
    Session,
)

console = Console(stderr=True)

_CLIENT_ID = "cli"

Starter = Callable[[SessionManager, Emitter], Awaitable[Session]]


def _tag_option(func: Callable) -> Callable:
    return click.option(
        "--tag",
        "-t",
        "tags",
        multiple=True,
        help="Log tag substituted for $(TAGS) in the command (repeatable).",
    )(func)


def _command_option(func: Callable) -> Callable:
    return click.option(
        "--command",
        "command",
        default=None,
        help="Command template to run on the device (default: dlogutil).",
    )(func)


def _save_option(func: Callable) -> Callable:
    return click.option(
        "--save", is_flag=True, help="Also append the capture to a file."
    )(func)


@click.command()
@click.argument("device_id", required=False)
@_command_option
@_tag_option
@_save_option
@click.pass_context
def sdb(
    ctx: click.Context,
    device_id: str | None,
    command: str | None,
    tags: tuple[str, ...],
    save: bool,
) -> None:
    """Stream logs from DEVICE_ID (or the only device) through sdb shell."""
    config = DlogStreamConfig.load(ctx.obj.get("config_path"))
    request = LocalCaptureRequest(
        device_id=device_id,
        command=command,
        tags=list(tags),
        save_to_file=save,
    )

    async def start(manager: SessionManager, emit: Emitter) -> Session:
        return await manager.start_local(_CLIENT_ID, request, emit)

    sys.exit(_run_capture(config, start))


@click.command()
@click.argument("host")
@click.option("--port", "-p", type=int, default=22, show_default=True)
@click.option("--username", "-u", default="root", show_default=True)
@click.option("--password", default=None, help="Password (prompted if no key).")
@click.option(
    "--key",
    "key_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Private key file.",
)
@_command_option
@_tag_option
@_save_option
@click.pass_context
def ssh(
    ctx: click.Context,
    host: str,
    port: int,
    username: str,
    password: str | None,
    key_path: str | None,
    command: str | None,
    tags: tuple[str, ...],
    save: bool,
) -> None:
    """Stream logs from HOST through an interactive SSH shell."""
    if password is None and key_path is None:
        password = click.prompt("Password", hide_input=True, default="", show_default=False)

    config = DlogStreamConfig.load(ctx.obj.get("config_path"))
    request = RemoteCaptureRequest(
        host=host,
        port=port,
        username=username,
        password=password,
        key_path=key_path,
        command=command,
        tags=list(tags),
        save_to_file=save,
    )

    async def start(manager: SessionManager, emit: Emitter) -> Session:
        return await manager.start_remote(_CLIENT_ID, request, emit)

    sys.exit(_run_capture(config, start))


def _run_capture(config: DlogStreamConfig, start: Starter) -> int:
    """Run one capture until it ends or Ctrl+C; returns the exit code."""
    try:
        return asyncio.run(_capture(config, start))
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")
        return 0


async def _capture(config: DlogStreamConfig, start: Starter) -> int:
    done = asyncio.Event()
    exit_code = 0

    def emit(event: str, payload: Any) -> None:
        nonlocal exit_code
        if event == LOG_DATA:
            sys.stdout.write(payload)
            sys.stdout.flush()
        elif event in ERROR_EVENTS.values():
            console.print(f"[red]✗ {payload['message']}[/red]")
            exit_code = 1
            done.set()
        elif event == CAPTURE_STATUS:
            color = "green" if payload["status"] == "connected" else "dim"
            console.print(f"[{color}]{payload['message']}[/{color}]")
            if payload["status"] == "disconnected":
                done.set()
        elif event == AUTH_REQUEST:
            answer = click.prompt(
                payload["prompt"].strip().rstrip(":") or "Response",
                hide_input=not payload["echo"],
                default="",
                show_default=False,
            )
            manager.answer_auth(_CLIENT_ID, answer)

    manager = SessionManager(config=config)
    try:
        session = await start(manager, emit)
        console.print(
            f"[bold]dlogstream[/bold] {session.kind.value} capture on "
            f"[cyan]{session.target}[/cyan]: [dim]{session.command.strip()}[/dim]"
        )
        await done.wait()
    finally:
        manager.shutdown()
    return exit_code
