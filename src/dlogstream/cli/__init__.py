"""CLI entry point — Click group with global options."""

from __future__ import annotations

import logging

import click

from dlogstream import __version__


@click.group()
@click.version_option(version=__version__, prog_name="dlogstream")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to a YAML config file.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """dlogstream — live Tizen device log capture over sdb and SSH."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _register_commands() -> None:
    from dlogstream.cli.capture import sdb, ssh  # noqa: F811
    from dlogstream.cli.devices import connect, devices  # noqa: F811
    from dlogstream.cli.server import server  # noqa: F811

    main.add_command(sdb)
    main.add_command(ssh)
    main.add_command(devices)
    main.add_command(connect)
    main.add_command(server)


_register_commands()
