"""Command line entry point."""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path

import typer

from . import __version__
from .config import load_config
from .errors import ConfigError

app = typer.Typer(help="WebSocket to TCP device bridge", no_args_is_help=True)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def version_callback(value: bool):
    if value:
        typer.echo(f"tcp-bridge v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """tcp-bridge - drive TCP devices from the browser."""
    pass


@app.command()
def serve(
    config: Path | None = typer.Option(None, "--config", "-c", help="YAML config file"),
    host: str | None = typer.Option(None, "--host", help="Bind address"),
    port: int | None = typer.Option(None, "--port", "-p", help="HTTP listen port"),
    log_level: str | None = typer.Option(None, "--log-level", help="Logging level"),
):
    """Start the bridge web server."""
    from .server import run

    try:
        overrides = {
            key: value
            for key, value in (("host", host), ("port", port), ("log_level", log_level))
            if value is not None
        }
        settings = dataclasses.replace(load_config(config), **overrides)
    except ConfigError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(2) from exc

    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)

    run(settings)
