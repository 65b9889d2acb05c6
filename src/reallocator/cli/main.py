# src/reallocator/cli/main.py
"""
This module is the main entry point for the Reallocator CLI.
"""

import logging

import typer

from ..core.config import config
from . import start

# --- Setup Logger ---
logging.basicConfig(
    level=config.LOG_LEVEL.upper(),
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


app = typer.Typer(
    name="reallocator",
    help="Reclaim empty, expired and failed-to-join nodes launched by Provisioners.",
    add_completion=False,
)


def version_callback(value: bool):
    """
    Prints the version of Reallocator.
    """
    if value:
        from .. import __version__

        typer.echo(f"Reallocator version: {__version__}")
        raise typer.Exit()


@app.command()
def version():
    """
    Show the version of Reallocator.
    """
    from .. import __version__

    typer.echo(f"Reallocator version: {__version__}")


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
):
    """
    Reallocator CLI main entry point.
    """
    pass


app.command(name="start")(start.start)


if __name__ == "__main__":
    app()
