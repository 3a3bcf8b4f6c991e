"""Lifeline CLI — main entry point and shared utilities."""

from __future__ import annotations

import logging

import click
from rich.console import Console

console = Console()

# Color scheme per layer
LAYER_COLORS = {
    "economics": "green",
    "education": "blue",
    "work": "yellow",
    "health": "red",
    "relationships": "magenta",
    "travel": "cyan",
    "media": "white",
}


def get_layer_style(layer: str) -> str:
    """Return Rich style string for a given layer name."""
    return LAYER_COLORS.get(layer, "white")


def setup_logging(verbose: int) -> None:
    """Configure module loggers; -vv turns on parser debug output."""
    level = logging.DEBUG if verbose >= 2 else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


@click.group()
def main():
    """Lifeline — import personal history exports into one timeline."""
    pass


def cli():
    """Entrypoint that loads .env before running the CLI."""
    from dotenv import load_dotenv

    load_dotenv()
    main()


# Import subcommand modules to register commands
from lifeline.cli.import_commands import import_command  # noqa: E402
from lifeline.cli.inspect_commands import classify_command, exif_command, resolve_date  # noqa: E402
from lifeline.cli.store_commands import events  # noqa: E402

# Register commands
main.add_command(import_command, name="import")
main.add_command(classify_command, name="classify")
main.add_command(resolve_date, name="resolve-date")
main.add_command(exif_command, name="exif")
main.add_command(events)
