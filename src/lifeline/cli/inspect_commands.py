"""Inspection commands — lifeline classify, resolve-date, exif."""

from __future__ import annotations

import sys
from pathlib import Path

import click
from rich import box
from rich.table import Table

from lifeline.cli.main import console, get_layer_style
from lifeline.core.config import load_keywords_file
from lifeline.core.errors import FatalError
from lifeline.layers import LAYER_PRIORITY, classify, matching_layers


@click.command()
@click.argument("text")
@click.option("--location", "has_location", is_flag=True, help="Treat the event as having a location")
@click.option("--all", "show_all", is_flag=True, help="List every layer with a positive score")
@click.option("--keywords", "keywords_file", type=click.Path(exists=True, dir_okay=False), default=None,
              help="YAML file of extra keywords per layer")
def classify_command(text: str, has_location: bool, show_all: bool, keywords_file: str | None):
    """Show which layer TEXT would be filed under, and why."""
    extra = load_keywords_file(keywords_file) if keywords_file else None
    result = classify(text, extra_keywords=extra, has_location=has_location)
    style = get_layer_style(result.layer.value)
    console.print(f"Layer: [{style}]{result.layer.value}[/{style}] (score {result.score})")
    if result.matched_keywords:
        console.print(f"Matched: {', '.join(result.matched_keywords)}")
    else:
        console.print("[dim]No keywords matched; using the default layer[/dim]")

    if show_all:
        table = Table(box=box.SIMPLE)
        table.add_column("Layer")
        table.add_column("Score", justify="right")
        matching = set(matching_layers(text, extra_keywords=extra))
        for layer in LAYER_PRIORITY:
            if layer in matching or result.scores.get(layer, 0) > 0:
                table.add_row(layer.value, str(result.scores.get(layer, 0)))
        console.print(table)


@click.command()
@click.argument("value")
@click.option("--date-order", type=click.Choice(["MDY", "DMY"], case_sensitive=False), default="MDY",
              help="How to read slash dates")
def resolve_date(value: str, date_order: str):
    """Resolve VALUE to an ISO timestamp using every supported date dialect."""
    from lifeline.dates import DateOptions, resolve

    resolved = resolve(value, DateOptions(date_order=date_order.upper()))
    if resolved is None:
        console.print(f"[red]Could not resolve date:[/red] {value}")
        sys.exit(1)
    click.echo(resolved.isoformat())


@click.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
def exif_command(file: str):
    """Print the EXIF metadata embedded in a JPEG FILE."""
    from lifeline.adapters.exif import extract_exif

    try:
        data = extract_exif(Path(file).read_bytes())
    except FatalError as e:
        console.print(f"[red]Corrupt image:[/red] {e.message}")
        sys.exit(1)

    if data is None:
        console.print("[dim]No EXIF metadata found[/dim]")
        return

    table = Table(title=Path(file).name, box=box.ROUNDED, show_header=False, padding=(0, 2))
    table.add_column("Field", style="bold")
    table.add_column("Value")
    for key, value in data.to_dict().items():
        if value is not None:
            table.add_row(key, str(value))
    console.print(table)
