"""Event store commands — lifeline events list / count / clear."""

from __future__ import annotations

import json

import click
from rich import box
from rich.table import Table

from lifeline.cli.main import console, get_layer_style
from lifeline.core.models import EventSource, Layer

LAYER_CHOICES = click.Choice([layer.value for layer in Layer])
SOURCE_CHOICES = click.Choice([source.value for source in EventSource])


def _parse_date_option(ctx: click.Context, param: click.Parameter, value: str | None):
    """Click callback: resolve --since/--until with the date dialect chain."""
    if value is None:
        return None
    from lifeline.dates import resolve

    resolved = resolve(value)
    if resolved is None:
        raise click.BadParameter(f"unrecognized date: {value}")
    return resolved


@click.group()
def events():
    """Inspect or clear stored events."""
    pass


@events.command("list")
@click.option("--layer", type=LAYER_CHOICES, default=None, help="Only this layer")
@click.option("--source", type=SOURCE_CHOICES, default=None, help="Only this source")
@click.option("--since", callback=_parse_date_option, default=None, help="Start on or after this date")
@click.option("--until", callback=_parse_date_option, default=None, help="Start before this date")
@click.option("--limit", default=50, type=int, help="Maximum rows (default 50)")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print events as JSON")
def list_events(layer, source, since, until, limit: int, as_json: bool):
    """List stored events, oldest first."""
    from lifeline.db import get_events_session, init_database
    from lifeline.services.events import query_events

    init_database()
    with get_events_session() as session:
        rows = query_events(session, layer=layer, source=source, since=since, until=until, limit=limit)
        records = [row.to_dict() for row in rows]

    if as_json:
        click.echo(json.dumps(records, indent=2, ensure_ascii=False))
        return
    if not records:
        console.print("[dim]No events stored.[/dim]")
        return

    table = Table(box=box.ROUNDED)
    table.add_column("Start")
    table.add_column("Layer")
    table.add_column("Type")
    table.add_column("Title")
    table.add_column("Source", style="dim")
    for record in records:
        style = get_layer_style(record["layer"])
        table.add_row(
            record["start"],
            f"[{style}]{record['layer']}[/{style}]",
            record["event_type"],
            record["title"],
            record["source"],
        )
    console.print(table)


@events.command("count")
@click.option("--source", type=SOURCE_CHOICES, default=None, help="Only this source")
def count(source):
    """Count stored events per layer."""
    from lifeline.db import get_events_session, init_database
    from lifeline.services.events import count_by_layer, count_events

    init_database()
    with get_events_session() as session:
        total = count_events(session, source=source)
        by_layer = count_by_layer(session) if source is None else {}

    for layer, n in by_layer.items():
        style = get_layer_style(layer)
        console.print(f"  [{style}]{layer}[/{style}]: {n}")
    console.print(f"[bold]Total:[/bold] {total}")


@events.command("clear")
@click.option("--source", type=SOURCE_CHOICES, default=None, help="Only delete this source's events")
@click.option("-y", "--yes", is_flag=True, help="Skip confirmation prompt")
def clear(source, yes: bool):
    """Delete stored events. Use --yes to skip the confirmation prompt."""
    from lifeline.db import get_events_session, init_database
    from lifeline.services.events import clear_events

    if not yes:
        scope = f"all {source} events" if source else "all stored events"
        console.print(f"This will delete [bold]{scope}[/bold].")
        if not click.confirm("Continue?"):
            console.print("[dim]Aborted.[/dim]")
            return

    init_database()
    with get_events_session() as session:
        deleted = clear_events(session, source=source)
    console.print(f"[green]Deleted[/green] {deleted} events")
