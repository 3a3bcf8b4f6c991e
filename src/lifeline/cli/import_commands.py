"""Import command — lifeline import."""

from __future__ import annotations

import dataclasses
import json
import sys
from pathlib import Path

import click
import yaml
from rich import box
from rich.table import Table

from lifeline.adapters.registry import get_supported_kinds
from lifeline.cli.main import console, get_layer_style, setup_logging
from lifeline.config import get_settings
from lifeline.core.config import ImportOptions, load_keywords_file
from lifeline.core.errors import FatalError
from lifeline.core.logging import ImportLogger, Verbosity
from lifeline.core.models import ImportResult, Layer


def _summary_table(result: ImportResult) -> Table:
    table = Table(title="Import Summary", box=box.ROUNDED)
    table.add_column("Layer", style="bold")
    table.add_column("Events", justify="right")
    for layer in Layer:
        count = result.stats.events_by_layer.get(layer.value, 0)
        if count:
            style = get_layer_style(layer.value)
            table.add_row(f"[{style}]{layer.value}[/{style}]", str(count))
    table.add_section()
    table.add_row("[bold]Total[/bold]", str(result.stats.events_produced))
    return table


def _errors_table(result: ImportResult, limit: int = 50) -> Table:
    table = Table(title=f"Errors ({len(result.errors)})", box=box.SIMPLE)
    table.add_column("Item", style="dim")
    table.add_column("Kind")
    table.add_column("Message")
    for error in result.errors[:limit]:
        table.add_row(error.item_id or "-", error.kind, error.message)
    return table


@click.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True))
@click.option(
    "--type", "kind", default=None,
    type=click.Choice(sorted(get_supported_kinds())),
    help="Force a parser instead of detecting it per file",
)
@click.option("--date-order", type=click.Choice(["MDY", "DMY"], case_sensitive=False), default=None,
              help="How to read slash dates like 01/02/2024 (default MDY)")
@click.option("--keywords", "keywords_file", type=click.Path(exists=True, dir_okay=False), default=None,
              help="YAML file of extra classifier keywords per layer")
@click.option("--concurrency", "-j", default=None, type=int, help="Number of worker threads (default 1)")
@click.option("--user-id", default=None, help="Owner id stamped on every event")
@click.option("--store/--no-store", default=False, help="Persist events to the event store")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the full result as JSON")
@click.option("--log-dir", type=click.Path(file_okay=False), default=None,
              help="Directory for the JSONL run log (default: LIFELINE_LOG_DIR or <storage>/logs)")
@click.option("--verbose", "-v", count=True, help="Verbosity level: -v per-item, -vv errors and debug logging")
def import_command(
    paths: tuple[str, ...],
    kind: str | None,
    date_order: str | None,
    keywords_file: str | None,
    concurrency: int | None,
    user_id: str | None,
    store: bool,
    as_json: bool,
    log_dir: str | None,
    verbose: int,
):
    """Import export files, directories or ZIP archives.

    Every supported file under PATHS is parsed; unsupported files are
    skipped.  Prints a per-layer summary and any errors.
    """
    from lifeline.pipeline import run_import
    from lifeline.sources import collect_items

    setup_logging(verbose)

    try:
        options = ImportOptions.from_dict({
            "date_order": date_order.upper() if date_order else None,
            "concurrency": concurrency,
            "user_id": user_id,
            "custom_keywords": load_keywords_file(keywords_file) if keywords_file else None,
        })
    except (ValueError, OSError, yaml.YAMLError) as e:
        console.print(f"[red]Invalid options:[/red] {e}")
        sys.exit(1)

    items = collect_items(paths, options.max_item_bytes)
    if kind:
        items = [dataclasses.replace(item, kind=kind) for item in items]

    import_logger = ImportLogger(
        verbosity=Verbosity(min(verbose, Verbosity.DEBUG)),
        log_dir=Path(log_dir) if log_dir else get_settings().resolved_log_dir,
    )
    try:
        result = run_import(items, options, import_logger=import_logger)
    except FatalError as e:
        console.print(f"[red]Import aborted:[/red] {e.item_id}: {e.message}")
        sys.exit(1)

    inserted = None
    if store:
        from lifeline.db import get_events_session, init_database
        from lifeline.services.events import insert_events

        init_database()
        with get_events_session() as session:
            inserted = insert_events(session, result.events)

    if as_json:
        payload = result.to_dict()
        if inserted is not None:
            payload["stored"] = inserted
        click.echo(json.dumps(payload, indent=2, ensure_ascii=False))
        return

    console.print(_summary_table(result))
    stats = result.stats
    console.print(
        f"[bold]Items:[/bold] {stats.items_submitted} submitted, "
        f"{stats.items_processed} processed, {stats.items_skipped} skipped"
    )
    if result.errors:
        console.print(_errors_table(result))
    if inserted is not None:
        duplicates = len(result.events) - inserted
        console.print(f"[green]Stored[/green] {inserted} new events ({duplicates} already present)")
    if import_logger.log_path is not None:
        console.print(f"[dim]Run log: {import_logger.log_path}[/dim]")
