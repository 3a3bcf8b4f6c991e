"""Structured logging and verbosity levels for import runs."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import IntEnum
from pathlib import Path
from typing import Any

from rich.console import Console

from lifeline.core.models import ImportResult, ImportStats, ItemError


class Verbosity(IntEnum):
    """Verbosity levels for console output."""

    DEFAULT = 0   # Summary table only
    VERBOSE = 1   # + per-item status
    DEBUG = 2     # + per-item errors and timing


@dataclass
class ItemLog:
    """Per-item import statistics."""

    item_id: str
    kind: str | None = None
    status: str = "pending"  # "processed", "skipped", "failed"
    events: int = 0
    errors: int = 0
    time_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "kind": self.kind,
            "status": self.status,
            "events": self.events,
            "errors": self.errors,
            "time_seconds": self.time_seconds,
        }


@dataclass
class RunLog:
    """Structured log of a complete import run.

    The dict format is::

        {
            "run_id": "20240115T103000Z",
            "items": {
                "photos/IMG_0001.jpg": {"status": "processed", "events": 1, ...},
                ...
            },
            "stats": {"items_submitted": 12, "events_produced": 40, ...},
            "total_time": 0.8,
        }
    """

    run_id: str = ""
    items: dict[str, ItemLog] = field(default_factory=dict)
    stats: ImportStats = field(default_factory=ImportStats)
    total_time: float = 0.0

    def get_or_create_item(self, item_id: str) -> ItemLog:
        """Get existing item log or create a new one."""
        if item_id not in self.items:
            self.items[item_id] = ItemLog(item_id=item_id)
        return self.items[item_id]

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "items": {item_id: item.to_dict() for item_id, item in self.items.items()},
            "stats": self.stats.to_dict(),
            "total_time": self.total_time,
        }


class ImportLogger:
    """Structured logger for import runs.

    Writes a JSONL log file to ``log_dir/<run_id>.jsonl`` when a log
    directory is given, and emits console output via Rich based on
    verbosity level.  Not thread-safe: the pipeline calls it only from the
    thread that merges results.
    """

    def __init__(
        self,
        verbosity: Verbosity = Verbosity.DEFAULT,
        log_dir: Path | None = None,
        console: Console | None = None,
    ):
        self.verbosity = verbosity
        self.console = console or Console(stderr=True)
        self.run_log = RunLog(run_id=datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ"))
        self._log_file = None
        self._log_path: Path | None = None
        self._run_start: float = 0.0

        if log_dir is not None:
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)
            self._log_path = log_dir / f"{self.run_log.run_id}.jsonl"
            self._log_file = open(self._log_path, "a")

    @property
    def log_path(self) -> Path | None:
        return self._log_path

    def _write_event(self, event: dict[str, Any]) -> None:
        """Write a JSON event to the JSONL log file."""
        if self._log_file is not None:
            event["timestamp"] = datetime.now(UTC).isoformat()
            self._log_file.write(json.dumps(event) + "\n")
            self._log_file.flush()

    def _console_print(self, message: str, min_verbosity: Verbosity) -> None:
        """Print to console if verbosity is high enough."""
        if self.verbosity >= min_verbosity:
            self.console.print(message)

    # -- Run lifecycle --

    def run_start(self, item_count: int, concurrency: int = 1) -> None:
        self._run_start = time.time()
        self._write_event({
            "event": "run_start",
            "run_id": self.run_log.run_id,
            "items": item_count,
            "concurrency": concurrency,
        })
        self._console_print(
            f"[bold]Importing[/bold] {item_count} item(s) with {concurrency} worker(s)",
            Verbosity.VERBOSE,
        )

    def run_finish(self, result: ImportResult) -> None:
        """Log the completion of a run and close the log file."""
        elapsed = time.time() - self._run_start if self._run_start else 0.0
        self.run_log.total_time = elapsed
        self.run_log.stats = result.stats

        self._write_event({
            "event": "run_finish",
            "total_time": round(elapsed, 3),
            **result.stats.to_dict(),
            "errors": len(result.errors),
        })
        self._console_print(
            f"[bold]Done[/bold] in {elapsed:.1f}s: {result.stats.events_produced} events, "
            f"{len(result.errors)} errors",
            Verbosity.VERBOSE,
        )
        self.close()

    # -- Item events --

    def item_start(self, item_id: str, kind: str | None) -> None:
        item = self.run_log.get_or_create_item(item_id)
        item.kind = kind
        self._write_event({"event": "item_start", "item_id": item_id, "kind": kind})
        self._console_print(f"  [dim]{item_id}[/dim] ({kind or 'unknown'})", Verbosity.DEBUG)

    def item_finish(self, item_id: str, result: ImportResult, time_seconds: float = 0.0) -> None:
        item = self.run_log.get_or_create_item(item_id)
        item.status = "processed" if result.stats.items_processed else "skipped"
        item.events = len(result.events)
        item.errors = len(result.errors)
        item.time_seconds = round(time_seconds, 4)

        self._write_event({
            "event": "item_finish",
            "item_id": item_id,
            "status": item.status,
            "events": item.events,
            "errors": item.errors,
            "time_seconds": item.time_seconds,
        })

        if item.status == "processed":
            marker = "[green]+[/green]" if not item.errors else "[yellow]~[/yellow]"
            self._console_print(f"    {marker} {item_id}: {item.events} events", Verbosity.VERBOSE)
        else:
            self._console_print(f"    [dim]-[/dim] {item_id}: skipped", Verbosity.VERBOSE)

        for error in result.errors:
            self.item_error(error)

    def item_error(self, error: ItemError) -> None:
        if error.item_id is not None:
            self.run_log.get_or_create_item(error.item_id)
        self._write_event({"event": "item_error", **error.to_dict()})
        style = "red" if error.fatal else "yellow"
        self._console_print(
            f"      [{style}]![/{style}] {error.item_id}: {error.message}",
            Verbosity.DEBUG,
        )

    def item_failed(self, item_id: str, message: str) -> None:
        """A fatal error is about to propagate out of the run."""
        item = self.run_log.get_or_create_item(item_id)
        item.status = "failed"
        self.item_error(ItemError(item_id, message, kind="fatal", fatal=True))
        self.close()

    def close(self) -> None:
        """Close the log file if open."""
        if self._log_file is not None:
            self._log_file.close()
            self._log_file = None
