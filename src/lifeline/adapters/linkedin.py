"""Professional-network export — Positions / Education / Connections CSVs.

The files are tokenized with the delimited-text state machine.  Connections
exports open with a free-text notes preamble, so the header row is located
by looking for the expected column rather than assumed to be the first
record.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import PurePosixPath
from typing import Any

from lifeline.adapters.delimited import key_row, tokenize_lines
from lifeline.core.config import ImportOptions
from lifeline.core.errors import FieldError, FormatError
from lifeline.core.models import CanonicalEvent, EventSource, ImportResult, ItemError, Layer
from lifeline.dates import DAY_MONTH_YEAR, ISO_8601, MONTH_DAY_YEAR, MONTH_YEAR, YEAR_ONLY, resolve
from lifeline.validation import build_event, build_location, convert_records, slugify

logger = logging.getLogger(__name__)

DATE_CHAIN = (ISO_8601, MONTH_YEAR, DAY_MONTH_YEAR, MONTH_DAY_YEAR, YEAR_ONLY)

# kind -> column that must appear in the header row
HEADER_MARKERS = {
    "positions": "Company Name",
    "education": "School Name",
    "connections": "First Name",
}

# How far into a CSV to look for the header row
HEADER_SCAN_LINES = 20
HEADER_SCAN_BYTES = 8192

# Keys of a pre-parsed export object
OBJECT_KEYS = {"Positions": "positions", "Education": "education", "Connections": "connections"}


def kind_from_name(name: str) -> str | None:
    """Which export file this is, judged by its base name."""
    base = PurePosixPath(name.replace("\\", "/")).name.lower()
    if "position" in base or "experience" in base:
        return "positions"
    if "education" in base:
        return "education"
    if "connection" in base:
        return "connections"
    return None


def sniff_kind(name: str, head: str) -> str | None:
    """kind_from_name, confirmed by the export's header column in *head*.

    *head* is the start of the file; the header may follow a notes preamble.
    """
    kind = kind_from_name(name)
    if kind is None:
        return None
    marker = HEADER_MARKERS[kind]
    for line in head.splitlines()[:HEADER_SCAN_LINES]:
        if marker in (cell.strip().strip('"') for cell in line.split(",")):
            return kind
    return None


def _date(value: Any):
    if not isinstance(value, str) or not value.strip():
        return None
    return resolve(value, chain=DATE_CHAIN)


def _cell(row: dict[str, Any], key: str) -> str:
    value = row.get(key)
    return value.strip() if isinstance(value, str) else ""


def position_event(row: dict[str, Any], options: ImportOptions) -> CanonicalEvent | None:
    company = _cell(row, "Company Name")
    started = _cell(row, "Started On")
    if not company or not started:
        return None
    start = _date(started)
    if start is None:
        raise FieldError(f"Invalid start date: {started}")
    role = _cell(row, "Title")
    return build_event(
        title=f"{role} at {company}" if role else f"Worked at {company}",
        description=_cell(row, "Description") or None,
        start=start,
        end=_date(_cell(row, "Finished On")),
        layer=Layer.WORK,
        event_type="job",
        source=EventSource.LINKEDIN,
        source_id=f"li_position_{int(start.timestamp() * 1000)}_{slugify(company)}",
        location=build_location(name=_cell(row, "Location")),
        metadata={"company": company, "title": role or None},
        user_id=options.user_id,
    )


def education_event(row: dict[str, Any], options: ImportOptions) -> CanonicalEvent | None:
    school = _cell(row, "School Name")
    started = _cell(row, "Start Date")
    if not school or not started:
        return None
    start = _date(started)
    if start is None:
        raise FieldError(f"Invalid start date: {started}")
    degree = _cell(row, "Degree Name")
    return build_event(
        title=f"{degree} at {school}" if degree else f"Studied at {school}",
        description=_cell(row, "Notes") or None,
        start=start,
        end=_date(_cell(row, "End Date")),
        layer=Layer.EDUCATION,
        event_type="degree",
        source=EventSource.LINKEDIN,
        source_id=f"li_education_{int(start.timestamp() * 1000)}_{slugify(school)}",
        metadata={"school": school, "degree": degree or None},
        user_id=options.user_id,
    )


def connection_event(row: dict[str, Any], options: ImportOptions) -> CanonicalEvent | None:
    first = _cell(row, "First Name")
    connected = _cell(row, "Connected On")
    if not first or not connected:
        return None
    start = _date(connected)
    if start is None:
        raise FieldError(f"Invalid connection date: {connected}")
    name = " ".join(p for p in (first, _cell(row, "Last Name")) if p)
    company = _cell(row, "Company")
    position = _cell(row, "Position")
    return build_event(
        title=f"Connected with {name}",
        description=f"{position or 'Works'} at {company}" if company else None,
        start=start,
        layer=Layer.RELATIONSHIPS,
        event_type="connection",
        source=EventSource.LINKEDIN,
        source_id=f"li_conn_{int(start.timestamp() * 1000)}_{name.replace(' ', '_')}",
        metadata={"name": name, "company": company or None, "position": position or None},
        user_id=options.user_id,
    )


_CONVERTERS: dict[str, Callable[[dict[str, Any], ImportOptions], CanonicalEvent | None]] = {
    "positions": position_event,
    "education": education_event,
    "connections": connection_event,
}


def _convert_rows(
    rows: list[tuple[int, Any]],
    kind: str,
    item_id: str,
    options: ImportOptions,
    errors: list[ItemError],
) -> list[CanonicalEvent]:
    labelled = [(f"Row {number}", row) for number, row in rows if isinstance(row, dict)]
    return convert_records(labelled, _CONVERTERS[kind], item_id, options, errors)


def parse_linkedin_csv(
    text: str,
    item_id: str,
    *,
    kind: str | None = None,
    options: ImportOptions | None = None,
) -> ImportResult:
    """Parse one export CSV; *kind* defaults to a guess from *item_id*."""
    options = options or ImportOptions()
    kind = kind or kind_from_name(item_id)
    if kind not in _CONVERTERS:
        raise FormatError(f"Not a recognized professional-network export file: {item_id}", item_id=item_id)

    records = tokenize_lines(text)
    marker = HEADER_MARKERS[kind]
    header_index = next((i for i, (_, values) in enumerate(records) if marker in values), None)
    if header_index is None:
        raise FormatError(f'No header row with a "{marker}" column found', item_id=item_id)

    _, headers = records[header_index]
    rows = [(line, key_row(headers, values)) for line, values in records[header_index + 1 :]]
    errors: list[ItemError] = []
    events = _convert_rows(rows, kind, item_id, options, errors)
    logger.debug("%s: %s, %d rows, %d events", item_id, kind, len(rows), len(events))
    return ImportResult.for_item(events, errors)


def is_linkedin_export(data: Any) -> bool:
    return isinstance(data, dict) and any(isinstance(data.get(key), list) for key in OBJECT_KEYS)


def normalize_linkedin(
    data: Any,
    item_id: str = "linkedin.json",
    *,
    options: ImportOptions | None = None,
) -> ImportResult:
    """Pre-parsed ``{"Positions": [...], "Education": [...], "Connections": [...]}``."""
    options = options or ImportOptions()
    if not is_linkedin_export(data):
        raise FormatError("Object has no Positions, Education or Connections list", item_id=item_id)
    events: list[CanonicalEvent] = []
    errors: list[ItemError] = []
    for key, kind in OBJECT_KEYS.items():
        rows = data.get(key)
        if isinstance(rows, list):
            events.extend(_convert_rows(list(enumerate(rows, start=1)), kind, item_id, options, errors))
    return ImportResult.for_item(events, errors)
