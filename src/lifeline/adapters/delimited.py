"""Delimited-text parser — comma-separated tables → canonical events.

The tokenizer is a character-level state machine over the whole text, so a
quoted field may contain commas, doubled quotes and line breaks.  An
unterminated quoted field is a hard failure for the item rather than a
silently truncated row.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from lifeline.core.config import ImportOptions
from lifeline.core.errors import DelimitedParseError, FieldError, FormatError
from lifeline.core.models import CanonicalEvent, EventSource, ImportResult, ItemError, Layer
from lifeline.dates import resolve
from lifeline.validation import build_event, convert_records

logger = logging.getLogger(__name__)

MAX_ROWS = 100_000
MAX_COLUMNS = 1000
MAX_CELL_LENGTH = 100_000

# Header synonyms per canonical field, tried in order
TITLE_HEADERS = ("title", "name", "event", "subject", "summary")
START_HEADERS = ("date", "start", "start_date", "startdate", "started", "when", "timestamp")
DESCRIPTION_HEADERS = ("description", "desc", "details", "notes", "content", "body")
END_HEADERS = ("end", "end_date", "enddate", "ended", "finish", "finished")
LAYER_HEADERS = ("layer", "type", "category", "kind")
EVENT_TYPE_HEADERS = ("event_type", "eventtype", "subtype")

DEFAULT_EVENT_TYPE = "custom"


class _State(Enum):
    UNQUOTED = "unquoted"
    QUOTED = "quoted"
    QUOTE_PENDING = "quote_pending"


def tokenize_lines(
    text: str,
    *,
    max_rows: int = MAX_ROWS,
    max_columns: int = MAX_COLUMNS,
    max_cell_length: int = MAX_CELL_LENGTH,
) -> list[tuple[int, list[str]]]:
    """Split delimited text into records of trimmed field values.

    Each record is paired with the physical line it starts on, which
    differs from its position once a quoted cell spans lines or blank
    lines are skipped.  Raises DelimitedParseError for an unclosed quote
    or when a row, column or cell ceiling is exceeded.
    """
    if text.startswith("\ufeff"):
        text = text[1:]
    text = text.replace("\r\n", "\n").replace("\r", "\n")

    records: list[tuple[int, list[str]]] = []
    record: list[str] = []
    chars: list[str] = []
    state = _State.UNQUOTED
    line = 1
    record_line = 1

    def end_field() -> None:
        if len(chars) > max_cell_length:
            raise DelimitedParseError(
                f"Cell value exceeds maximum length of {max_cell_length:,} characters",
                record_line,
                len(record) + 1,
            )
        record.append("".join(chars).strip())
        chars.clear()
        if len(record) > max_columns:
            raise DelimitedParseError(
                f"CSV exceeds maximum column limit of {max_columns} columns", record_line
            )

    def end_record() -> None:
        nonlocal record
        end_field()
        if not (len(record) == 1 and record[0] == ""):
            if len(records) >= max_rows + 1:
                raise DelimitedParseError(f"CSV exceeds maximum row limit of {max_rows:,} rows")
            records.append((record_line, record))
        record = []

    i = 0
    length = len(text)
    while i < length:
        ch = text[i]
        if state is _State.QUOTED:
            if ch == '"':
                state = _State.QUOTE_PENDING
            else:
                if ch == "\n":
                    line += 1
                chars.append(ch)
            i += 1
            continue

        if state is _State.QUOTE_PENDING:
            if ch == '"':
                # Doubled quote is a literal quote
                chars.append('"')
                state = _State.QUOTED
                i += 1
                continue
            state = _State.UNQUOTED
            # Reprocess this character as unquoted

        if ch == '"':
            state = _State.QUOTED
        elif ch == ",":
            end_field()
        elif ch == "\n":
            end_record()
            line += 1
            record_line = line
        else:
            chars.append(ch)
        i += 1

    if state is _State.QUOTED:
        raise DelimitedParseError("Unclosed quote in CSV line", record_line)
    if chars or record:
        end_record()
    return records


def tokenize(text: str, **limits: int) -> list[list[str]]:
    """Records of trimmed field values, without line numbers."""
    return [values for _, values in tokenize_lines(text, **limits)]


def key_row(headers: list[str], values: list[str]) -> dict[str, str]:
    """Key *values* by *headers*, backfilling short rows and dropping extras."""
    return {h: (values[j] if j < len(values) else "") for j, h in enumerate(headers)}


def parse_rows(text: str) -> tuple[list[str], list[tuple[int, dict[str, str]]]]:
    """Tokenize and key each data row by the header row.

    Returns the header and a ``(line, row)`` pair per data row.  Empty
    text yields an empty header.
    """
    records = tokenize_lines(text)
    if not records:
        return [], []
    _, headers = records[0]
    return headers, [(line, key_row(headers, values)) for line, values in records[1:]]


@dataclass(frozen=True)
class CSVMapping:
    """Header names for each canonical field."""

    title: str
    start: str
    description: str | None = None
    end: str | None = None
    layer: str | None = None
    event_type: str | None = None

    def columns(self) -> list[str]:
        return [c for c in (self.title, self.start, self.description, self.end, self.layer, self.event_type) if c]


def _find_header(headers: list[str], synonyms: tuple[str, ...]) -> str | None:
    lowered = [h.strip().lower() for h in headers]
    for index, header in enumerate(lowered):
        if header in synonyms:
            return headers[index]
    return None


def detect_mapping(headers: list[str]) -> CSVMapping:
    """Match header names against the synonym tables.

    Raises FormatError naming the missing field when no title-like or
    date-like column exists.
    """
    title = _find_header(headers, TITLE_HEADERS)
    if title is None:
        raise FormatError(
            "Could not auto-detect column mapping: no title column "
            f"(expected one of: {', '.join(TITLE_HEADERS)})"
        )
    start = _find_header(headers, START_HEADERS)
    if start is None:
        raise FormatError(
            "Could not auto-detect column mapping: no date column "
            f"(expected one of: {', '.join(START_HEADERS)})"
        )
    return CSVMapping(
        title=title,
        start=start,
        description=_find_header(headers, DESCRIPTION_HEADERS),
        end=_find_header(headers, END_HEADERS),
        layer=_find_header(headers, LAYER_HEADERS),
        event_type=_find_header(headers, EVENT_TYPE_HEADERS),
    )


def row_to_event(
    row: dict[str, str],
    mapping: CSVMapping,
    index: int,
    options: ImportOptions,
) -> CanonicalEvent | None:
    """Convert one keyed row; None when the title or date cell is blank.

    Raises FieldError for an unparseable start date or an unknown layer.
    """
    title = row.get(mapping.title, "").strip()
    if not title:
        return None
    start_text = row.get(mapping.start, "").strip()
    if not start_text:
        return None

    date_options = options.date_options
    start = resolve(start_text, date_options)
    if start is None:
        raise FieldError(f"Invalid start date: {start_text}")

    end = None
    if mapping.end:
        end = resolve(row.get(mapping.end, "").strip(), date_options)

    description = row.get(mapping.description, "").strip() if mapping.description else ""

    layer_text = row.get(mapping.layer, "").strip() if mapping.layer else ""
    if layer_text:
        layer = Layer.parse(layer_text)
        if layer is None:
            raise FieldError(f"Invalid layer: {layer_text}")
    else:
        layer = options.classify(title=title, description=description).layer

    event_type = DEFAULT_EVENT_TYPE
    if mapping.event_type:
        event_type = row.get(mapping.event_type, "").strip() or DEFAULT_EVENT_TYPE

    return build_event(
        title=title,
        description=description or None,
        start=start,
        end=end,
        layer=layer,
        event_type=event_type,
        source=EventSource.CSV,
        source_id=f"csv_{index}_{int(start.timestamp() * 1000)}",
        metadata={"original_row": dict(row)},
        user_id=options.user_id,
    )


def parse_delimited(
    text: str,
    item_id: str = "csv",
    *,
    mapping: CSVMapping | None = None,
    options: ImportOptions | None = None,
) -> ImportResult:
    """Parse a delimited table into events.

    With no *mapping*, columns are detected from the header row.  A bad
    row is reported and dropped while its siblings continue.
    """
    options = options or ImportOptions()
    headers, rows = parse_rows(text)
    if not rows:
        raise FormatError("No data rows found", item_id=item_id)

    if mapping is None:
        mapping = detect_mapping(headers)
    else:
        missing = [c for c in mapping.columns() if c not in headers]
        if missing:
            raise FormatError(f"Mapped column not found in header: {', '.join(missing)}", item_id=item_id)

    def convert(indexed: tuple[int, dict[str, str]], options: ImportOptions) -> CanonicalEvent | None:
        index, row = indexed
        return row_to_event(row, mapping, index, options)

    errors: list[ItemError] = []
    labelled = [(f"Row {line}", (index, row)) for index, (line, row) in enumerate(rows)]
    events = convert_records(labelled, convert, item_id, options, errors)

    logger.debug("%s: %d rows, %d events, %d errors", item_id, len(rows), len(events), len(errors))
    return ImportResult.for_item(events, errors)
