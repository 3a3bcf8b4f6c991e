"""Calendar-text parser — iCalendar (.ics) → canonical events.

Parsing runs in three passes: unfold continuation lines, split each
logical line into name/parameters/value, then walk BEGIN/END markers to
collect VEVENT records.  A record that is re-opened before it is closed,
or still open at end of input, is discarded whole.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from lifeline.core.config import ImportOptions
from lifeline.core.errors import FieldError, FormatError
from lifeline.core.models import CanonicalEvent, EventSource, ImportResult, ItemError, Layer
from lifeline.dates import resolve_ical
from lifeline.validation import build_event, build_location, check_size, convert_records

logger = logging.getLogger(__name__)

MAX_LINE_LENGTH = 100_000
MAX_EVENTS = 50_000
MAX_PROPERTY_LENGTH = 50_000

_ESCAPE_RE = re.compile(r"\\([nN,;\\])")
_UNESCAPED_COMMA_RE = re.compile(r"(?<!\\),")
_MAILTO_RE = re.compile(r"^mailto:", re.IGNORECASE)


@dataclass(frozen=True)
class ContentLine:
    """One logical line: ``NAME;PARAM=VALUE:value``."""

    name: str
    params: dict[str, str]
    value: str


@dataclass
class VEvent:
    """Raw VEVENT properties, before validation."""

    uid: str | None = None
    summary: str | None = None
    description: str | None = None
    location: str | None = None
    dtstart: str | None = None
    dtstart_params: dict[str, str] = field(default_factory=dict)
    dtend: str | None = None
    dtend_params: dict[str, str] = field(default_factory=dict)
    rrule: str | None = None
    categories: list[str] = field(default_factory=list)
    status: str | None = None
    organizer: str | None = None
    attendees: list[str] = field(default_factory=list)
    geo: str | None = None


def unfold(text: str) -> list[str]:
    """Join continuation lines onto their logical line.

    A physical line starting with one space or tab continues the previous
    line; that single indicator character is removed and nothing else is
    inserted.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    lines: list[str] = []
    for physical in text.split("\n"):
        if physical[:1] in (" ", "\t") and lines:
            lines[-1] += physical[1:]
        else:
            lines.append(physical)
    return lines


def unescape(value: str) -> str:
    """Single-pass unescape of ``\\n \\N \\, \\; \\\\``."""

    def replace(match: re.Match[str]) -> str:
        ch = match.group(1)
        return "\n" if ch in "nN" else ch

    return _ESCAPE_RE.sub(replace, value)


def _split_outside_quotes(text: str, sep: str) -> list[str]:
    parts: list[str] = []
    current: list[str] = []
    quoted = False
    for ch in text:
        if ch == '"':
            quoted = not quoted
            current.append(ch)
        elif ch == sep and not quoted:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    parts.append("".join(current))
    return parts


def split_content_line(line: str) -> ContentLine | None:
    """Split at the first colon outside a quoted parameter value."""
    quoted = False
    colon = -1
    for index, ch in enumerate(line):
        if ch == '"':
            quoted = not quoted
        elif ch == ":" and not quoted:
            colon = index
            break
    if colon <= 0:
        return None

    head, value = line[:colon], line[colon + 1 :]
    name, *raw_params = _split_outside_quotes(head, ";")
    params: dict[str, str] = {}
    for raw in raw_params:
        key, _, param_value = raw.partition("=")
        params[key.strip().upper()] = param_value.strip().strip('"')
    return ContentLine(name=name.strip().upper(), params=params, value=value)


def parse_calendar(text: str) -> tuple[list[VEvent], list[str]]:
    """Collect VEVENT records and diagnostics from calendar text."""
    events: list[VEvent] = []
    diagnostics: list[str] = []
    current: VEvent | None = None
    nested = 0

    for line in unfold(text):
        if len(line) > MAX_LINE_LENGTH:
            diagnostics.append(f"Line exceeds maximum length of {MAX_LINE_LENGTH:,} characters")
            continue
        stripped = line.strip()
        if not stripped:
            continue
        upper = stripped.upper()

        if upper == "BEGIN:VEVENT":
            if current is not None:
                diagnostics.append("Discarded VEVENT that was re-opened before END:VEVENT")
            if len(events) >= MAX_EVENTS:
                diagnostics.append(f"Calendar exceeds maximum event limit of {MAX_EVENTS:,}")
                current = None
                break
            current = VEvent()
            nested = 0
            continue

        if upper == "END:VEVENT":
            if current is not None and nested:
                diagnostics.append("Discarded VEVENT that ended inside an unclosed nested component")
            elif current is not None:
                events.append(current)
            current = None
            nested = 0
            continue

        if current is None:
            continue
        if upper.startswith("BEGIN:"):
            nested += 1
            continue
        if upper.startswith("END:"):
            nested = max(nested - 1, 0)
            continue
        if nested:
            continue

        content = split_content_line(stripped)
        if content is not None:
            _apply_property(current, content)

    if current is not None:
        diagnostics.append("Discarded VEVENT without END:VEVENT")
    return events, diagnostics


def _apply_property(event: VEvent, content: ContentLine) -> None:
    raw = content.value[:MAX_PROPERTY_LENGTH]
    name = content.name
    if name == "UID":
        event.uid = raw.strip()
    elif name == "SUMMARY":
        event.summary = unescape(raw)
    elif name == "DESCRIPTION":
        event.description = unescape(raw)
    elif name == "LOCATION":
        event.location = unescape(raw)
    elif name == "DTSTART":
        event.dtstart, event.dtstart_params = raw.strip(), content.params
    elif name == "DTEND":
        event.dtend, event.dtend_params = raw.strip(), content.params
    elif name == "RRULE":
        event.rrule = raw.strip()
    elif name == "CATEGORIES":
        event.categories.extend(
            c for c in (unescape(p).strip() for p in _UNESCAPED_COMMA_RE.split(raw)) if c
        )
    elif name == "STATUS":
        event.status = raw.strip().upper()
    elif name == "ORGANIZER":
        event.organizer = _MAILTO_RE.sub("", raw.strip())
    elif name == "ATTENDEE":
        event.attendees.append(_MAILTO_RE.sub("", raw.strip()))
    elif name == "GEO":
        event.geo = raw.strip()


def _is_date_only(value: str, params: dict[str, str]) -> bool:
    return params.get("VALUE", "").upper() == "DATE" or (len(value) == 8 and value.isdigit())


def _parse_geo(geo: str | None) -> tuple[float | None, float | None]:
    if not geo:
        return None, None
    lat, _, lon = geo.partition(";")
    try:
        return float(lat), float(lon)
    except ValueError:
        return None, None


def vevent_to_event(vevent: VEvent, options: ImportOptions) -> CanonicalEvent | None:
    """Convert one record; None for cancelled entries or missing required fields."""
    if vevent.status == "CANCELLED":
        return None
    if not vevent.summary or not vevent.summary.strip() or not vevent.dtstart:
        return None

    all_day = _is_date_only(vevent.dtstart, vevent.dtstart_params)
    start = resolve_ical(vevent.dtstart, date_only=all_day)
    if start is None:
        raise FieldError(f"Invalid start date: {vevent.dtstart}")
    end = None
    if vevent.dtend:
        end = resolve_ical(vevent.dtend, date_only=_is_date_only(vevent.dtend, vevent.dtend_params))

    lat, lon = _parse_geo(vevent.geo)
    location = build_location(lat, lon, name=vevent.location)

    layer = None
    for category in vevent.categories:
        layer = Layer.parse(category)
        if layer is not None:
            break
    if layer is None:
        layer = options.classify(
            title=vevent.summary,
            description=vevent.description,
            location=vevent.location,
            has_location=location is not None,
        ).layer

    if vevent.rrule:
        event_type = "recurring_event"
    elif all_day:
        event_type = "all_day_event"
    else:
        event_type = "event"

    return build_event(
        title=vevent.summary,
        description=vevent.description,
        start=start,
        end=end,
        layer=layer,
        event_type=event_type,
        source=EventSource.ICAL,
        source_id=vevent.uid or None,
        location=location,
        metadata={
            "all_day": all_day,
            "recurring": bool(vevent.rrule),
            "rrule": vevent.rrule,
            "categories": list(vevent.categories) or None,
            "status": vevent.status,
            "organizer": vevent.organizer,
            "attendees": list(vevent.attendees) or None,
            "tzid": vevent.dtstart_params.get("TZID"),
        },
        user_id=options.user_id,
    )


def parse_ical(
    text: str,
    item_id: str = "calendar.ics",
    *,
    options: ImportOptions | None = None,
) -> ImportResult:
    """Parse calendar text into events.

    The whole item is size-checked before any parsing starts.
    """
    options = options or ImportOptions()
    check_size(item_id, len(text.encode("utf-8")), options.max_item_bytes)

    upper = text.upper()
    if "BEGIN:VCALENDAR" not in upper and "BEGIN:VEVENT" not in upper:
        raise FormatError("Not a calendar file: no BEGIN:VCALENDAR or BEGIN:VEVENT", item_id=item_id)

    records, diagnostics = parse_calendar(text)
    errors = [ItemError(item_id, message, kind="field") for message in diagnostics]
    labelled = [(record.uid or record.summary or "VEVENT", record) for record in records]
    events = convert_records(labelled, vevent_to_event, item_id, options, errors)

    logger.debug("%s: %d VEVENTs, %d events", item_id, len(records), len(events))
    return ImportResult.for_item(events, errors)
