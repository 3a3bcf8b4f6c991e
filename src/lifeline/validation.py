"""Validation and sanitization primitives shared by every parser.

All range checks, ceilings and required-field rules live here so each
parser applies identical limits.  ``build_event`` is the only sanctioned
way to create a CanonicalEvent.
"""

from __future__ import annotations

import hashlib
import math
import re
import uuid
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from lifeline.core.errors import FieldError, SizeError
from lifeline.core.models import (
    DEFAULT_LAYER,
    CanonicalEvent,
    EventSource,
    ItemError,
    Layer,
    Location,
    MediaRef,
)

if TYPE_CHECKING:
    from lifeline.core.config import ImportOptions

MAX_ITEM_BYTES = 50 * 1024 * 1024

MIN_YEAR = 1900
MAX_YEAR = 2100

MAX_TITLE_LENGTH = 500
MAX_DESCRIPTION_LENGTH = 10_000
MAX_LOCATION_NAME_LENGTH = 200
MAX_EVENT_TYPE_LENGTH = 50
MAX_SOURCE_ID_LENGTH = 500

ELLIPSIS = "..."

# Control characters except \t, \n and \r
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

_GPS_ZERO_EPSILON = 0.0001


# ---------------------------------------------------------------------------
# Calendar arithmetic
# ---------------------------------------------------------------------------


def is_leap_year(year: int) -> bool:
    """Gregorian 4/100/400 rule."""
    return (year % 4 == 0 and year % 100 != 0) or year % 400 == 0


def days_in_month(month: int, year: int) -> int:
    if month == 2:
        return 29 if is_leap_year(year) else 28
    if month in (4, 6, 9, 11):
        return 30
    return 31


def is_valid_year(year: int) -> bool:
    return isinstance(year, int) and MIN_YEAR <= year <= MAX_YEAR


def is_valid_month(month: int) -> bool:
    return isinstance(month, int) and 1 <= month <= 12


def is_valid_day(day: int, month: int, year: int) -> bool:
    if not isinstance(day, int) or not is_valid_month(month):
        return False
    return 1 <= day <= days_in_month(month, year)


def is_valid_time(hour: int, minute: int, second: int) -> bool:
    return 0 <= hour <= 23 and 0 <= minute <= 59 and 0 <= second <= 59


def make_datetime(
    year: int,
    month: int,
    day: int,
    hour: int = 0,
    minute: int = 0,
    second: int = 0,
    microsecond: int = 0,
) -> datetime | None:
    """Build a UTC datetime from components, or None if any is out of range.

    Never clamps or wraps: Feb 30 is rejected, not rolled into March.
    """
    if not is_valid_year(year) or not is_valid_day(day, month, year):
        return None
    if not is_valid_time(hour, minute, second):
        return None
    return datetime(year, month, day, hour, minute, second, microsecond, tzinfo=UTC)


def is_valid_datetime(value: datetime | None) -> bool:
    """True if *value* is a datetime whose year falls inside the window."""
    return isinstance(value, datetime) and is_valid_year(value.year)


def timestamp_to_datetime(timestamp: float, *, milliseconds: bool = False) -> datetime | None:
    """Convert a non-negative Unix timestamp to a UTC datetime inside the year window."""
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        return None
    if not math.isfinite(timestamp) or timestamp < 0:
        return None
    seconds = timestamp / 1000 if milliseconds else timestamp
    try:
        value = datetime.fromtimestamp(seconds, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None
    return value if is_valid_year(value.year) else None


# ---------------------------------------------------------------------------
# Coordinates
# ---------------------------------------------------------------------------


def is_valid_gps(latitude: Any, longitude: Any) -> bool:
    """Range check: latitude within +-90 and longitude within +-180."""
    if not _is_number(latitude) or not _is_number(longitude):
        return False
    return -90 <= latitude <= 90 and -180 <= longitude <= 180


def has_valid_gps(latitude: Any, longitude: Any) -> bool:
    """Range check plus rejection of the (0, 0) placeholder."""
    if not is_valid_gps(latitude, longitude):
        return False
    return not (abs(latitude) < _GPS_ZERO_EPSILON and abs(longitude) < _GPS_ZERO_EPSILON)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


# ---------------------------------------------------------------------------
# Size ceilings
# ---------------------------------------------------------------------------


def is_valid_size(size: int, limit: int = MAX_ITEM_BYTES) -> bool:
    return 0 <= size <= limit


def check_size(item_id: str, size: int, limit: int = MAX_ITEM_BYTES) -> None:
    """Raise SizeError if *size* exceeds *limit*."""
    if not is_valid_size(size, limit):
        raise SizeError(item_id, size, limit)


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------


def sanitize_text(value: Any) -> str:
    """Strip control characters, keeping tab, newline and carriage return."""
    if not isinstance(value, str) or not value:
        return ""
    return _CONTROL_CHARS_RE.sub("", value)


def truncate(value: str | None, max_length: int) -> str:
    """Cut *value* to *max_length* characters, ending in an ellipsis when cut."""
    if not value:
        return ""
    if len(value) <= max_length:
        return value
    if max_length <= len(ELLIPSIS):
        return value[:max_length]
    return value[: max_length - len(ELLIPSIS)] + ELLIPSIS


def clean_text(value: Any, max_length: int) -> str:
    """Sanitize, trim and truncate in one step."""
    return truncate(sanitize_text(value).strip(), max_length)


def slugify(value: str, max_length: int = 20) -> str:
    """ASCII-safe fragment for synthesized source ids."""
    return re.sub(r"[^a-zA-Z0-9]", "_", value[:max_length])


def stable_id(*parts: Any) -> str:
    """Deterministic short hash of *parts*, for source ids with no natural key."""
    digest = hashlib.sha256("\x1f".join(str(p) for p in parts).encode()).hexdigest()
    return digest[:16]


# ---------------------------------------------------------------------------
# Event construction
# ---------------------------------------------------------------------------


def build_location(
    latitude: Any = None,
    longitude: Any = None,
    name: Any = None,
    country: Any = None,
) -> Location | None:
    """Build a Location, dropping coordinates that are not jointly valid.

    Returns None when neither usable coordinates nor a name remain.
    """
    lat: float | None = None
    lon: float | None = None
    if has_valid_gps(latitude, longitude):
        lat, lon = float(latitude), float(longitude)
    clean_name = clean_text(name, MAX_LOCATION_NAME_LENGTH) or None
    clean_country = clean_text(country, MAX_LOCATION_NAME_LENGTH) or None
    if lat is None and clean_name is None:
        return None
    return Location(latitude=lat, longitude=lon, name=clean_name, country=clean_country)


def build_event(
    *,
    title: Any,
    start: datetime | None,
    source: EventSource,
    event_type: str,
    layer: Layer | None = None,
    description: Any = None,
    end: datetime | None = None,
    source_id: str | None = None,
    location: Location | None = None,
    media: list[MediaRef] | tuple[MediaRef, ...] | None = None,
    metadata: dict[str, Any] | None = None,
    user_id: str | None = None,
    title_max: int = MAX_TITLE_LENGTH,
) -> CanonicalEvent:
    """Validate, sanitize and assemble a CanonicalEvent.

    Raises FieldError when a required field (title, start) is missing or
    invalid.  Optional fields that fail validation are dropped rather than
    failing the event: an end before the start, or outside the year window,
    simply becomes None.
    """
    clean_title = clean_text(title, title_max)
    if not clean_title:
        raise FieldError("Missing title")
    if not is_valid_datetime(start):
        raise FieldError(f"Invalid start date: {start!r}")
    if start.tzinfo is None:
        start = start.replace(tzinfo=UTC)

    if end is not None:
        if end.tzinfo is None:
            end = end.replace(tzinfo=UTC)
        if not is_valid_datetime(end) or end < start:
            end = None

    clean_description = clean_text(description, MAX_DESCRIPTION_LENGTH) or None
    clean_type = clean_text(event_type, MAX_EVENT_TYPE_LENGTH) or "event"

    if source_id:
        clean_source_id = truncate(sanitize_text(str(source_id)), MAX_SOURCE_ID_LENGTH)
    else:
        clean_source_id = f"{source.value}_{stable_id(clean_title, start.isoformat(), clean_type)}"

    if metadata:
        metadata = {k: v for k, v in metadata.items() if v is not None}

    return CanonicalEvent(
        id=str(uuid.uuid4()),
        user_id=user_id,
        title=clean_title,
        description=clean_description,
        start=start,
        end=end,
        layer=layer or DEFAULT_LAYER,
        event_type=clean_type,
        source=source,
        source_id=clean_source_id,
        location=location,
        media=tuple(media or ()),
        metadata=dict(metadata or {}),
    )


def convert_records(
    records: Iterable[tuple[str, Any]],
    convert: Callable[[Any, ImportOptions], CanonicalEvent | None],
    item_id: str,
    options: ImportOptions,
    errors: list[ItemError],
) -> list[CanonicalEvent]:
    """Convert labelled records; a FieldError drops only that record.

    Each error message is prefixed with the record's label, such as
    ``"Row 4"`` or ``"post 2"``.  A converter returning None skips the
    record without an error.
    """
    events: list[CanonicalEvent] = []
    for label, record in records:
        try:
            event = convert(record, options)
        except FieldError as exc:
            errors.append(ItemError(item_id, f"{label}: {exc.message}", kind=exc.kind))
            continue
        if event is not None:
            events.append(event)
    return events
