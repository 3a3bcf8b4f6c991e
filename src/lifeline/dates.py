"""Date resolution: an ordered chain of dialect recognizers.

Each recognizer is a structural test (a regular expression over the whole
value) plus an extractor that validates calendar components.  Recognizers
are independent of one another: the first one that both matches and yields
a valid timestamp wins, so adding a dialect cannot change how another one
behaves.

Timestamps are timezone-aware.  Values without a zone are interpreted as
UTC; values with an explicit offset keep that offset, so the calendar date
written in the input is the calendar date of the result.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta, timezone
from typing import Any

from lifeline.core.errors import FieldError
from lifeline.validation import (
    is_valid_datetime,
    is_valid_year,
    make_datetime,
    timestamp_to_datetime,
)

MONTH_NAMES: dict[str, int] = {
    "jan": 1, "january": 1,
    "feb": 2, "february": 2,
    "mar": 3, "march": 3,
    "apr": 4, "april": 4,
    "may": 5,
    "jun": 6, "june": 6,
    "jul": 7, "july": 7,
    "aug": 8, "august": 8,
    "sep": 9, "sept": 9, "september": 9,
    "oct": 10, "october": 10,
    "nov": 11, "november": 11,
    "dec": 12, "december": 12,
}

# Epoch values above this are milliseconds (a 10-digit seconds value tops out here)
EPOCH_MS_THRESHOLD = 9_999_999_999

DATE_ORDERS = ("MDY", "DMY")


@dataclass(frozen=True)
class DateOptions:
    """Caller preferences for ambiguous dialects.

    ``date_order`` decides how ``01/02/2024`` is read; it is never guessed
    from the data.
    """

    date_order: str = "MDY"

    def __post_init__(self):
        if self.date_order not in DATE_ORDERS:
            raise ValueError(f"date_order must be one of {DATE_ORDERS}, got {self.date_order!r}")


DEFAULT_OPTIONS = DateOptions()

Extractor = Callable[[re.Match[str], DateOptions], "datetime | None"]


@dataclass(frozen=True)
class Recognizer:
    """One date dialect: a full-match pattern and a component extractor."""

    name: str
    pattern: re.Pattern[str]
    extract: Extractor

    def __call__(self, text: str, options: DateOptions = DEFAULT_OPTIONS) -> datetime | None:
        match = self.pattern.fullmatch(text)
        if match is None:
            return None
        return self.extract(match, options)


# ---------------------------------------------------------------------------
# Component helpers
# ---------------------------------------------------------------------------


def _int(value: str | None, default: int = 0) -> int:
    return int(value) if value else default


def _fraction_to_micros(fraction: str | None) -> int:
    if not fraction:
        return 0
    return int(fraction[:6].ljust(6, "0"))


def _parse_offset(zone: str | None) -> timezone | None:
    """'Z', '+05:30', '-0800' -> timezone; None when absent or malformed."""
    if not zone:
        return None
    if zone in ("Z", "z"):
        return UTC
    sign = -1 if zone[0] == "-" else 1
    digits = zone[1:].replace(":", "")
    hours, minutes = int(digits[:2]), int(digits[2:])
    if hours > 23 or minutes > 59:
        return None
    return timezone(sign * timedelta(hours=hours, minutes=minutes))


def _month_from_name(name: str) -> int | None:
    return MONTH_NAMES.get(name.lower().rstrip("."))


# ---------------------------------------------------------------------------
# Extractors
# ---------------------------------------------------------------------------


def _extract_iso(match: re.Match[str], options: DateOptions) -> datetime | None:
    year, month, day, hour, minute, second, fraction, zone = match.groups()
    value = make_datetime(
        int(year), int(month), int(day),
        _int(hour), _int(minute), _int(second),
        _fraction_to_micros(fraction),
    )
    if value is None:
        return None
    if zone:
        tz = _parse_offset(zone)
        if tz is None:
            return None
        value = value.replace(tzinfo=tz)
    return value


def _extract_slash(match: re.Match[str], options: DateOptions) -> datetime | None:
    first, second, year = (int(g) for g in match.groups())
    if options.date_order == "MDY":
        month, day = first, second
    else:
        day, month = first, second
    return make_datetime(year, month, day)


def _extract_ymd(match: re.Match[str], options: DateOptions) -> datetime | None:
    year, month, day = (int(g) for g in match.groups())
    return make_datetime(year, month, day)


def _extract_dmy(match: re.Match[str], options: DateOptions) -> datetime | None:
    day, month, year = (int(g) for g in match.groups())
    return make_datetime(year, month, day)


def _extract_month_year(match: re.Match[str], options: DateOptions) -> datetime | None:
    name, year = match.groups()
    month = _month_from_name(name)
    if month is None:
        return None
    return make_datetime(int(year), month, 1)


def _extract_day_month_year(match: re.Match[str], options: DateOptions) -> datetime | None:
    day, name, year = match.groups()
    month = _month_from_name(name)
    if month is None:
        return None
    return make_datetime(int(year), month, int(day))


def _extract_month_day_year(match: re.Match[str], options: DateOptions) -> datetime | None:
    name, day, year = match.groups()
    month = _month_from_name(name)
    if month is None:
        return None
    return make_datetime(int(year), month, int(day))


def _extract_year(match: re.Match[str], options: DateOptions) -> datetime | None:
    return make_datetime(int(match.group(1)), 1, 1)


def _extract_exif(match: re.Match[str], options: DateOptions) -> datetime | None:
    year, month, day, hour, minute, second = (int(g) for g in match.groups())
    return make_datetime(year, month, day, hour, minute, second)


def _extract_ical(match: re.Match[str], options: DateOptions) -> datetime | None:
    year, month, day, hour, minute, second, _utc = match.groups()
    # Floating and UTC values both resolve to UTC
    return make_datetime(int(year), int(month), int(day), _int(hour), _int(minute), _int(second))


def _extract_epoch(match: re.Match[str], options: DateOptions) -> datetime | None:
    return resolve_epoch(float(match.group(0)) if "." in match.group(0) else int(match.group(0)))


# ---------------------------------------------------------------------------
# Recognizers
# ---------------------------------------------------------------------------

ISO_8601 = Recognizer(
    "iso8601",
    re.compile(
        r"(\d{4})-(\d{2})-(\d{2})"
        r"(?:[T ](\d{2}):(\d{2})(?::(\d{2})(?:\.(\d{1,9}))?)?(Z|z|[+-]\d{2}:?\d{2})?)?"
    ),
    _extract_iso,
)
SLASH = Recognizer("slash", re.compile(r"(\d{1,2})/(\d{1,2})/(\d{4})"), _extract_slash)
YMD_DASH_DOT = Recognizer("ymd_dash_dot", re.compile(r"(\d{4})[-.](\d{1,2})[-.](\d{1,2})"), _extract_ymd)
DMY_DASH_DOT = Recognizer("dmy_dash_dot", re.compile(r"(\d{1,2})[-.](\d{1,2})[-.](\d{4})"), _extract_dmy)
MONTH_YEAR = Recognizer("month_year", re.compile(r"([A-Za-z]+\.?)\s+(\d{4})"), _extract_month_year)
DAY_MONTH_YEAR = Recognizer(
    "day_month_year", re.compile(r"(\d{1,2})\s+([A-Za-z]+\.?),?\s+(\d{4})"), _extract_day_month_year
)
MONTH_DAY_YEAR = Recognizer(
    "month_day_year", re.compile(r"([A-Za-z]+\.?)\s+(\d{1,2}),?\s+(\d{4})"), _extract_month_day_year
)
YEAR_ONLY = Recognizer("year_only", re.compile(r"(\d{4})"), _extract_year)
EXIF = Recognizer(
    "exif", re.compile(r"(\d{4}):(\d{2}):(\d{2}) (\d{2}):(\d{2}):(\d{2})(?:\.\d*)?\s*"), _extract_exif
)
ICAL_COMPACT = Recognizer(
    "ical_compact",
    re.compile(r"(\d{4})(\d{2})(\d{2})(?:T(\d{2})(\d{2})(\d{2})(Z)?)?"),
    _extract_ical,
)
EPOCH = Recognizer("epoch", re.compile(r"\d{9,13}(?:\.\d+)?"), _extract_epoch)

DEFAULT_CHAIN: tuple[Recognizer, ...] = (
    ISO_8601,
    ICAL_COMPACT,
    EXIF,
    SLASH,
    YMD_DASH_DOT,
    DMY_DASH_DOT,
    MONTH_YEAR,
    DAY_MONTH_YEAR,
    MONTH_DAY_YEAR,
    YEAR_ONLY,
    EPOCH,
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def first_match(
    text: str,
    recognizers: Iterable[Recognizer],
    options: DateOptions = DEFAULT_OPTIONS,
) -> datetime | None:
    """Run *recognizers* in order; the first valid result wins."""
    for recognizer in recognizers:
        value = recognizer(text, options)
        if value is not None:
            return value
    return None


def resolve(
    value: Any,
    options: DateOptions | None = None,
    *,
    chain: Iterable[Recognizer] = DEFAULT_CHAIN,
) -> datetime | None:
    """Resolve *value* to a validated timestamp, or None.

    Accepts strings in any supported dialect, numeric epoch values
    (seconds or milliseconds) and datetime/date instances.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value if is_valid_datetime(value) else None
    if isinstance(value, date):
        return make_datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)):
        return resolve_epoch(value)
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    return first_match(text, chain, options or DEFAULT_OPTIONS)


def require(value: Any, options: DateOptions | None = None, *, field: str = "date") -> datetime:
    """Like resolve() but raise FieldError on failure."""
    result = resolve(value, options)
    if result is None:
        raise FieldError(f"Invalid {field}: {value}")
    return result


def resolve_epoch(value: Any) -> datetime | None:
    """Unix epoch in seconds or milliseconds, distinguished by magnitude."""
    if isinstance(value, str):
        text = value.strip()
        try:
            value = float(text) if "." in text else int(text)
        except ValueError:
            return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return timestamp_to_datetime(value, milliseconds=value > EPOCH_MS_THRESHOLD)


def resolve_epoch_micros(value: Any) -> datetime | None:
    """Epoch in microseconds, as used by note exports."""
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return timestamp_to_datetime(value / 1000, milliseconds=True)


def resolve_exif(text: Any) -> datetime | None:
    """Embedded-metadata dialect: ``YYYY:MM:DD HH:MM:SS``."""
    if not isinstance(text, str):
        return None
    return EXIF(text.strip().rstrip("\x00"))


def resolve_ical(value: Any, *, date_only: bool = False) -> datetime | None:
    """Calendar-text compact dialect: ``YYYYMMDD`` or ``YYYYMMDDTHHMMSS[Z]``.

    With *date_only*, any time part is ignored.
    """
    if not isinstance(value, str):
        return None
    text = value.strip()
    if date_only:
        text = text[:8]
    return ICAL_COMPACT(text)


def best_of(*candidates: datetime | None) -> datetime | None:
    """First candidate that is present and inside the year window."""
    for candidate in candidates:
        if is_valid_datetime(candidate):
            return candidate
    return None


# ---------------------------------------------------------------------------
# Path-embedded dates (low confidence fallback)
# ---------------------------------------------------------------------------

_PATH_DATETIME_PATTERNS: tuple[re.Pattern[str], ...] = (
    # 2023-01-15, 2023_01_15, optionally followed by a time
    re.compile(
        r"(?<!\d)(\d{4})[-_](\d{2})[-_](\d{2})(?:[-_T ](\d{2})[-_:.](\d{2})(?:[-_:.](\d{2}))?)?(?!\d)"
    ),
    # IMG_20230115_123045, PXL_20230115...
    re.compile(r"(?:IMG|VID|PXL|PANO|Screenshot)[-_](\d{4})(\d{2})(\d{2})(?:[-_](\d{2})(\d{2})(\d{2}))?", re.I),
    # 20230115_123045
    re.compile(r"(?<!\d)(\d{4})(\d{2})(\d{2})_(\d{2})(\d{2})(\d{2})(?!\d)"),
)
_PATH_YEAR_MONTH = re.compile(r"(?<!\d)(\d{4})[-_](\d{2})(?:[-_/]|$)")
_PATH_PHOTOS_FROM_YEAR = re.compile(r"photos from (\d{4})", re.I)
_PATH_YEAR_FOLDER = re.compile(r"/(\d{4})/")
_PATH_EPOCH_PATTERNS = (
    re.compile(r"(?<!\d)(\d{13})(?!\d)"),
    re.compile(r"(?<!\d)(\d{10})(?!\d)"),
)


def date_from_path(path: str | None) -> datetime | None:
    """Scan a file path for a date fragment.

    Used only when no authoritative timestamp field exists.
    """
    if not path:
        return None
    path = path.replace("\\", "/")

    for pattern in _PATH_DATETIME_PATTERNS:
        for match in pattern.finditer(path):
            year, month, day = (int(g) for g in match.groups()[:3])
            hour, minute, second = (_int(g) for g in match.groups()[3:6])
            value = make_datetime(year, month, day, hour, minute, second)
            if value is None:
                value = make_datetime(year, month, day)
            if value is not None:
                return value

    for match in _PATH_YEAR_MONTH.finditer(path):
        value = make_datetime(int(match.group(1)), int(match.group(2)), 1)
        if value is not None:
            return value

    for pattern in (_PATH_PHOTOS_FROM_YEAR, _PATH_YEAR_FOLDER):
        match = pattern.search(path)
        if match and is_valid_year(int(match.group(1))):
            return make_datetime(int(match.group(1)), 1, 1)

    for pattern in _PATH_EPOCH_PATTERNS:
        for match in pattern.finditer(path):
            value = resolve_epoch(int(match.group(1)))
            if value is not None:
                return value

    return None
