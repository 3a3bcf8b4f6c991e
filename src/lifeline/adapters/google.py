"""Location/calendar/notes export normalizer — Takeout-style JSON → events.

Accepted top-level shapes form a closed set of variants, chosen by probing
the structure once at the boundary:

- a single note or a list of notes (microsecond timestamps)
- location history under one of several historical container keys
- calendar items, as a bare list or under ``items``
- a combined object with ``locations`` / ``calendar`` / ``keep``
- a photo sidecar (``photoTakenTime`` / ``creationTime``)

Anything else is a FormatError for the item.  Individual records that lack
a required field or timestamp are skipped, not reported.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import PurePosixPath
from typing import Any

from lifeline.core.config import ImportOptions
from lifeline.core.errors import FormatError
from lifeline.core.models import CanonicalEvent, EventSource, ImportResult, ItemError, Layer, MediaRef
from lifeline.dates import date_from_path, resolve, resolve_epoch, resolve_epoch_micros
from lifeline.validation import (
    build_event,
    build_location,
    convert_records,
    has_valid_gps,
    make_datetime,
    slugify,
)

logger = logging.getLogger(__name__)

MAX_LOCATIONS = 100_000
MAX_CALENDAR_ITEMS = 50_000
MAX_NOTES = 10_000
MAX_CHECKLIST_ITEMS = 1000
MAX_LABELS = 50
NOTE_TITLE_FROM_TEXT = 100

CHECKED = "☑"
UNCHECKED = "☐"

# Tried in this order; the first key holding a list is used
LOCATION_ALIASES = ("locations", "timelineObjects", "semanticSegments")

VIDEO_EXTENSIONS = (".mp4", ".mov", ".webm", ".avi", ".mkv")

_CALENDAR_EVENT_TYPES = {
    Layer.TRAVEL: "trip",
    Layer.WORK: "meeting",
    Layer.HEALTH: "appointment",
    Layer.RELATIONSHIPS: "social",
}

_LATLNG_RE = re.compile(r"(-?\d+(?:\.\d+)?)\s*°?\s*,\s*(-?\d+(?:\.\d+)?)")


class GoogleShape(str, Enum):
    KEEP_NOTE = "keep_note"
    KEEP_NOTES = "keep_notes"
    LOCATION_HISTORY = "location_history"
    CALENDAR = "calendar"
    COMBINED = "combined"
    PHOTO_SIDECAR = "photo_sidecar"


@dataclass(frozen=True)
class LocationFix:
    """One raw position sample."""

    timestamp: datetime
    latitude: float
    longitude: float
    name: str | None = None


# ---------------------------------------------------------------------------
# Shape probing
# ---------------------------------------------------------------------------


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _numbered(records: list[Any]) -> list[tuple[str, Any]]:
    return [(f"Record {index}", record) for index, record in enumerate(records)]


def is_keep_note(data: Any) -> bool:
    if not isinstance(data, dict):
        return False
    has_timestamp = _is_number(data.get("createdTimestampUsec")) or _is_number(
        data.get("userEditedTimestampUsec")
    )
    has_content = (
        isinstance(data.get("textContent"), str)
        or isinstance(data.get("listContent"), list)
        or isinstance(data.get("title"), str)
    )
    return has_timestamp and has_content


def _looks_like_calendar_item(item: Any) -> bool:
    return isinstance(item, dict) and ("summary" in item or "start" in item)


def is_photo_sidecar(data: Any) -> bool:
    return isinstance(data, dict) and (
        isinstance(data.get("photoTakenTime"), dict) or isinstance(data.get("creationTime"), dict)
    )


def detect_shape(data: Any, item_id: str = "") -> GoogleShape | None:
    """Match the structure (and, as a hint, the item name) against the known variants."""
    name = item_id.lower()
    if isinstance(data, dict):
        if isinstance(data.get("calendar"), list) or isinstance(data.get("keep"), list):
            return GoogleShape.COMBINED
        if is_keep_note(data):
            return GoogleShape.KEEP_NOTE
        if is_photo_sidecar(data):
            return GoogleShape.PHOTO_SIDECAR
        if any(isinstance(data.get(key), list) for key in LOCATION_ALIASES):
            return GoogleShape.LOCATION_HISTORY
        items = data.get("items")
        if isinstance(items, list) and any(_looks_like_calendar_item(i) for i in items):
            return GoogleShape.CALENDAR
        if any(hint in name for hint in ("location", "semantic", "timeline")):
            return GoogleShape.LOCATION_HISTORY
        if "calendar" in name and isinstance(items, list):
            return GoogleShape.CALENDAR
        return None
    if isinstance(data, list) and data:
        if is_keep_note(data[0]):
            return GoogleShape.KEEP_NOTES
        if any(_looks_like_calendar_item(i) for i in data):
            return GoogleShape.CALENDAR
    return None


# ---------------------------------------------------------------------------
# Location history
# ---------------------------------------------------------------------------


def _e7(value: Any) -> float | None:
    if isinstance(value, str):
        try:
            value = int(value)
        except ValueError:
            return None
    if not _is_number(value):
        return None
    return value / 1e7


def _fix_from_legacy(record: Any) -> LocationFix | None:
    if not isinstance(record, dict):
        return None
    timestamp = None
    if record.get("timestampMs") is not None:
        timestamp = resolve_epoch(record["timestampMs"])
    elif record.get("timestamp") is not None:
        timestamp = resolve(record["timestamp"])
    lat, lon = _e7(record.get("latitudeE7")), _e7(record.get("longitudeE7"))
    if timestamp is None or lat is None or lon is None:
        return None
    return LocationFix(timestamp, lat, lon)


def _fix_from_timeline_object(record: Any) -> LocationFix | None:
    if not isinstance(record, dict) or not isinstance(record.get("placeVisit"), dict):
        return None
    visit = record["placeVisit"]
    location = visit.get("location") if isinstance(visit.get("location"), dict) else {}
    duration = visit.get("duration") if isinstance(visit.get("duration"), dict) else {}
    timestamp = None
    if duration.get("startTimestamp") is not None:
        timestamp = resolve(duration["startTimestamp"])
    elif duration.get("startTimestampMs") is not None:
        timestamp = resolve_epoch(duration["startTimestampMs"])
    lat, lon = _e7(location.get("latitudeE7")), _e7(location.get("longitudeE7"))
    if timestamp is None or lat is None or lon is None:
        return None
    name = location.get("name") if isinstance(location.get("name"), str) else None
    return LocationFix(timestamp, lat, lon, name)


def _fix_from_semantic_segment(record: Any) -> LocationFix | None:
    if not isinstance(record, dict) or not isinstance(record.get("visit"), dict):
        return None
    candidate = record["visit"].get("topCandidate")
    if not isinstance(candidate, dict) or not isinstance(candidate.get("placeLocation"), dict):
        return None
    lat_lng = candidate["placeLocation"].get("latLng")
    match = _LATLNG_RE.search(lat_lng) if isinstance(lat_lng, str) else None
    timestamp = resolve(record.get("startTime"))
    if match is None or timestamp is None:
        return None
    return LocationFix(timestamp, float(match.group(1)), float(match.group(2)))


_FIX_READERS: dict[str, Callable[[Any], LocationFix | None]] = {
    "locations": _fix_from_legacy,
    "timelineObjects": _fix_from_timeline_object,
    "semanticSegments": _fix_from_semantic_segment,
}


def location_fixes(data: dict[str, Any], item_id: str) -> tuple[list[LocationFix], list[ItemError]]:
    """Read fixes from the first location alias present."""
    errors: list[ItemError] = []
    for alias in LOCATION_ALIASES:
        records = data.get(alias)
        if not isinstance(records, list):
            continue
        if len(records) > MAX_LOCATIONS:
            errors.append(
                ItemError(
                    item_id,
                    f"Location history truncated: {len(records)} locations found, "
                    f"processing first {MAX_LOCATIONS}",
                    kind="size",
                )
            )
        reader = _FIX_READERS[alias]
        fixes = [fix for fix in map(reader, records[:MAX_LOCATIONS]) if fix is not None]
        return [f for f in fixes if has_valid_gps(f.latitude, f.longitude)], errors
    return [], errors


def group_fixes_by_day(fixes: list[LocationFix], options: ImportOptions) -> list[CanonicalEvent]:
    """One travel event per UTC calendar day, represented by its first fix."""
    days: dict[str, list[LocationFix]] = {}
    for fix in fixes:
        day = fix.timestamp.astimezone(UTC).date().isoformat()
        days.setdefault(day, []).append(fix)

    events: list[CanonicalEvent] = []
    for day in sorted(days):
        points = days[day]
        first = points[0]
        y, m, d = (int(p) for p in day.split("-"))
        events.append(
            build_event(
                title=f"Location: {first.latitude:.4f}, {first.longitude:.4f}",
                start=make_datetime(y, m, d),
                layer=Layer.TRAVEL,
                event_type="location",
                source=EventSource.GOOGLE,
                source_id=f"google_loc_{day}",
                location=build_location(first.latitude, first.longitude, name=first.name),
                metadata={"point_count": len(points)},
                user_id=options.user_id,
            )
        )
    return events


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------


def _calendar_time(value: Any, options: ImportOptions) -> datetime | None:
    if not isinstance(value, dict):
        return None
    return resolve(value.get("dateTime") or value.get("date"), options.date_options)


def calendar_item_event(item: Any, options: ImportOptions) -> CanonicalEvent | None:
    if not isinstance(item, dict):
        return None
    title = item.get("summary")
    if not isinstance(title, str) or not title.strip():
        return None
    start = _calendar_time(item.get("start"), options)
    if start is None:
        return None
    end = _calendar_time(item.get("end"), options)
    if end == start:
        end = None

    description = item.get("description") if isinstance(item.get("description"), str) else None
    location_name = item.get("location") if isinstance(item.get("location"), str) else None
    layer = options.classify(title=title, description=description, location=location_name).layer

    return build_event(
        title=title,
        description=description,
        start=start,
        end=end,
        layer=layer,
        event_type=_CALENDAR_EVENT_TYPES.get(layer, "calendar_event"),
        source=EventSource.GOOGLE,
        source_id=f"google_cal_{int(start.timestamp() * 1000)}_{slugify(title.strip())}",
        location=build_location(name=location_name),
        metadata={"calendar_id": item.get("id") if isinstance(item.get("id"), str) else None},
        user_id=options.user_id,
    )


def calendar_events(items: list[Any], item_id: str, options: ImportOptions) -> tuple[list[CanonicalEvent], list[ItemError]]:
    errors: list[ItemError] = []
    if len(items) > MAX_CALENDAR_ITEMS:
        errors.append(
            ItemError(
                item_id,
                f"Calendar events truncated: {len(items)} events found, processing first {MAX_CALENDAR_ITEMS}",
                kind="size",
            )
        )
    events = convert_records(_numbered(items[:MAX_CALENDAR_ITEMS]), calendar_item_event, item_id, options, errors)
    return events, errors


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------


def render_checklist(items: list[Any]) -> str:
    """One line per entry, each prefixed with a checked or unchecked marker."""
    lines = []
    for entry in items[:MAX_CHECKLIST_ITEMS]:
        if not isinstance(entry, dict):
            continue
        marker = CHECKED if entry.get("isChecked") else UNCHECKED
        text = entry.get("text") if isinstance(entry.get("text"), str) else ""
        lines.append(f"{marker} {text}")
    return "\n".join(lines)


def note_event(note: Any, options: ImportOptions) -> CanonicalEvent | None:
    if not isinstance(note, dict) or note.get("isTrashed"):
        return None

    text = note.get("textContent") if isinstance(note.get("textContent"), str) else ""
    is_checklist = isinstance(note.get("listContent"), list)
    if not text and is_checklist:
        text = render_checklist(note["listContent"])

    raw_title = note.get("title") if isinstance(note.get("title"), str) else ""
    title = raw_title.strip() or text[:NOTE_TITLE_FROM_TEXT].strip()
    if not title:
        return None

    # Last edit wins over creation
    timestamp = note.get("userEditedTimestampUsec") or note.get("createdTimestampUsec")
    start = resolve_epoch_micros(timestamp)
    if start is None:
        return None

    labels = []
    if isinstance(note.get("labels"), list):
        for label in note["labels"][:MAX_LABELS]:
            name = label.get("name") if isinstance(label, dict) else None
            if isinstance(name, str) and name.strip():
                labels.append(name.strip())

    return build_event(
        title=title,
        description=text or None,
        start=start,
        layer=Layer.MEDIA,
        event_type="checklist" if is_checklist else "note",
        source=EventSource.GOOGLE,
        source_id=f"google_keep_{timestamp}",
        metadata={
            "labels": labels or None,
            "is_pinned": note.get("isPinned"),
            "is_archived": note.get("isArchived"),
        },
        user_id=options.user_id,
    )


def note_events(notes: list[Any], item_id: str, options: ImportOptions) -> tuple[list[CanonicalEvent], list[ItemError]]:
    errors: list[ItemError] = []
    if len(notes) > MAX_NOTES:
        errors.append(
            ItemError(
                item_id,
                f"Keep notes truncated: {len(notes)} notes found, processing first {MAX_NOTES}",
                kind="size",
            )
        )
    events = convert_records(_numbered(notes[:MAX_NOTES]), note_event, item_id, options, errors)
    return events, errors


# ---------------------------------------------------------------------------
# Photo sidecars
# ---------------------------------------------------------------------------


def _sidecar_time(value: Any) -> datetime | None:
    if not isinstance(value, dict):
        return None
    return resolve_epoch(value.get("timestamp"))


def _sidecar_geo(value: Any) -> tuple[float, float] | None:
    if not isinstance(value, dict):
        return None
    lat, lon = value.get("latitude"), value.get("longitude")
    return (lat, lon) if has_valid_gps(lat, lon) else None


def sidecar_event(data: dict[str, Any], item_id: str, options: ImportOptions) -> CanonicalEvent | None:
    media_path = re.sub(r"\.json$", "", item_id, flags=re.IGNORECASE)
    media_name = PurePosixPath(media_path.replace("\\", "/")).name

    start = (
        _sidecar_time(data.get("photoTakenTime"))
        or _sidecar_time(data.get("creationTime"))
        or date_from_path(item_id)
    )
    if start is None:
        return None

    coords = _sidecar_geo(data.get("geoData")) or _sidecar_geo(data.get("geoDataExif"))
    location = build_location(*coords) if coords else None

    title = data.get("title") if isinstance(data.get("title"), str) and data["title"].strip() else media_name
    is_video = title.lower().endswith(VIDEO_EXTENSIONS)
    people = [
        p["name"] for p in data.get("people", []) if isinstance(p, dict) and isinstance(p.get("name"), str)
    ] if isinstance(data.get("people"), list) else []

    return build_event(
        title=title,
        description=data.get("description") if isinstance(data.get("description"), str) else None,
        start=start,
        layer=Layer.TRAVEL if location else Layer.MEDIA,
        event_type="video" if is_video else "photo",
        source=EventSource.GOOGLE,
        source_id=f"gp_{title}_{int(start.timestamp() * 1000)}",
        location=location,
        media=[MediaRef(uri=media_path or title, kind="video" if is_video else "photo")],
        metadata={"people": people or None},
        user_id=options.user_id,
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def normalize_google(
    data: Any,
    item_id: str = "google.json",
    *,
    options: ImportOptions | None = None,
) -> ImportResult:
    """Normalize one parsed JSON document from a location/calendar/notes export."""
    options = options or ImportOptions()
    shape = detect_shape(data, item_id)
    if shape is None:
        raise FormatError("JSON does not match any known location, calendar or notes export shape", item_id=item_id)
    logger.debug("%s: detected %s", item_id, shape.value)

    events: list[CanonicalEvent] = []
    errors: list[ItemError] = []

    if shape is GoogleShape.KEEP_NOTE:
        event = note_event(data, options)
        events.extend([event] if event else [])
    elif shape is GoogleShape.KEEP_NOTES:
        events, errors = note_events(data, item_id, options)
    elif shape is GoogleShape.PHOTO_SIDECAR:
        event = sidecar_event(data, item_id, options)
        events.extend([event] if event else [])
    elif shape is GoogleShape.CALENDAR:
        items = data if isinstance(data, list) else data.get("items", [])
        events, errors = calendar_events(items, item_id, options)
    elif shape is GoogleShape.LOCATION_HISTORY:
        fixes, errors = location_fixes(data, item_id)
        events = group_fixes_by_day(fixes, options)
    elif shape is GoogleShape.COMBINED:
        # Unknown top-level keys are ignored
        if isinstance(data.get("locations"), list):
            fixes, fix_errors = location_fixes({"locations": data["locations"]}, item_id)
            events.extend(group_fixes_by_day(fixes, options))
            errors.extend(fix_errors)
        if isinstance(data.get("calendar"), list):
            cal_events, cal_errors = calendar_events(data["calendar"], item_id, options)
            events.extend(cal_events)
            errors.extend(cal_errors)
        if isinstance(data.get("keep"), list):
            keep_events, keep_errors = note_events(data["keep"], item_id, options)
            events.extend(keep_events)
            errors.extend(keep_errors)

    return ImportResult.for_item(events, errors)
