"""Adapter registry — content-type/name gating and parser dispatch.

Maps a kind ("csv", "ical", "photo", ...) to a parser, and file
extensions and content types to kinds.  Items whose extension or content
type is on the ignore list, or matches nothing at all, are skipped rather
than reported: they routinely ship alongside the files a vendor export is
actually made of.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import PurePosixPath
from typing import Any

from lifeline.core.config import ImportOptions
from lifeline.core.errors import FormatError
from lifeline.core.models import ImportItem, ImportResult

Adapter = Callable[[ImportItem, ImportOptions], ImportResult]

# Registry: kind -> parser function
_ADAPTERS: dict[str, Adapter] = {}

# extension (with dot) -> kind
_EXTENSIONS: dict[str, str] = {}

# content type -> kind
_CONTENT_TYPES: dict[str, str] = {}

# Never attempted: markup, stylesheets, scripts, and binaries with no metadata container we read
IGNORED_EXTENSIONS = frozenset({
    ".html", ".htm", ".css", ".js", ".mjs", ".xml",
    ".png", ".gif", ".webp", ".heic", ".heif", ".bmp", ".svg",
    ".mp4", ".mov", ".webm", ".avi", ".mkv", ".mp3", ".m4a", ".wav",
    ".pdf", ".txt", ".md",
})
IGNORED_CONTENT_PREFIXES = (
    "text/html", "text/css", "text/javascript", "application/javascript",
    "application/pdf", "image/png", "image/gif", "image/webp", "image/heic",
    "video/", "audio/",
)


def register_adapter(kind: str, extensions: list[str] | None = None, content_types: list[str] | None = None):
    """Decorator to register a parser for a kind, plus the extensions and content types that select it.

    Usage::

        @register_adapter("csv", [".csv"], ["text/csv"])
        def _parse_csv(item: ImportItem, options: ImportOptions) -> ImportResult:
            ...
    """

    def decorator(fn: Adapter):
        _ADAPTERS[kind] = fn
        for ext in extensions or []:
            normalized = ext if ext.startswith(".") else f".{ext}"
            _EXTENSIONS[normalized.lower()] = kind
        for content_type in content_types or []:
            _CONTENT_TYPES[content_type.lower()] = kind
        return fn

    return decorator


def get_adapter(kind: str) -> Adapter | None:
    """Return the parser registered for *kind*, or None."""
    return _ADAPTERS.get(kind)


def get_supported_kinds() -> set[str]:
    return set(_ADAPTERS)


def get_supported_extensions() -> set[str]:
    """Return the set of all registered file extensions."""
    return set(_EXTENSIONS)


def _extension(name: str) -> str:
    return PurePosixPath(name.replace("\\", "/")).suffix.lower()


def resolve_kind(item: ImportItem) -> str | None:
    """Pick the parser kind for *item*, or None if it should be skipped.

    Precedence: explicit kind > content type > extension.  Already-parsed
    structures with no other hint are routed to JSON detection.  A CSV
    goes to the professional-network parser only when both its name and
    its header row say so.
    """
    if item.kind:
        return item.kind if item.kind in _ADAPTERS else None

    kind: str | None = None
    if item.content_type:
        content_type = item.content_type.split(";", 1)[0].strip().lower()
        if content_type.startswith(IGNORED_CONTENT_PREFIXES):
            return None
        kind = _CONTENT_TYPES.get(content_type)

    if kind is None:
        ext = _extension(item.item_id)
        if ext in IGNORED_EXTENSIONS:
            return None
        kind = _EXTENSIONS.get(ext)

    if kind is None and not isinstance(item.data, (bytes, bytearray, str)):
        kind = "json"

    if kind == "csv" and _is_linkedin_csv(item):
        kind = "linkedin"
    return kind


def _is_linkedin_csv(item: ImportItem) -> bool:
    """An export-named CSV whose opening lines carry the export's header column."""
    from lifeline.adapters.linkedin import HEADER_SCAN_BYTES, sniff_kind

    if isinstance(item.data, str):
        head = item.data[:HEADER_SCAN_BYTES].lstrip("\ufeff")
    elif isinstance(item.data, (bytes, bytearray)):
        head = bytes(item.data[:HEADER_SCAN_BYTES]).decode("utf-8-sig", errors="replace")
    else:
        return False
    return sniff_kind(item.item_id, head) is not None


def is_ignored(item: ImportItem) -> bool:
    return resolve_kind(item) is None


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------


def item_text(item: ImportItem) -> str:
    """Decoded text of an item; bytes are read as UTF-8 with a BOM tolerated."""
    if isinstance(item.data, str):
        return item.data
    if isinstance(item.data, (bytes, bytearray)):
        return bytes(item.data).decode("utf-8-sig", errors="replace")
    raise FormatError("Expected text content", item_id=item.item_id)


def item_json(item: ImportItem) -> Any:
    """Parsed JSON of an item; structures pass through unchanged."""
    if not isinstance(item.data, (bytes, bytearray, str)):
        return item.data
    try:
        return json.loads(item_text(item))
    except json.JSONDecodeError as exc:
        raise FormatError(f"Invalid JSON: {exc.msg} (line {exc.lineno})", item_id=item.item_id) from exc


# ---------------------------------------------------------------------------
# Built-in adapters
# ---------------------------------------------------------------------------


@register_adapter("csv", [".csv"], ["text/csv"])
def _parse_csv(item: ImportItem, options: ImportOptions) -> ImportResult:
    from lifeline.adapters.delimited import parse_delimited

    return parse_delimited(item_text(item), item.item_id, options=options)


@register_adapter("linkedin")
def _parse_linkedin(item: ImportItem, options: ImportOptions) -> ImportResult:
    from lifeline.adapters.linkedin import normalize_linkedin, parse_linkedin_csv

    if isinstance(item.data, (bytes, bytearray, str)):
        return parse_linkedin_csv(item_text(item), item.item_id, options=options)
    return normalize_linkedin(item.data, item.item_id, options=options)


@register_adapter("ical", [".ics", ".ical", ".ifb"], ["text/calendar"])
def _parse_ical(item: ImportItem, options: ImportOptions) -> ImportResult:
    from lifeline.adapters.ical import parse_ical

    return parse_ical(item_text(item), item.item_id, options=options)


@register_adapter("photo", [".jpg", ".jpeg", ".jpe"], ["image/jpeg", "image/jpg"])
def _parse_photo(item: ImportItem, options: ImportOptions) -> ImportResult:
    from lifeline.adapters.exif import photo_event

    if not isinstance(item.data, (bytes, bytearray)):
        raise FormatError("Photo items must be raw bytes", item_id=item.item_id)
    return ImportResult.for_item([photo_event(bytes(item.data), item.item_id, options=options)])


@register_adapter("google")
def _parse_google(item: ImportItem, options: ImportOptions) -> ImportResult:
    from lifeline.adapters.google import normalize_google

    return normalize_google(item_json(item), item.item_id, options=options)


@register_adapter("facebook")
def _parse_facebook(item: ImportItem, options: ImportOptions) -> ImportResult:
    from lifeline.adapters.facebook import normalize_facebook

    return normalize_facebook(item_json(item), item.item_id, options=options)


@register_adapter("json", [".json"], ["application/json"])
def _parse_json_autodetect(item: ImportItem, options: ImportOptions) -> ImportResult:
    """Detect which export a JSON document belongs to by its structure.

    Structural checks run before name hints: location/calendar/notes
    shapes, then the professional-network object, then post/friend/event
    shapes, and only then a location-history guess from the file name.
    """
    from lifeline.adapters.facebook import is_facebook_export, normalize_facebook
    from lifeline.adapters.google import detect_shape, normalize_google
    from lifeline.adapters.linkedin import is_linkedin_export, normalize_linkedin

    data = item_json(item)
    if detect_shape(data) is not None:
        return normalize_google(data, item.item_id, options=options)
    if is_linkedin_export(data):
        return normalize_linkedin(data, item.item_id, options=options)
    if is_facebook_export(data, item.item_id):
        return normalize_facebook(data, item.item_id, options=options)
    if detect_shape(data, item.item_id) is not None:
        return normalize_google(data, item.item_id, options=options)
    raise FormatError("JSON does not match any known export shape", item_id=item.item_id)
