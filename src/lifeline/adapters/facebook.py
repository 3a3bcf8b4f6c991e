"""Post/connection/event export normalizer — social-network JSON → events.

Each concept (posts, friends, event responses) has several historical
container keys.  Within a concept the aliases are tried in a fixed order
and the first one present is used; they are never merged.  Joined, invited
and hosted events are separate concepts and are all read.

Exports of this kind store UTF-8 text re-encoded as Latin-1, so every
string is passed through ``repair_text`` before use.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from functools import partial
from typing import Any

from lifeline.core.config import ImportOptions
from lifeline.core.errors import FormatError
from lifeline.core.models import CanonicalEvent, EventSource, ImportResult, ItemError, Layer
from lifeline.dates import resolve_epoch
from lifeline.validation import build_event, build_location, convert_records, slugify, truncate

logger = logging.getLogger(__name__)

POST_TITLE_LENGTH = 100

POST_ALIASES = ("posts", "your_posts_1", "your_posts")
FRIEND_ALIASES = ("friends_v2", "friends")
# response -> (top-level keys, keys under "event_responses")
EVENT_ALIASES: dict[str, tuple[tuple[str, ...], tuple[str, ...]]] = {
    "joined": (("events_joined",), ("events_joined",)),
    "invited": (("events_invited",), ("events_invited",)),
    "hosted": (("your_events",), ("your_events",)),
}

_POST_PATH_HINTS = ("posts/", "your_posts", "timeline", "wall_posts", "check_ins")
_FRIEND_PATH_HINTS = ("friends", "connections")
_FRIEND_PATH_EXCLUDES = ("friend_requests", "removed_friends")
_EVENT_PATH_HINTS = ("events/", "event_responses", "event_invitations", "your_event")


def repair_text(value: Any) -> str | None:
    """Undo UTF-8-as-Latin-1 mojibake; leave text alone if it does not round-trip."""
    if not isinstance(value, str):
        return None
    if not any("\x80" <= ch <= "\xff" for ch in value):
        return value
    try:
        return value.encode("latin-1").decode("utf-8")
    except (UnicodeEncodeError, UnicodeDecodeError):
        return value


def _first_list(data: dict[str, Any], keys: tuple[str, ...]) -> list[Any] | None:
    for key in keys:
        if isinstance(data.get(key), list):
            return data[key]
    return None


def _place_location(place: Any):
    if not isinstance(place, dict):
        return None
    coordinate = place.get("coordinate") if isinstance(place.get("coordinate"), dict) else {}
    return build_location(
        coordinate.get("latitude"),
        coordinate.get("longitude"),
        name=repair_text(place.get("name")),
    )


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


def post_event(post: Any, options: ImportOptions) -> CanonicalEvent | None:
    if not isinstance(post, dict):
        return None
    data = post.get("data") if isinstance(post.get("data"), list) else []
    first_data = data[0] if data and isinstance(data[0], dict) else {}

    timestamp = post.get("timestamp") or first_data.get("update_timestamp")
    start = resolve_epoch(timestamp)
    if start is None:
        return None

    text = repair_text(first_data.get("post")) or repair_text(post.get("title")) or ""
    text = text.strip()
    if not text:
        return None

    attachments = post.get("attachments") if isinstance(post.get("attachments"), list) else []
    attachment = {}
    if attachments and isinstance(attachments[0], dict) and isinstance(attachments[0].get("data"), list):
        attachment_data = attachments[0]["data"]
        attachment = attachment_data[0] if attachment_data and isinstance(attachment_data[0], dict) else {}
    location = _place_location(attachment.get("place"))
    has_media = bool(attachment.get("media"))

    layer = options.classify(
        title=text,
        location=location.name if location else None,
        has_location=location is not None,
    ).layer

    return build_event(
        title=truncate(text, POST_TITLE_LENGTH),
        description=text if len(text) > POST_TITLE_LENGTH else None,
        start=start,
        layer=layer,
        event_type="photo_post" if has_media else "post",
        source=EventSource.FACEBOOK,
        source_id=f"fb_post_{timestamp}",
        location=location,
        metadata={"has_media": has_media},
        title_max=POST_TITLE_LENGTH,
        user_id=options.user_id,
    )


def friend_event(friend: Any, options: ImportOptions) -> CanonicalEvent | None:
    if not isinstance(friend, dict):
        return None
    name = (repair_text(friend.get("name")) or "").strip()
    start = resolve_epoch(friend.get("timestamp"))
    if not name or start is None:
        return None
    return build_event(
        title=f"Connected with {name}",
        start=start,
        layer=Layer.RELATIONSHIPS,
        event_type="connection",
        source=EventSource.FACEBOOK,
        source_id=f"fb_friend_{friend.get('timestamp')}_{slugify(name)}",
        metadata={"friend_name": name},
        user_id=options.user_id,
    )


def response_event(event: Any, options: ImportOptions, response: str | None = None) -> CanonicalEvent | None:
    if not isinstance(event, dict):
        return None
    name = (repair_text(event.get("name")) or "").strip()
    start = resolve_epoch(event.get("start_timestamp"))
    if not name or start is None:
        return None
    end = resolve_epoch(event.get("end_timestamp")) if event.get("end_timestamp") else None
    location = _place_location(event.get("place"))
    description = repair_text(event.get("description"))
    layer = options.classify(
        title=name,
        description=description,
        location=location.name if location else None,
        has_location=location is not None,
    ).layer
    return build_event(
        title=name,
        description=description,
        start=start,
        end=end,
        layer=layer,
        event_type="event",
        source=EventSource.FACEBOOK,
        source_id=f"fb_event_{event.get('start_timestamp')}_{slugify(name)}",
        location=location,
        metadata={"response": response},
        user_id=options.user_id,
    )


# ---------------------------------------------------------------------------
# Raw arrays
# ---------------------------------------------------------------------------


def path_kind(item_id: str) -> str | None:
    """Guess the concept of a bare array from the file path."""
    path = item_id.lower().replace("\\", "/")
    if any(hint in path for hint in _POST_PATH_HINTS):
        return "posts"
    if any(hint in path for hint in _FRIEND_PATH_HINTS) and not any(
        ex in path for ex in _FRIEND_PATH_EXCLUDES
    ):
        return "friends"
    if any(hint in path for hint in _EVENT_PATH_HINTS):
        return "events"
    return None


def record_kind(record: Any) -> str | None:
    """Guess the concept of one array entry from its keys."""
    if not isinstance(record, dict):
        return None
    if "start_timestamp" in record and "name" in record:
        return "events"
    if "timestamp" in record and ("title" in record or "data" in record):
        return "posts"
    if "timestamp" in record and "name" in record:
        return "friends"
    return None


_CONVERTERS: dict[str, Callable[[Any, ImportOptions], CanonicalEvent | None]] = {
    "posts": post_event,
    "friends": friend_event,
    "events": response_event,
}


def is_facebook_export(data: Any, item_id: str = "") -> bool:
    """True if *data* has at least one recognizable container or record."""
    if isinstance(data, dict):
        if _first_list(data, POST_ALIASES) is not None or _first_list(data, FRIEND_ALIASES) is not None:
            return True
        if isinstance(data.get("event_responses"), dict):
            return True
        return any(_first_list(data, top) is not None for top, _ in EVENT_ALIASES.values())
    if isinstance(data, list) and data:
        return path_kind(item_id) is not None or any(record_kind(r) for r in data[:50])
    return False


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def _numbered(records: list[Any], label: str) -> list[tuple[str, Any]]:
    return [(f"{label} {index}", record) for index, record in enumerate(records)]


def _typed(records: list[Any]) -> list[tuple[str, tuple[str, Any]]]:
    """Label a mixed list by each record's own shape; unknown shapes are dropped."""
    typed = []
    for index, record in enumerate(records):
        record_type = record_kind(record)
        if record_type is not None:
            typed.append((f"{record_type} {index}", (record_type, record)))
    return typed


def _convert_typed(typed: tuple[str, Any], options: ImportOptions) -> CanonicalEvent | None:
    record_type, record = typed
    return _CONVERTERS[record_type](record, options)


def normalize_facebook(
    data: Any,
    item_id: str = "facebook.json",
    *,
    options: ImportOptions | None = None,
) -> ImportResult:
    """Normalize one parsed JSON document from a post/connection/event export."""
    options = options or ImportOptions()
    if not is_facebook_export(data, item_id):
        raise FormatError("JSON does not match any known post, friend or event export shape", item_id=item_id)

    events: list[CanonicalEvent] = []
    errors: list[ItemError] = []

    if isinstance(data, list):
        kind = path_kind(item_id)
        if kind is not None:
            events = convert_records(_numbered(data, kind), _CONVERTERS[kind], item_id, options, errors)
        else:
            events = convert_records(_typed(data), _convert_typed, item_id, options, errors)
        return ImportResult.for_item(events, errors)

    # Unknown top-level keys are ignored
    posts = _first_list(data, POST_ALIASES)
    if posts is not None:
        events.extend(convert_records(_numbered(posts, "post"), post_event, item_id, options, errors))

    friends = _first_list(data, FRIEND_ALIASES)
    if friends is not None:
        events.extend(convert_records(_numbered(friends, "friend"), friend_event, item_id, options, errors))

    responses = data.get("event_responses") if isinstance(data.get("event_responses"), dict) else {}
    for response, (top_keys, nested_keys) in EVENT_ALIASES.items():
        records = _first_list(data, top_keys)
        if records is None:
            records = _first_list(responses, nested_keys)
        if records:
            convert = partial(response_event, response=response)
            events.extend(convert_records(_numbered(records, f"{response} event"), convert, item_id, options, errors))

    logger.debug("%s: %d events", item_id, len(events))
    return ImportResult.for_item(events, errors)
