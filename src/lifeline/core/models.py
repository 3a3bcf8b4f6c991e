"""Core data models for Lifeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Layer(str, Enum):
    """The seven fixed life categories every event is filed under."""

    ECONOMICS = "economics"
    EDUCATION = "education"
    WORK = "work"
    HEALTH = "health"
    RELATIONSHIPS = "relationships"
    TRAVEL = "travel"
    MEDIA = "media"

    @classmethod
    def parse(cls, value: str | None) -> Layer | None:
        """Return the Layer named by *value* (case-insensitive), or None."""
        if not value:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


DEFAULT_LAYER = Layer.MEDIA


class EventSource(str, Enum):
    """Which parser or normalizer produced an event."""

    CSV = "csv"
    ICAL = "ical"
    PHOTO = "photo"
    GOOGLE = "google"
    FACEBOOK = "facebook"
    LINKEDIN = "linkedin"


@dataclass(frozen=True)
class Location:
    """A place. Coordinates are either both set and valid, or both None."""

    latitude: float | None = None
    longitude: float | None = None
    name: str | None = None
    country: str | None = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "name": self.name,
            "country": self.country,
        }


@dataclass(frozen=True)
class MediaRef:
    """Reference to a media file an event was derived from or points at."""

    uri: str
    kind: str = "photo"  # "photo", "video", "attachment"

    def to_dict(self) -> dict[str, str]:
        return {"uri": self.uri, "kind": self.kind}


@dataclass(frozen=True)
class CanonicalEvent:
    """The single normalized record shape every parser converges to.

    Instances are built through ``lifeline.validation.build_event`` which
    applies sanitization, truncation and range checks; constructing one
    directly bypasses those guarantees.
    """

    id: str
    title: str
    start: datetime
    layer: Layer
    event_type: str
    source: EventSource
    source_id: str
    user_id: str | None = None
    description: str | None = None
    end: datetime | None = None
    location: Location | None = None
    media: tuple[MediaRef, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)

    def fingerprint(self) -> tuple:
        """Identity of the event ignoring the synthesized ``id``."""
        return (
            self.title,
            self.start,
            self.layer,
            self.event_type,
            self.source,
            self.source_id,
            self.user_id,
            self.description,
            self.end,
            self.location,
            self.media,
            repr(sorted(self.metadata.items())),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description,
            "start": self.start.isoformat(),
            "end": self.end.isoformat() if self.end else None,
            "layer": self.layer.value,
            "event_type": self.event_type,
            "source": self.source.value,
            "source_id": self.source_id,
            "location": self.location.to_dict() if self.location else None,
            "media": [m.to_dict() for m in self.media],
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class ImportItem:
    """One named input: raw bytes, decoded text, or an already-parsed structure.

    ``kind`` forces a parser; otherwise ``content_type`` and then the
    name's extension decide.  ``size`` is the declared byte size when the
    payload was deliberately not read (for example an oversized archive
    member); ``data`` is then empty.
    """

    item_id: str
    data: Any = b""
    kind: str | None = None
    content_type: str | None = None
    size: int | None = None

    @property
    def byte_size(self) -> int | None:
        if self.size is not None:
            return self.size
        if isinstance(self.data, (bytes, bytearray)):
            return len(self.data)
        if isinstance(self.data, str):
            return len(self.data.encode("utf-8"))
        return None


@dataclass(frozen=True)
class ItemError:
    """A non-fatal problem reported for one input item."""

    item_id: str | None
    message: str
    kind: str = "format"  # "format", "field", "size"
    fatal: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "message": self.message,
            "kind": self.kind,
            "fatal": self.fatal,
        }


@dataclass
class ImportStats:
    """Aggregate counters for one import run."""

    items_submitted: int = 0
    items_processed: int = 0
    items_skipped: int = 0
    events_produced: int = 0
    events_by_layer: dict[str, int] = field(default_factory=dict)
    cancelled: bool = False

    def merge(self, other: ImportStats) -> ImportStats:
        by_layer = dict(self.events_by_layer)
        for layer, count in other.events_by_layer.items():
            by_layer[layer] = by_layer.get(layer, 0) + count
        return ImportStats(
            items_submitted=self.items_submitted + other.items_submitted,
            items_processed=self.items_processed + other.items_processed,
            items_skipped=self.items_skipped + other.items_skipped,
            events_produced=self.events_produced + other.events_produced,
            events_by_layer=by_layer,
            cancelled=self.cancelled or other.cancelled,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "items_submitted": self.items_submitted,
            "items_processed": self.items_processed,
            "items_skipped": self.items_skipped,
            "events_produced": self.events_produced,
            "events_by_layer": dict(sorted(self.events_by_layer.items())),
            "cancelled": self.cancelled,
        }


@dataclass
class ImportResult:
    """Events, errors and stats: the sole output of every entry point."""

    events: list[CanonicalEvent] = field(default_factory=list)
    errors: list[ItemError] = field(default_factory=list)
    stats: ImportStats = field(default_factory=ImportStats)

    @classmethod
    def for_item(
        cls,
        events: list[CanonicalEvent],
        errors: list[ItemError] | None = None,
        *,
        processed: bool = True,
    ) -> ImportResult:
        """Build the result of a single item, counting its events by layer."""
        by_layer: dict[str, int] = {}
        for event in events:
            by_layer[event.layer.value] = by_layer.get(event.layer.value, 0) + 1
        return cls(
            events=list(events),
            errors=list(errors or []),
            stats=ImportStats(
                items_submitted=1,
                items_processed=1 if processed else 0,
                items_skipped=0 if processed else 1,
                events_produced=len(events),
                events_by_layer=by_layer,
            ),
        )

    @classmethod
    def skipped(cls, error: ItemError | None = None) -> ImportResult:
        """Result of an item that was gated out or rejected before parsing."""
        return cls.for_item([], [error] if error else [], processed=False)

    def merge(self, other: ImportResult) -> ImportResult:
        """Concatenate lists and add counters. Associative; counts are order-independent."""
        return ImportResult(
            events=self.events + other.events,
            errors=self.errors + other.errors,
            stats=self.stats.merge(other.stats),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "events": [e.to_dict() for e in self.events],
            "errors": [e.to_dict() for e in self.errors],
            "stats": self.stats.to_dict(),
        }
