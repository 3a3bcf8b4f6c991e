"""Event store operations: insert, query, count, clear."""

from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import UTC, datetime

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from lifeline.core.models import CanonicalEvent, EventSource, Layer
from lifeline.db.events import EventRow

LOOKUP_CHUNK = 500


def _naive_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def event_to_row(event: CanonicalEvent) -> EventRow:
    location = event.location
    return EventRow(
        id=event.id,
        user_id=event.user_id,
        title=event.title,
        description=event.description,
        start_utc=_naive_utc(event.start),
        end_utc=_naive_utc(event.end),
        start_iso=event.start.isoformat(),
        end_iso=event.end.isoformat() if event.end else None,
        layer=event.layer.value,
        event_type=event.event_type,
        source=event.source.value,
        source_id=event.source_id,
        latitude=location.latitude if location else None,
        longitude=location.longitude if location else None,
        location_name=location.name if location else None,
        country=location.country if location else None,
        media_json=json.dumps([m.to_dict() for m in event.media]),
        metadata_json=json.dumps(event.metadata, default=str),
    )


def insert_events(session: Session, events: Iterable[CanonicalEvent]) -> int:
    """Insert events, skipping any whose (source, source_id) is already stored.

    Args:
        session: Database session.
        events: Events to persist.

    Returns:
        Number of rows inserted.
    """
    events = list(events)
    if not events:
        return 0

    source_ids = sorted({e.source_id for e in events})
    existing: set[tuple[str, str]] = set()
    # Chunked to stay under SQLite's bound-parameter limit
    for i in range(0, len(source_ids), LOOKUP_CHUNK):
        stmt = select(EventRow.source, EventRow.source_id).where(
            EventRow.source_id.in_(source_ids[i : i + LOOKUP_CHUNK])
        )
        existing.update((source, source_id) for source, source_id in session.execute(stmt))

    inserted = 0
    for event in events:
        key = (event.source.value, event.source_id)
        if key in existing:
            continue
        existing.add(key)
        session.add(event_to_row(event))
        inserted += 1
    session.flush()
    return inserted


def _filtered(
    stmt,
    *,
    layer: Layer | str | None = None,
    source: EventSource | str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
):
    if layer is not None:
        stmt = stmt.where(EventRow.layer == (layer.value if isinstance(layer, Layer) else layer))
    if source is not None:
        stmt = stmt.where(EventRow.source == (source.value if isinstance(source, EventSource) else source))
    if since is not None:
        stmt = stmt.where(EventRow.start_utc >= _naive_utc(since))
    if until is not None:
        stmt = stmt.where(EventRow.start_utc < _naive_utc(until))
    return stmt


def query_events(
    session: Session,
    *,
    layer: Layer | str | None = None,
    source: EventSource | str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int | None = None,
) -> list[EventRow]:
    """Stored events matching every given filter, oldest first.

    ``since`` is inclusive and ``until`` exclusive; both compare against the
    event's start instant.
    """
    stmt = _filtered(select(EventRow), layer=layer, source=source, since=since, until=until)
    stmt = stmt.order_by(EventRow.start_utc, EventRow.source, EventRow.source_id)
    if limit is not None:
        stmt = stmt.limit(limit)
    return list(session.scalars(stmt))


def count_events(
    session: Session,
    *,
    layer: Layer | str | None = None,
    source: EventSource | str | None = None,
) -> int:
    stmt = _filtered(select(func.count()).select_from(EventRow), layer=layer, source=source)
    return session.scalar(stmt) or 0


def count_by_layer(session: Session) -> dict[str, int]:
    stmt = select(EventRow.layer, func.count()).group_by(EventRow.layer).order_by(EventRow.layer)
    return {layer: count for layer, count in session.execute(stmt)}


def clear_events(session: Session, *, source: EventSource | str | None = None) -> int:
    """Delete stored events (all, or only one source's). Returns rows deleted."""
    stmt = delete(EventRow)
    if source is not None:
        stmt = stmt.where(EventRow.source == (source.value if isinstance(source, EventSource) else source))
    result = session.execute(stmt)
    return result.rowcount or 0
