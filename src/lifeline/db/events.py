"""Event store models.

One row per canonical event.  ``(source, source_id)`` is unique, which is
how repeated imports of the same export are de-duplicated at this layer.
"""

import json
from datetime import datetime
from typing import Any, ClassVar

from sqlalchemy import DateTime, Float, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class EventBase(DeclarativeBase):
    """Base class for event store models."""

    type_annotation_map: ClassVar[dict[type, Any]] = {}


class EventRow(EventBase):
    """A persisted canonical event."""

    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str | None] = mapped_column(String(256), nullable=True)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Stored as naive UTC so range queries compare correctly in SQLite
    start_utc: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_utc: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    start_iso: Mapped[str] = mapped_column(String(64), nullable=False)
    end_iso: Mapped[str | None] = mapped_column(String(64), nullable=True)
    layer: Mapped[str] = mapped_column(String(32), nullable=False)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    source_id: Mapped[str] = mapped_column(String(512), nullable=False)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    location_name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    country: Mapped[str | None] = mapped_column(String(128), nullable=True)
    media_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    metadata_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )

    @property
    def metadata_(self) -> dict[str, Any]:
        """Get deserialized metadata."""
        return json.loads(self.metadata_json)  # type: ignore[no-any-return]

    @metadata_.setter
    def metadata_(self, value: dict[str, Any]) -> None:
        self.metadata_json = json.dumps(value, default=str)

    @property
    def media(self) -> list[dict[str, str]]:
        return json.loads(self.media_json)  # type: ignore[no-any-return]

    def to_dict(self) -> dict[str, Any]:
        """Same shape as ``CanonicalEvent.to_dict``."""
        location = None
        if self.latitude is not None or self.location_name is not None:
            location = {
                "latitude": self.latitude,
                "longitude": self.longitude,
                "name": self.location_name,
                "country": self.country,
            }
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description,
            "start": self.start_iso,
            "end": self.end_iso,
            "layer": self.layer,
            "event_type": self.event_type,
            "source": self.source,
            "source_id": self.source_id,
            "location": location,
            "media": self.media,
            "metadata": self.metadata_,
        }

    __table_args__ = (
        UniqueConstraint("source", "source_id", name="uq_events_source_id"),
        Index("idx_events_layer", "layer"),
        Index("idx_events_start", "start_utc"),
    )
