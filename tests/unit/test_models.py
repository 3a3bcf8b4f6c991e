"""Unit tests for core data models."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from lifeline.core.models import (
    CanonicalEvent,
    EventSource,
    ImportItem,
    ImportResult,
    ItemError,
    Layer,
    Location,
)


def _event(title: str, layer: Layer) -> CanonicalEvent:
    return CanonicalEvent(
        id=f"id-{title}",
        title=title,
        start=datetime(2024, 1, 1, tzinfo=UTC),
        layer=layer,
        event_type="event",
        source=EventSource.CSV,
        source_id=title,
    )


class TestLayer:
    @pytest.mark.parametrize("value,expected", [("work", Layer.WORK), (" Health ", Layer.HEALTH), ("TRAVEL", Layer.TRAVEL)])
    def test_parse(self, value, expected):
        """Layer names parse case-insensitively."""
        assert Layer.parse(value) is expected

    @pytest.mark.parametrize("value", [None, "", "hobby"])
    def test_parse_unknown(self, value):
        """Unknown layer names parse to None."""
        assert Layer.parse(value) is None


class TestImportItem:
    def test_byte_size(self):
        """byte_size measures bytes and text, or uses the declared size."""
        assert ImportItem("a", b"abc").byte_size == 3
        assert ImportItem("a", "é").byte_size == 2
        assert ImportItem("a", {"k": 1}).byte_size is None
        assert ImportItem("a", b"", size=500).byte_size == 500


class TestImportResult:
    def test_for_item_counts_layers(self):
        """for_item counts events per layer."""
        result = ImportResult.for_item([_event("a", Layer.WORK), _event("b", Layer.WORK), _event("c", Layer.HEALTH)])
        assert result.stats.events_produced == 3
        assert result.stats.events_by_layer == {"work": 2, "health": 1}
        assert result.stats.items_processed == 1

    def test_skipped(self):
        """skipped counts one skipped item."""
        result = ImportResult.skipped(ItemError("x.csv", "Unclosed quote"))
        assert result.stats.items_skipped == 1
        assert result.stats.items_processed == 0
        assert len(result.errors) == 1

    def test_merge_is_associative(self):
        """Merging is associative."""
        a = ImportResult.for_item([_event("a", Layer.WORK)])
        b = ImportResult.skipped()
        c = ImportResult.for_item([_event("c", Layer.TRAVEL)], [ItemError("c", "bad", kind="field")])
        left = a.merge(b).merge(c)
        right = a.merge(b.merge(c))
        assert left.to_dict() == right.to_dict()
        assert left.stats.items_submitted == 3
        assert left.stats.events_by_layer == {"work": 1, "travel": 1}

    def test_merge_does_not_mutate(self):
        """Merging leaves both operands unchanged."""
        a = ImportResult.for_item([_event("a", Layer.WORK)])
        a.merge(ImportResult.for_item([_event("b", Layer.WORK)]))
        assert a.stats.events_by_layer == {"work": 1}
        assert len(a.events) == 1


def test_location_has_coordinates():
    """A location needs both coordinates."""
    assert Location(latitude=1.0, longitude=2.0).has_coordinates
    assert not Location(name="Paris").has_coordinates


def test_fingerprint_ignores_id():
    """Fingerprints ignore the generated id."""
    a = _event("a", Layer.WORK)
    b = CanonicalEvent(**{**a.__dict__, "id": "other"})
    assert a.fingerprint() == b.fingerprint()
