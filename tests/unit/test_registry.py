"""Unit tests for parser selection and dispatch."""

from __future__ import annotations

import json

import pytest

from lifeline.adapters import registry
from lifeline.adapters.registry import (
    get_adapter,
    get_supported_extensions,
    get_supported_kinds,
    is_ignored,
    item_json,
    item_text,
    register_adapter,
    resolve_kind,
)
from lifeline.core.errors import FormatError
from lifeline.core.models import EventSource, ImportItem, ImportResult
from lifeline.pipeline import run_import


class TestResolveKind:
    @pytest.mark.parametrize(
        "item_id,expected",
        [
            ("events.csv", "csv"),
            ("calendar.ics", "ical"),
            ("IMG_0001.JPG", "photo"),
            ("data.json", "json"),
            ("index.html", None),
            ("styles.css", None),
            ("clip.mp4", None),
            ("unknown.xyz", None),
            ("README", None),
        ],
    )
    def test_by_extension(self, item_id, expected):
        """Extensions map to kinds; ignored and unknown types map to None."""
        assert resolve_kind(ImportItem(item_id, b"")) == expected

    def test_explicit_kind_wins(self):
        """An explicit kind wins, and unknown kinds give None."""
        assert resolve_kind(ImportItem("data.json", b"", kind="google")) == "google"
        assert resolve_kind(ImportItem("data.json", b"", kind="nope")) is None

    def test_content_type_before_extension(self):
        """A known content type is checked before the extension."""
        assert resolve_kind(ImportItem("upload.bin", b"", content_type="text/calendar; charset=utf-8")) == "ical"
        assert resolve_kind(ImportItem("photo.jpg", b"", content_type="image/png")) is None

    def test_unknown_content_type_falls_back_to_extension(self):
        """An unknown content type falls back to the extension."""
        assert resolve_kind(ImportItem("a.csv", b"", content_type="application/octet-stream")) == "csv"

    def test_structure_routes_to_json(self):
        """Pre-parsed structures route to JSON detection."""
        assert resolve_kind(ImportItem("anything", {"a": 1})) == "json"

    def test_is_ignored(self):
        """Web assets are ignored."""
        assert is_ignored(ImportItem("page.html", b""))
        assert not is_ignored(ImportItem("a.csv", b""))

    def test_supported_kinds(self):
        """Every built-in kind is registered."""
        assert get_supported_kinds() >= {"csv", "linkedin", "ical", "photo", "google", "facebook", "json"}

    def test_supported_extensions(self):
        """Supported extensions exclude ignored types."""
        assert get_supported_extensions() >= {".csv", ".ics", ".jpg", ".json"}
        assert ".html" not in get_supported_extensions()


class TestProfessionalNetworkRouting:
    def test_export_header_routes_to_linkedin(self):
        """An export-named CSV with the export header goes to the LinkedIn parser."""
        data = b"Company Name,Title,Started On\nAcme,Engineer,Jan 2020\n"
        assert resolve_kind(ImportItem("export/Positions.csv", data)) == "linkedin"

    def test_header_after_notes_preamble(self):
        """The header row is found below a notes preamble."""
        data = "\ufeffNotes:\n\"Some emails are missing, sorry.\"\n\nFirst Name,Last Name,Connected On\n"
        assert resolve_kind(ImportItem("Connections.csv", data)) == "linkedin"
        assert resolve_kind(ImportItem("Connections.csv", data.encode())) == "linkedin"

    def test_ordinary_csv_with_export_name(self):
        """A Title/Date CSV stays on the generic parser whatever its name."""
        data = b"Title,Date\nGraduation,2020-06-01\n"
        assert resolve_kind(ImportItem("education_log.csv", data)) == "csv"
        assert resolve_kind(ImportItem("Connections.csv", b"")) == "csv"

    def test_ordinary_csv_with_export_name_imports(self):
        """Such a CSV yields its events instead of a header error."""
        result = run_import([ImportItem("education_log.csv", b"Title,Date\nGraduation,2020-06-01\n")])
        assert [e.title for e in result.events] == ["Graduation"]
        assert result.errors == []
        assert result.stats.items_skipped == 0

    def test_export_csv_imports(self):
        """An export CSV produces professional-network events."""
        data = b"School Name,Start Date,End Date,Degree Name\nMIT,2010,2014,BSc\n"
        result = run_import([ImportItem("Education.csv", data)])
        assert [e.source for e in result.events] == [EventSource.LINKEDIN]


class TestPayloads:
    def test_item_text_strips_bom(self):
        """Text payloads lose a leading BOM."""
        assert item_text(ImportItem("a.csv", "\ufeffa".encode())) == "a"
        assert item_text(ImportItem("a.csv", "already text")) == "already text"

    def test_item_text_rejects_structures(self):
        """Structures are not text."""
        with pytest.raises(FormatError):
            item_text(ImportItem("a.csv", {"a": 1}))

    def test_item_json(self):
        """JSON payloads decode; structures pass through."""
        assert item_json(ImportItem("a.json", b'{"a": 1}')) == {"a": 1}
        assert item_json(ImportItem("a.json", [1, 2])) == [1, 2]

    def test_item_json_invalid(self):
        """Invalid JSON is a format error."""
        with pytest.raises(FormatError, match="Invalid JSON"):
            item_json(ImportItem("a.json", b"{not json"))


class TestDispatch:
    def test_json_autodetect_social(self, options):
        """Social-network JSON is detected."""
        payload = json.dumps({"friends_v2": [{"name": "Bob", "timestamp": 1600000000}]}).encode()
        result = get_adapter("json")(ImportItem("friends.json", payload), options)
        assert result.events[0].source is EventSource.FACEBOOK

    def test_json_autodetect_notes(self, options):
        """Notes JSON is detected."""
        note = {"title": "Idea", "textContent": "x", "createdTimestampUsec": 1700000000000000}
        result = get_adapter("json")(ImportItem("Keep/Idea.json", json.dumps(note).encode()), options)
        assert result.events[0].source is EventSource.GOOGLE

    def test_json_autodetect_professional(self, options):
        """Professional-network JSON is detected."""
        data = {"Positions": [{"Company Name": "Acme", "Started On": "2019"}]}
        result = get_adapter("json")(ImportItem("linkedin.json", data), options)
        assert result.events[0].source is EventSource.LINKEDIN

    def test_json_autodetect_unknown(self, options):
        """Unrecognized JSON is a format error."""
        with pytest.raises(FormatError):
            get_adapter("json")(ImportItem("data.json", b'{"foo": 1}'), options)

    def test_photo_requires_bytes(self, options):
        """Photos must be bytes."""
        with pytest.raises(FormatError):
            get_adapter("photo")(ImportItem("a.jpg", "text"), options)

    def test_register_adapter(self, monkeypatch, options):
        """Registered adapters resolve by extension and content type."""
        monkeypatch.setattr(registry, "_ADAPTERS", dict(registry._ADAPTERS))
        monkeypatch.setattr(registry, "_EXTENSIONS", dict(registry._EXTENSIONS))
        monkeypatch.setattr(registry, "_CONTENT_TYPES", dict(registry._CONTENT_TYPES))

        @register_adapter("journal", ["jrnl"], ["text/x-journal"])
        def _parse_journal(item, options):
            return ImportResult.for_item([])

        assert resolve_kind(ImportItem("diary.jrnl", b"")) == "journal"
        assert resolve_kind(ImportItem("diary", b"", content_type="text/x-journal")) == "journal"
        assert get_adapter("journal") is _parse_journal
