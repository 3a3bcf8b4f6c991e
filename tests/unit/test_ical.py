"""Unit tests for the calendar-text parser."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from lifeline.adapters.ical import (
    parse_calendar,
    parse_ical,
    split_content_line,
    unescape,
    unfold,
)
from lifeline.core.config import ImportOptions
from lifeline.core.errors import FormatError, SizeError
from lifeline.core.models import EventSource, Layer


def calendar(*lines: str) -> str:
    return "\r\n".join(["BEGIN:VCALENDAR", *lines, "END:VCALENDAR"]) + "\r\n"


def vevent(*lines: str) -> list[str]:
    return ["BEGIN:VEVENT", *lines, "END:VEVENT"]


class TestLexing:
    def test_unfold_removes_single_indicator(self):
        """Unfolding removes exactly one leading space or tab."""
        assert unfold("DESCRIPTION:abc\r\n def\r\n\tghi") == ["DESCRIPTION:abcdefghi"]

    def test_unfold_keeps_extra_spaces(self):
        """Spaces past the fold indicator are kept."""
        assert unfold("SUMMARY:Long\n  text") == ["SUMMARY:Long text"]

    def test_unescape_single_pass(self):
        """Escapes are undone in one pass."""
        assert unescape(r"a\,b\;c\nd\\n") == "a,b;c\nd\\n"

    def test_split_content_line(self):
        """Names and parameters are uppercased; quotes are stripped."""
        line = split_content_line('DTSTART;TZID="America/New_York";value=DATE-TIME:20240101T090000')
        assert line.name == "DTSTART"
        assert line.params == {"TZID": "America/New_York", "VALUE": "DATE-TIME"}
        assert line.value == "20240101T090000"

    def test_colon_inside_quoted_param(self):
        """A colon inside a quoted parameter does not split the value."""
        line = split_content_line('ATTENDEE;CN="Doe: Jane":mailto:jane@example.com')
        assert line.params["CN"] == "Doe: Jane"
        assert line.value == "mailto:jane@example.com"

    def test_not_a_content_line(self):
        """Lines without a name and colon are rejected."""
        assert split_content_line("garbage") is None
        assert split_content_line(":value") is None


class TestParseCalendar:
    def test_reopened_record_discarded(self):
        """A VEVENT re-opened before its END is discarded."""
        text = "\n".join(
            ["BEGIN:VEVENT", "SUMMARY:A", "BEGIN:VEVENT", "SUMMARY:B", "DTSTART:20240101", "END:VEVENT"]
        )
        records, diagnostics = parse_calendar(text)
        assert [r.summary for r in records] == ["B"]
        assert diagnostics == ["Discarded VEVENT that was re-opened before END:VEVENT"]

    def test_unterminated_record_discarded(self):
        """A VEVENT without END is discarded."""
        records, diagnostics = parse_calendar("BEGIN:VEVENT\nSUMMARY:A\nDTSTART:20240101")
        assert records == []
        assert diagnostics == ["Discarded VEVENT without END:VEVENT"]

    def test_end_inside_nested_component_reported(self):
        """A VEVENT closed while a VALARM is still open is dropped with a diagnostic."""
        text = calendar(
            *vevent("SUMMARY:Broken", "DTSTART:20240101", "BEGIN:VALARM", "ACTION:DISPLAY"),
            *vevent("SUMMARY:Fine", "DTSTART:20240102"),
        )
        records, diagnostics = parse_calendar(text)
        assert [r.summary for r in records] == ["Fine"]
        assert diagnostics == ["Discarded VEVENT that ended inside an unclosed nested component"]

        result = parse_ical(text, "cal.ics")
        assert [e.title for e in result.events] == ["Fine"]
        assert result.errors[0].kind == "field"

    def test_nested_components_ignored(self):
        """Properties inside VALARM do not leak into the event."""
        text = calendar(
            *vevent(
                "SUMMARY:Dinner",
                "DTSTART:20240101T190000Z",
                "BEGIN:VALARM",
                "DESCRIPTION:Reminder",
                "SUMMARY:Alarm",
                "END:VALARM",
                "DESCRIPTION:At home",
            )
        )
        records, _ = parse_calendar(text)
        assert records[0].summary == "Dinner"
        assert records[0].description == "At home"

    def test_categories_split_on_unescaped_commas(self):
        """CATEGORIES splits only on unescaped commas."""
        records, _ = parse_calendar(calendar(*vevent("SUMMARY:x", r"CATEGORIES:Work,Rock\, Paper")))
        assert records[0].categories == ["Work", "Rock, Paper"]


class TestParseIcal:
    def test_sample(self, sample_ics, options):
        """The sample calendar yields a one-off and a recurring event."""
        result = parse_ical(sample_ics, "cal.ics", options=options)
        assert result.errors == []
        doctor, meeting = result.events

        assert doctor.title == "Doctor appointment"
        assert doctor.start == datetime(2024, 1, 15, 9, 30, tzinfo=UTC)
        assert doctor.end == datetime(2024, 1, 15, 10, 0, tzinfo=UTC)
        assert doctor.layer is Layer.HEALTH
        assert doctor.location.name == "City Clinic"
        assert doctor.event_type == "event"
        assert doctor.source is EventSource.ICAL
        assert doctor.source_id == "evt-1@example.com"

        assert meeting.layer is Layer.WORK
        assert meeting.event_type == "recurring_event"
        assert meeting.start == datetime(2024, 1, 16, 10, 0, tzinfo=UTC)
        assert meeting.metadata["recurring"] is True
        assert meeting.metadata["rrule"] == "FREQ=WEEKLY;BYDAY=TU"
        assert meeting.metadata["tzid"] == "Europe/Berlin"
        assert meeting.metadata["organizer"] == "boss@example.com"
        assert meeting.metadata["attendees"] == ["jane@example.com"]

    def test_all_day(self):
        """DATE values give all-day events."""
        result = parse_ical(calendar(*vevent("UID:a", "SUMMARY:Holiday", "DTSTART;VALUE=DATE:20240301")))
        event = result.events[0]
        assert event.event_type == "all_day_event"
        assert event.metadata["all_day"] is True
        assert event.start == datetime(2024, 3, 1, tzinfo=UTC)

    def test_cancelled_and_incomplete_skipped(self):
        """Cancelled events and those missing a summary or start are skipped."""
        text = calendar(
            *vevent("SUMMARY:Gone", "DTSTART:20240101", "STATUS:CANCELLED"),
            *vevent("SUMMARY:No start"),
            *vevent("DTSTART:20240101"),
        )
        result = parse_ical(text)
        assert result.events == []
        assert result.errors == []

    def test_category_names_layer(self):
        """A category naming a layer sets it."""
        result = parse_ical(calendar(*vevent("SUMMARY:Team meeting", "DTSTART:20240101", "CATEGORIES:Travel")))
        assert result.events[0].layer is Layer.TRAVEL

    def test_geo(self):
        """GEO gives a location and the travel bonus."""
        result = parse_ical(calendar(*vevent("SUMMARY:Picnic", "DTSTART:20240601", "GEO:48.85;2.35")))
        location = result.events[0].location
        assert (location.latitude, location.longitude) == (48.85, 2.35)
        assert result.events[0].layer is Layer.TRAVEL

    def test_bad_start_reported_with_uid(self):
        """A bad DTSTART is reported under the event UID."""
        text = calendar(
            *vevent("UID:bad-1", "SUMMARY:Broken", "DTSTART:2024ABCD"),
            *vevent("UID:ok-1", "SUMMARY:Fine", "DTSTART:20240101"),
        )
        result = parse_ical(text, "cal.ics")
        assert [e.source_id for e in result.events] == ["ok-1"]
        assert len(result.errors) == 1
        assert result.errors[0].message == "bad-1: Invalid start date: 2024ABCD"
        assert result.errors[0].kind == "field"

    def test_structural_diagnostics_become_errors(self):
        """Structural diagnostics surface as item errors."""
        text = "BEGIN:VCALENDAR\nBEGIN:VEVENT\nSUMMARY:Cut off\nDTSTART:20240101\n"
        result = parse_ical(text, "cal.ics")
        assert result.events == []
        assert result.errors[0].message == "Discarded VEVENT without END:VEVENT"
        assert result.stats.items_processed == 1

    def test_not_a_calendar(self):
        """Text without VCALENDAR or VEVENT is rejected."""
        with pytest.raises(FormatError, match="Not a calendar file"):
            parse_ical("hello world", "notes.ics")

    def test_size_checked_first(self, sample_ics):
        """Oversized input is rejected before parsing."""
        with pytest.raises(SizeError):
            parse_ical(sample_ics, "cal.ics", options=ImportOptions(max_item_bytes=10))
