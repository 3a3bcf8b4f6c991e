"""Shared test fixtures for Lifeline."""

from __future__ import annotations

import struct

import pytest

from lifeline.config import Settings, reset_settings
from lifeline.core.config import ImportOptions
from lifeline.db import reset_engines

# TIFF field types
ASCII = 2
SHORT = 3
LONG = 4
RATIONAL = 5

TAG_MAKE = 0x010F
TAG_MODEL = 0x0110
TAG_DATE_TIME = 0x0132
TAG_EXIF_IFD = 0x8769
TAG_GPS_IFD = 0x8825
TAG_DATE_TIME_ORIGINAL = 0x9003
TAG_DATE_TIME_DIGITIZED = 0x9004


def _ascii(value: str) -> tuple[int, int, bytes]:
    raw = value.encode() + b"\x00"
    return ASCII, len(raw), raw


def _rationals(values, endian: str) -> tuple[int, int, bytes]:
    raw = b"".join(struct.pack(endian + "II", num, den) for num, den in values)
    return RATIONAL, len(values), raw


def _ifd(entries: list[tuple[int, int, int, bytes]], start: int, endian: str) -> bytes:
    """Serialize one IFD placed at *start*, with out-of-line values after it."""
    entries = sorted(entries)
    data_start = start + 2 + len(entries) * 12 + 4
    body = b""
    extra = b""
    for tag, type_id, count, payload in entries:
        if len(payload) <= 4:
            value = payload.ljust(4, b"\x00")
        else:
            value = struct.pack(endian + "I", data_start + len(extra))
            extra += payload
            if len(extra) % 2:
                extra += b"\x00"
        body += struct.pack(endian + "HHI", tag, type_id, count) + value
    return struct.pack(endian + "H", len(entries)) + body + struct.pack(endian + "I", 0) + extra


def build_tiff(
    *,
    make: str | None = None,
    model: str | None = None,
    date_time: str | None = None,
    date_time_original: str | None = None,
    date_time_digitized: str | None = None,
    gps: tuple[tuple, str, tuple, str] | None = None,
    big_endian: bool = False,
) -> bytes:
    endian = ">" if big_endian else "<"
    header = (b"MM" if big_endian else b"II") + struct.pack(endian + "HI", 42, 8)

    ifd0: list[tuple[int, int, int, bytes]] = []
    if make:
        ifd0.append((TAG_MAKE, *_ascii(make)))
    if model:
        ifd0.append((TAG_MODEL, *_ascii(model)))
    if date_time:
        ifd0.append((TAG_DATE_TIME, *_ascii(date_time)))

    exif: list[tuple[int, int, int, bytes]] = []
    if date_time_original:
        exif.append((TAG_DATE_TIME_ORIGINAL, *_ascii(date_time_original)))
    if date_time_digitized:
        exif.append((TAG_DATE_TIME_DIGITIZED, *_ascii(date_time_digitized)))

    gps_entries: list[tuple[int, int, int, bytes]] = []
    if gps:
        lat, lat_ref, lon, lon_ref = gps
        gps_entries = [
            (0x0001, *_ascii(lat_ref)),
            (0x0002, *_rationals(lat, endian)),
            (0x0003, *_ascii(lon_ref)),
            (0x0004, *_rationals(lon, endian)),
        ]

    def pointer(tag: int, offset: int) -> tuple[int, int, int, bytes]:
        return tag, LONG, 1, struct.pack(endian + "I", offset)

    # Pointer values don't change IFD sizes, so lay out with placeholders first
    placeholders = list(ifd0)
    if exif:
        placeholders.append(pointer(TAG_EXIF_IFD, 0))
    if gps_entries:
        placeholders.append(pointer(TAG_GPS_IFD, 0))
    ifd0_size = len(_ifd(placeholders, 8, endian))

    exif_offset = 8 + ifd0_size
    exif_block = _ifd(exif, exif_offset, endian) if exif else b""
    gps_offset = exif_offset + len(exif_block)
    gps_block = _ifd(gps_entries, gps_offset, endian) if gps_entries else b""

    if exif:
        ifd0.append(pointer(TAG_EXIF_IFD, exif_offset))
    if gps_entries:
        ifd0.append(pointer(TAG_GPS_IFD, gps_offset))
    return header + _ifd(ifd0, 8, endian) + exif_block + gps_block


def segment(marker: int, payload: bytes) -> bytes:
    return bytes([0xFF, marker]) + struct.pack(">H", len(payload) + 2) + payload


def build_jpeg(tiff: bytes | None = None, *, app1_payload: bytes | None = None) -> bytes:
    """SOI, a JFIF APP0, the EXIF APP1, a scan header and EOI."""
    parts = [b"\xff\xd8", segment(0xE0, b"JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00")]
    if app1_payload is not None:
        parts.append(segment(0xE1, app1_payload))
    elif tiff is not None:
        parts.append(segment(0xE1, b"Exif\x00\x00" + tiff))
    parts.append(segment(0xDA, b"\x00" * 10))
    parts.append(b"\x00" * 32)
    parts.append(b"\xff\xd9")
    return b"".join(parts)


@pytest.fixture
def options():
    """Default import options (MDY slash dates, no custom keywords)."""
    return ImportOptions()


@pytest.fixture
def make_tiff():
    """Factory for TIFF/EXIF payloads."""
    return build_tiff


@pytest.fixture
def make_jpeg():
    """Factory for minimal JPEG buffers around an EXIF payload."""
    return build_jpeg


@pytest.fixture
def exif_jpeg():
    """A JPEG with capture date, camera and GPS (Paris) in its EXIF block."""
    tiff = build_tiff(
        make="Canon",
        model="EOS R6",
        date_time="2023:07:05 09:00:00",
        date_time_original="2023:07:04 12:30:45",
        gps=(((48, 1), (51, 1), (2964, 100)), "N", ((2, 1), (17, 1), (4020, 100)), "E"),
    )
    return build_jpeg(tiff)


@pytest.fixture
def sample_csv():
    return (
        "Title,Date,Description,Layer\n"
        "Flight to Lisbon,2023-05-01,Vacation trip,\n"
        "Dentist,05/03/2023,Checkup,health\n"
        "Team offsite,2023-06-10,,work\n"
    )


@pytest.fixture
def sample_ics():
    return (
        "BEGIN:VCALENDAR\r\n"
        "VERSION:2.0\r\n"
        "BEGIN:VEVENT\r\n"
        "UID:evt-1@example.com\r\n"
        "SUMMARY:Doctor appointment\r\n"
        "DTSTART:20240115T093000Z\r\n"
        "DTEND:20240115T100000Z\r\n"
        "LOCATION:City Clinic\r\n"
        "END:VEVENT\r\n"
        "BEGIN:VEVENT\r\n"
        "UID:evt-2@example.com\r\n"
        "SUMMARY:Weekly team meeting\r\n"
        "DTSTART;TZID=Europe/Berlin:20240116T100000\r\n"
        "RRULE:FREQ=WEEKLY;BYDAY=TU\r\n"
        "ORGANIZER:mailto:boss@example.com\r\n"
        "ATTENDEE;CN=\"Doe, Jane\":mailto:jane@example.com\r\n"
        "END:VEVENT\r\n"
        "END:VCALENDAR\r\n"
    )


@pytest.fixture
def storage(tmp_path, monkeypatch):
    """Point settings and the event store at a temporary directory."""
    storage_dir = tmp_path / "store"
    monkeypatch.setenv("LIFELINE_STORAGE_DIR", str(storage_dir))
    reset_settings()
    reset_engines()
    yield Settings(storage_dir=storage_dir)
    reset_engines()
    reset_settings()
