"""Binary metadata extractor — EXIF from JPEG buffers.

Only locates and reads the one metadata container; no image decoding.
The marker scan stops at start-of-scan or end-of-image because metadata
cannot legally follow either.  A segment whose declared length runs past
the end of the buffer raises SegmentBoundsError: the buffer is corrupt and
nothing read from it can be trusted.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import PurePosixPath
from typing import Any

from lifeline.core.config import ImportOptions
from lifeline.core.errors import FieldError, SegmentBoundsError
from lifeline.core.models import CanonicalEvent, EventSource, Layer, MediaRef
from lifeline.dates import best_of, date_from_path, resolve_exif
from lifeline.validation import build_event, build_location, has_valid_gps

logger = logging.getLogger(__name__)

SOI = b"\xff\xd8"
EXIF_SIGNATURE = b"Exif\x00\x00"

MARKER_APP1 = 0xE1
MARKER_SOS = 0xDA
MARKER_EOI = 0xD9
# Markers with no length field
STANDALONE_MARKERS = frozenset({0x01, *range(0xD0, 0xD8)})

MAX_IFD_ENTRIES = 500
MAX_VALUE_COUNT = 1000
MAX_STRING_LENGTH = 10_000

# IFD0
TAG_IMAGE_DESCRIPTION = 0x010E
TAG_MAKE = 0x010F
TAG_MODEL = 0x0110
TAG_ORIENTATION = 0x0112
TAG_SOFTWARE = 0x0131
TAG_DATE_TIME = 0x0132
TAG_EXIF_IFD = 0x8769
TAG_GPS_IFD = 0x8825
# Exif sub-IFD
TAG_DATE_TIME_ORIGINAL = 0x9003
TAG_DATE_TIME_DIGITIZED = 0x9004
# GPS IFD
TAG_GPS_LATITUDE_REF = 0x0001
TAG_GPS_LATITUDE = 0x0002
TAG_GPS_LONGITUDE_REF = 0x0003
TAG_GPS_LONGITUDE = 0x0004
TAG_GPS_ALTITUDE_REF = 0x0005
TAG_GPS_ALTITUDE = 0x0006

# type id -> (struct code, size in bytes)
_TYPES: dict[int, tuple[str, int]] = {
    1: ("B", 1),   # BYTE
    2: ("s", 1),   # ASCII
    3: ("H", 2),   # SHORT
    4: ("I", 4),   # LONG
    5: ("II", 8),  # RATIONAL
    7: ("B", 1),   # UNDEFINED
    9: ("i", 4),   # SLONG
    10: ("ii", 8), # SRATIONAL
}


@dataclass
class ExifData:
    """Fields recovered from one EXIF container."""

    date_time: datetime | None = None
    date_time_original: datetime | None = None
    date_time_digitized: datetime | None = None
    gps_latitude: float | None = None
    gps_longitude: float | None = None
    gps_altitude: float | None = None
    make: str | None = None
    model: str | None = None
    software: str | None = None
    image_description: str | None = None
    orientation: int | None = None

    def best_date(self) -> datetime | None:
        """Capture time, then digitized, then file-modified."""
        return best_of(self.date_time_original, self.date_time_digitized, self.date_time)

    @property
    def has_gps(self) -> bool:
        return self.gps_latitude is not None and self.gps_longitude is not None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, datetime):
                data[key] = value.isoformat()
        return data


def extract_exif(buf: bytes) -> ExifData | None:
    """Scan JPEG markers for an EXIF APP1 segment and parse it.

    Returns None when the buffer is not a JPEG or holds no EXIF container.
    """
    if len(buf) < 2 or buf[:2] != SOI:
        return None

    offset = 2
    size = len(buf)
    while offset < size:
        if buf[offset] != 0xFF:
            offset += 1
            continue
        if offset + 1 >= size:
            return None
        marker = buf[offset + 1]
        if marker == 0xFF:
            # Fill byte
            offset += 1
            continue
        if marker in (MARKER_SOS, MARKER_EOI):
            return None
        if marker in STANDALONE_MARKERS:
            offset += 2
            continue

        if offset + 4 > size:
            raise SegmentBoundsError(offset, 2, size - offset - 2)
        (length,) = struct.unpack_from(">H", buf, offset + 2)
        if length < 2:
            raise SegmentBoundsError(offset, length, size - offset - 2)
        end = offset + 2 + length
        if end > size:
            raise SegmentBoundsError(offset, length, size - offset - 2)

        if marker == MARKER_APP1:
            payload = buf[offset + 4 : end]
            if payload.startswith(EXIF_SIGNATURE):
                return parse_tiff(payload[len(EXIF_SIGNATURE) :])
            logger.debug("APP1 at offset %d is not EXIF, skipping", offset)
        offset = end
    return None


def parse_tiff(tiff: bytes) -> ExifData | None:
    """Parse the TIFF structure inside an EXIF container."""
    if len(tiff) < 8:
        return None
    if tiff[:2] == b"II":
        endian = "<"
    elif tiff[:2] == b"MM":
        endian = ">"
    else:
        return None
    (magic,) = struct.unpack_from(endian + "H", tiff, 2)
    if magic != 42:
        return None
    (ifd0,) = struct.unpack_from(endian + "I", tiff, 4)

    data = ExifData()
    exif_ifd: int | None = None
    gps_ifd: int | None = None

    for tag, value in _read_ifd(tiff, ifd0, endian):
        if tag == TAG_IMAGE_DESCRIPTION and isinstance(value, str):
            data.image_description = value or None
        elif tag == TAG_MAKE and isinstance(value, str):
            data.make = value or None
        elif tag == TAG_MODEL and isinstance(value, str):
            data.model = value or None
        elif tag == TAG_SOFTWARE and isinstance(value, str):
            data.software = value or None
        elif tag == TAG_ORIENTATION and isinstance(value, int):
            data.orientation = value
        elif tag == TAG_DATE_TIME:
            data.date_time = resolve_exif(value)
        elif tag == TAG_EXIF_IFD and isinstance(value, int):
            exif_ifd = value
        elif tag == TAG_GPS_IFD and isinstance(value, int):
            gps_ifd = value

    if exif_ifd is not None:
        for tag, value in _read_ifd(tiff, exif_ifd, endian):
            if tag == TAG_DATE_TIME_ORIGINAL:
                data.date_time_original = resolve_exif(value)
            elif tag == TAG_DATE_TIME_DIGITIZED:
                data.date_time_digitized = resolve_exif(value)

    if gps_ifd is not None:
        _apply_gps(data, dict(_read_ifd(tiff, gps_ifd, endian)))

    return data


def _apply_gps(data: ExifData, gps: dict[int, Any]) -> None:
    lat = _dms_to_decimal(gps.get(TAG_GPS_LATITUDE), gps.get(TAG_GPS_LATITUDE_REF), "S")
    lon = _dms_to_decimal(gps.get(TAG_GPS_LONGITUDE), gps.get(TAG_GPS_LONGITUDE_REF), "W")
    if lat is not None and lon is not None and has_valid_gps(lat, lon):
        data.gps_latitude, data.gps_longitude = lat, lon

    altitude = gps.get(TAG_GPS_ALTITUDE)
    if isinstance(altitude, float):
        below_sea_level = gps.get(TAG_GPS_ALTITUDE_REF) == 1
        data.gps_altitude = -altitude if below_sea_level else altitude


def _dms_to_decimal(dms: Any, ref: Any, negative_ref: str) -> float | None:
    """Degree/minute/second rational triplet plus hemisphere -> signed degrees."""
    if not isinstance(dms, tuple) or len(dms) != 3 or not isinstance(ref, str) or not ref:
        return None
    degrees, minutes, seconds = dms
    decimal = degrees + minutes / 60 + seconds / 3600
    return -decimal if ref.upper().startswith(negative_ref) else decimal


def _read_ifd(tiff: bytes, offset: int, endian: str) -> list[tuple[int, Any]]:
    """Read one image file directory.

    Entries whose type is unknown, whose count is excessive, or whose data
    lies outside the container are skipped.
    """
    size = len(tiff)
    if offset < 0 or offset + 2 > size:
        return []
    (count,) = struct.unpack_from(endian + "H", tiff, offset)

    entries: list[tuple[int, Any]] = []
    for i in range(min(count, MAX_IFD_ENTRIES)):
        entry = offset + 2 + i * 12
        if entry + 12 > size:
            break
        tag, type_id, value_count = struct.unpack_from(endian + "HHI", tiff, entry)
        if type_id not in _TYPES or value_count == 0 or value_count > MAX_VALUE_COUNT:
            continue
        code, unit = _TYPES[type_id]
        total = unit * value_count
        if total <= 4:
            data_offset = entry + 8
        else:
            (data_offset,) = struct.unpack_from(endian + "I", tiff, entry + 8)
        if data_offset + total > size:
            continue
        entries.append((tag, _decode_value(tiff, data_offset, type_id, code, value_count, endian)))
    return entries


def _decode_value(tiff: bytes, offset: int, type_id: int, code: str, count: int, endian: str) -> Any:
    if type_id == 2:
        raw = tiff[offset : offset + min(count, MAX_STRING_LENGTH)]
        return raw.split(b"\x00", 1)[0].decode("utf-8", errors="replace").strip()

    values = struct.unpack_from(f"{endian}{code * count}", tiff, offset)
    if type_id in (5, 10):
        pairs = zip(values[0::2], values[1::2])
        values = tuple(0.0 if den == 0 else num / den for num, den in pairs)
    return values[0] if count == 1 else tuple(values)


def photo_event(
    buf: bytes,
    item_id: str,
    *,
    options: ImportOptions | None = None,
) -> CanonicalEvent:
    """One photo event from a JPEG buffer.

    The date comes from EXIF when present, otherwise from a date embedded in
    the item name.  Raises FieldError when neither yields a date.
    """
    options = options or ImportOptions()
    exif = extract_exif(buf) or ExifData()

    date_source = "exif"
    start = exif.best_date()
    if start is None:
        start = date_from_path(item_id)
        date_source = "path"
    if start is None:
        raise FieldError("No capture date in photo metadata or file name", item_id=item_id)

    location = None
    if exif.has_gps:
        location = build_location(exif.gps_latitude, exif.gps_longitude)

    name = PurePosixPath(item_id.replace("\\", "/")).name or item_id
    return build_event(
        title=exif.image_description or name,
        start=start,
        layer=Layer.TRAVEL if location else Layer.MEDIA,
        event_type="photo",
        source=EventSource.PHOTO,
        source_id=f"photo_{item_id}",
        location=location,
        media=[MediaRef(uri=item_id, kind="photo")],
        metadata={
            "date_source": date_source,
            "make": exif.make,
            "model": exif.model,
            "software": exif.software,
            "orientation": exif.orientation,
            "altitude": exif.gps_altitude,
        },
        user_id=options.user_id,
    )
