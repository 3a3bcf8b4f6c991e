"""Collect import items from files, directories and ZIP archives.

This is the only place that touches the filesystem on the import path.
Everything it returns is fully materialized, so the pipeline itself does
no I/O.
"""

from __future__ import annotations

import io
import logging
import zipfile
from collections.abc import Iterable, Iterator
from pathlib import Path, PurePosixPath

from lifeline.core.models import ImportItem
from lifeline.validation import MAX_ITEM_BYTES

logger = logging.getLogger(__name__)

ARCHIVE_EXTENSIONS = frozenset({".zip"})
SKIPPED_ARCHIVE_PREFIXES = ("__MACOSX/",)
SKIPPED_NAMES = frozenset({".DS_Store", "Thumbs.db", "desktop.ini"})


def expand_path(path: str | Path) -> Path:
    """Expand user home directory and resolve path."""
    return Path(path).expanduser().resolve()


def _is_archive(name: str) -> bool:
    return PurePosixPath(name).suffix.lower() in ARCHIVE_EXTENSIONS


def _skip_member(name: str) -> bool:
    if name.startswith(SKIPPED_ARCHIVE_PREFIXES) or "/__MACOSX/" in name:
        return True
    return PurePosixPath(name).name in SKIPPED_NAMES


def _archive_items(
    archive: zipfile.ZipFile,
    prefix: str,
    max_item_bytes: int,
    *,
    depth: int,
) -> Iterator[ImportItem]:
    for info in archive.infolist():
        if info.is_dir() or _skip_member(info.filename):
            continue
        item_id = f"{prefix}/{info.filename}"
        if info.file_size > max_item_bytes:
            # Not read; the pipeline rejects it on the declared size
            yield ImportItem(item_id=item_id, size=info.file_size)
            continue
        data = archive.read(info)
        if _is_archive(info.filename):
            if depth >= 1:
                logger.debug("Not expanding %s: archives nest one level only", item_id)
                continue
            yield from _zip_bytes_items(data, item_id, max_item_bytes, depth=depth + 1)
            continue
        yield ImportItem(item_id=item_id, data=data)


def _zip_bytes_items(data: bytes, item_id: str, max_item_bytes: int, *, depth: int) -> Iterator[ImportItem]:
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile:
        logger.warning("Skipping %s: not a valid ZIP archive", item_id)
        return
    with archive:
        yield from _archive_items(archive, item_id, max_item_bytes, depth=depth)


def _file_items(path: Path, item_id: str, max_item_bytes: int) -> Iterator[ImportItem]:
    size = path.stat().st_size
    if _is_archive(path.name) and zipfile.is_zipfile(path):
        with zipfile.ZipFile(path) as archive:
            yield from _archive_items(archive, item_id, max_item_bytes, depth=0)
        return
    if size > max_item_bytes:
        yield ImportItem(item_id=item_id, size=size)
        return
    yield ImportItem(item_id=item_id, data=path.read_bytes())


def collect_items(
    paths: Iterable[str | Path],
    max_item_bytes: int = MAX_ITEM_BYTES,
) -> list[ImportItem]:
    """Read files, directories (recursively) and ZIP archives into items.

    Item ids are paths relative to the directory or archive they came
    from, prefixed with its name, so path-embedded dates and export file
    names survive.  Oversized files are not read; they carry their size
    and an empty payload.

    Raises:
        FileNotFoundError: a path does not exist.
    """
    paths = list(paths)
    items: list[ImportItem] = []
    for raw in paths:
        path = expand_path(raw)
        if not path.exists():
            raise FileNotFoundError(f"Input not found: {raw}")
        if path.is_dir():
            for child in sorted(p for p in path.rglob("*") if p.is_file()):
                rel = child.relative_to(path).as_posix()
                if _skip_member(rel):
                    continue
                items.extend(_file_items(child, f"{path.name}/{rel}", max_item_bytes))
        else:
            items.extend(_file_items(path, path.name, max_item_bytes))
    logger.info("Collected %d items from %d path(s)", len(items), len(paths))
    return items
