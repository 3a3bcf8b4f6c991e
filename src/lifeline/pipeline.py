"""Pipeline orchestrator — fan a batch of items out to parsers, merge the outcomes.

Each item is parsed independently with no shared mutable state, so items
run on a thread pool when ``concurrency > 1``.  Per-item results are
merged in submission order on the calling thread, which is also the only
thread that touches the logger; the merged result is therefore identical
whatever order the workers finish in.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any

from lifeline.adapters.registry import get_adapter, resolve_kind
from lifeline.core.config import ImportOptions
from lifeline.core.errors import FatalError, FieldError, FormatError, SizeError
from lifeline.core.logging import ImportLogger
from lifeline.core.models import ImportItem, ImportResult, ItemError
from lifeline.validation import check_size

logger = logging.getLogger(__name__)


def process_item(item: ImportItem, options: ImportOptions) -> ImportResult:
    """Gate, size-check and parse a single item.

    Non-fatal errors are folded into the returned result.  FatalError
    propagates, tagged with the item's id.
    """
    kind = resolve_kind(item)
    if kind is None:
        logger.debug("Skipping %s: no parser for this content type or name", item.item_id)
        return ImportResult.skipped()

    size = item.byte_size
    try:
        if size is not None:
            check_size(item.item_id, size, options.max_item_bytes)
        adapter = get_adapter(kind)
        if adapter is None:
            raise FormatError(f"No parser registered for kind {kind!r}", item_id=item.item_id)
        return adapter(item, options)
    except FatalError as exc:
        if exc.item_id is None:
            exc.item_id = item.item_id
        raise
    except SizeError as exc:
        return ImportResult.skipped(ItemError(item.item_id, exc.message, kind=exc.kind))
    except FormatError as exc:
        return ImportResult.skipped(ItemError(item.item_id, exc.message, kind=exc.kind))
    except FieldError as exc:
        return ImportResult.for_item([], [ItemError(item.item_id, exc.message, kind=exc.kind)])


def run_import(
    items: Iterable[ImportItem],
    options: ImportOptions | None = None,
    *,
    cancel: threading.Event | None = None,
    import_logger: ImportLogger | None = None,
) -> ImportResult:
    """Import a batch of items into one ImportResult.

    Args:
        items: Fully materialized input items.
        options: Parse options; defaults to ``ImportOptions()``.
        cancel: When set, no further items are started.  Items already
            finished keep their events and ``stats.cancelled`` is set.
        import_logger: Structured run logger.

    Raises:
        FatalError: an item's data violated an invariant badly enough that
            no output from the batch should be trusted.
    """
    items = list(items)
    options = options or ImportOptions()
    import_logger = import_logger or ImportLogger()
    stop = threading.Event()

    def should_stop() -> bool:
        return stop.is_set() or (cancel is not None and cancel.is_set())

    def _run_one(index: int, item: ImportItem) -> tuple[int, ImportResult | None, float]:
        """Parse one item, returning (index, result, seconds); result is None if not started."""
        if should_stop():
            return index, None, 0.0
        start = time.perf_counter()
        result = process_item(item, options)
        return index, result, time.perf_counter() - start

    import_logger.run_start(len(items), options.concurrency)
    for item in items:
        import_logger.item_start(item.item_id, resolve_kind(item))

    outcomes: list[tuple[ImportResult | None, float]] = [(None, 0.0)] * len(items)
    fatal: tuple[int, FatalError] | None = None

    if options.concurrency <= 1 or len(items) <= 1:
        for index, item in enumerate(items):
            try:
                _, result, elapsed = _run_one(index, item)
            except FatalError as exc:
                fatal = (index, exc)
                break
            outcomes[index] = (result, elapsed)
    else:
        with ThreadPoolExecutor(max_workers=options.concurrency) as pool:
            futures = {pool.submit(_run_one, i, item): i for i, item in enumerate(items)}
            for future in as_completed(futures):
                idx = futures[future]
                try:
                    _, result, elapsed = future.result()
                except FatalError as exc:
                    stop.set()
                    # Lowest index wins so the reported item is deterministic
                    if fatal is None or idx < fatal[0]:
                        fatal = (idx, exc)
                    continue
                outcomes[idx] = (result, elapsed)

    if fatal is not None:
        index, exc = fatal
        item_id = exc.item_id or items[index].item_id
        logger.error("Fatal error in %s: %s", item_id, exc.message)
        import_logger.item_failed(item_id, exc.message)
        raise exc

    merged = ImportResult()
    started = 0
    for item, (result, elapsed) in zip(items, outcomes):
        if result is None:
            continue
        started += 1
        import_logger.item_finish(item.item_id, result, elapsed)
        merged = merged.merge(result)

    merged.stats.items_submitted = len(items)
    merged.stats.cancelled = started < len(items)
    import_logger.run_finish(merged)
    logger.info(
        "Imported %d events from %d items (%d skipped, %d errors)",
        merged.stats.events_produced,
        merged.stats.items_processed,
        merged.stats.items_skipped,
        len(merged.errors),
    )
    return merged


# ---------------------------------------------------------------------------
# Single-item entry points
# ---------------------------------------------------------------------------


def import_item(item: ImportItem, options: ImportOptions | None = None) -> ImportResult:
    """Import one named item (raw bytes plus a content-type/name hint)."""
    return run_import([item], options)


def import_bytes(
    name: str,
    data: bytes,
    *,
    content_type: str | None = None,
    options: ImportOptions | None = None,
) -> ImportResult:
    return import_item(ImportItem(item_id=name, data=data, content_type=content_type), options)


def import_text(
    text: str,
    kind: str,
    *,
    item_id: str | None = None,
    options: ImportOptions | None = None,
) -> ImportResult:
    """Import already-decoded text as the given kind ("csv", "ical", ...)."""
    return import_item(ImportItem(item_id=item_id or f"{kind}-text", data=text, kind=kind), options)


def import_data(
    data: Any,
    kind: str = "json",
    *,
    item_id: str | None = None,
    options: ImportOptions | None = None,
) -> ImportResult:
    """Import an already-parsed JSON-like structure.

    ``kind`` may name a specific export ("google", "facebook", "linkedin")
    or be left as "json" to detect it from the structure.
    """
    return import_item(ImportItem(item_id=item_id or f"{kind}-data", data=data, kind=kind), options)
