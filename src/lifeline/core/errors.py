"""Lifeline error types.

Three kinds are non-fatal and end up as entries in an ImportResult's error
list: FormatError (the item's top-level shape is unrecognized), FieldError
(one record inside a recognized item is invalid) and SizeError (the item is
rejected before parsing).  FatalError is never collected; it propagates out
of the pipeline because partial output would be untrustworthy.
"""

from __future__ import annotations


class LifelineError(Exception):
    """Base exception for Lifeline."""

    kind = "error"

    def __init__(self, message: str, *, item_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.item_id = item_id


class FormatError(LifelineError):
    """Top-level shape of an item is unrecognized."""

    kind = "format"


class FieldError(LifelineError):
    """A single field of an otherwise recognized record failed validation."""

    kind = "field"


class SizeError(LifelineError):
    """An item exceeds a byte or character ceiling."""

    kind = "size"

    def __init__(self, item_id: str, size: int, limit: int):
        super().__init__(
            f'Item "{item_id}" is too large ({_human_size(size)}). '
            f"Maximum allowed size is {_human_size(limit)}.",
            item_id=item_id,
        )
        self.size = size
        self.limit = limit


class FatalError(LifelineError):
    """An internal invariant was violated; the batch must not continue silently."""

    kind = "fatal"


class DelimitedParseError(FormatError):
    """Tokenizer failure in delimited text, with position info when known."""

    def __init__(self, message: str, line: int | None = None, column: int | None = None):
        location = ""
        if line is not None:
            location = f" (line {line}" + (f", column {column})" if column is not None else ")")
        super().__init__(message + location)
        self.line = line
        self.column = column


class SegmentBoundsError(FatalError):
    """A length-prefixed binary segment claims more bytes than remain."""

    def __init__(self, offset: int, length: int, available: int):
        super().__init__(
            f"Segment at offset {offset} declares {length} bytes "
            f"but only {available} remain in the buffer"
        )
        self.offset = offset
        self.length = length
        self.available = available


def _human_size(size: int) -> str:
    if size >= 1024 * 1024:
        return f"{round(size / (1024 * 1024))}MB"
    if size >= 1024:
        return f"{round(size / 1024)}KB"
    return f"{size} bytes"
