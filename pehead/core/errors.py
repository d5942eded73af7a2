"""
Pehead Decode Errors
=====================

Exception hierarchy raised by the PE header decoder.  Every failure is
fatal to the current decode call: no partially-populated result is ever
returned alongside one of these errors.
"""

from __future__ import annotations

from typing import Optional


class PeheadError(Exception):
    """Base class for every PE header decode failure."""


class UnexpectedEndOfData(PeheadError):
    """The byte source ran out before a fixed-size record could be read.

    Attributes:
        record: Name of the record being decoded (e.g. ``"IMAGE_FILE_HEADER"``).
        offset: Absolute stream offset at which the read started, if known.
        expected: Number of bytes the record requires.
        available: Number of bytes that could actually be read.
    """

    def __init__(
        self,
        record: str,
        expected: int,
        available: int,
        offset: Optional[int] = None,
    ) -> None:
        self.record = record
        self.expected = expected
        self.available = available
        self.offset = offset
        where = f" at offset 0x{offset:x}" if offset is not None else ""
        super().__init__(
            f"Unexpected end of data reading {record}{where}: "
            f"needed {expected} bytes, got {available}"
        )


class InvalidOffset(PeheadError):
    """A header field points outside the byte source.

    Raised before seeking when ``e_lfanew`` or the end of the section
    table lies beyond the end of the source.
    """

    def __init__(
        self,
        field: str,
        offset: int,
        source_size: int,
        reason: Optional[str] = None,
    ) -> None:
        self.field = field
        self.offset = offset
        self.source_size = source_size
        if reason is None:
            reason = f"beyond the end of the source ({source_size} bytes)"
        super().__init__(f"{field} points to offset 0x{offset:x}, {reason}")


class InvalidSignature(PeheadError):
    """A magic value does not match (strict mode only)."""

    def __init__(self, what: str, expected: bytes, actual: bytes) -> None:
        self.what = what
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Invalid {what}: expected {expected!r}, found {actual!r}"
        )
