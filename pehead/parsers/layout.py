"""
Schema-Driven Struct Decoding
==============================

Fixed-size binary records are described as :class:`StructLayout` schemas:
an ordered set of named :class:`StructField` entries, each with an
explicit width and byte offset inside the record.  Two layout disciplines
are supported:

* **sequential** -- fields are placed back-to-back with no padding
  (equivalent to ``#pragma pack(1)``), offsets are derived from widths.
* **explicit** -- every field declares its own offset inside a record of
  a declared total size, independent of declaration order.

Decoding reads each field's byte range directly with :mod:`struct`, always
little-endian, so no host memory-layout assumption leaks into the format.
"""

from __future__ import annotations

import struct
from typing import Any, BinaryIO, Optional, Sequence, cast

from pehead.core.errors import UnexpectedEndOfData


class StructField:
    """A single named field of a fixed-size record.

    Args:
        name:   Key under which the decoded value is returned.
        fmt:    A :mod:`struct` format code without byte-order prefix
                (``"B"``, ``"H"``, ``"I"``, ``"Q"`` or ``"8s"``).
        count:  Repeat count; values are returned as a tuple when > 1.
        offset: Byte offset inside the record (explicit layouts only).
        layout: Nested record layout, used instead of *fmt*.
    """

    __slots__ = ("name", "fmt", "count", "offset", "layout", "_struct", "_width")

    def __init__(
        self,
        name: str,
        fmt: Optional[str] = None,
        *,
        count: int = 1,
        offset: Optional[int] = None,
        layout: Optional[StructLayout] = None,
    ) -> None:
        if (fmt is None) == (layout is None):
            raise ValueError(f"field {name!r} needs exactly one of fmt or layout")
        if count < 1:
            raise ValueError(f"field {name!r} has count {count}")
        self.name = name
        self.fmt = fmt
        self.count = count
        self.offset = offset
        self.layout = layout
        self._struct: Optional[struct.Struct] = None
        if fmt is not None:
            self._struct = struct.Struct("<" + (str(count) if count > 1 else "") + fmt)
            self._width = self._struct.size
        else:
            self._width = cast(StructLayout, layout).size * count

    @property
    def width(self) -> int:
        """Total number of bytes the field occupies."""
        return self._width

    def placed(self, offset: int) -> StructField:
        """Return a copy of this field pinned at *offset*."""
        return StructField(
            self.name, self.fmt, count=self.count, offset=offset, layout=self.layout
        )

    def unpack_from(self, buffer: bytes, base: int) -> Any:
        if self.offset is None:
            raise ValueError(f"field {self.name!r} has not been placed in a layout")
        start = base + self.offset
        if self._struct is not None:
            values = self._struct.unpack_from(buffer, start)
        else:
            nested = cast(StructLayout, self.layout)
            values = tuple(
                nested.unpack_from(buffer, start + i * nested.size)
                for i in range(self.count)
            )
        return values if self.count > 1 else values[0]

    def __repr__(self) -> str:
        kind = self.fmt if self.layout is None else self.layout.name
        return (
            f"StructField({self.name!r}, {kind!r}, count={self.count}, "
            f"offset={self.offset})"
        )


class StructLayout:
    """An immutable description of a fixed-size little-endian record.

    Build instances with :meth:`sequential` or :meth:`explicit` rather
    than calling the constructor directly.
    """

    __slots__ = ("name", "fields", "size")

    def __init__(self, name: str, fields: Sequence[StructField], size: int) -> None:
        self.name = name
        self.fields: tuple[StructField, ...] = tuple(fields)
        self.size = size

    @classmethod
    def sequential(cls, name: str, fields: Sequence[StructField]) -> StructLayout:
        """Lay *fields* out back-to-back with no padding between them."""
        placed: list[StructField] = []
        offset = 0
        for fld in fields:
            if fld.offset is not None:
                raise ValueError(
                    f"{name}.{fld.name}: sequential fields take no explicit offset"
                )
            placed.append(fld.placed(offset))
            offset += fld.width
        return cls(name, placed, offset)

    @classmethod
    def explicit(
        cls, name: str, fields: Sequence[StructField], size: int
    ) -> StructLayout:
        """Place every field at its own declared offset in a *size*-byte record."""
        for fld in fields:
            if fld.offset is None:
                raise ValueError(f"{name}.{fld.name}: explicit field needs an offset")
            if fld.offset < 0 or fld.offset + fld.width > size:
                raise ValueError(
                    f"{name}.{fld.name}: bytes {fld.offset}..{fld.offset + fld.width} "
                    f"fall outside the {size}-byte record"
                )
        return cls(name, fields, size)

    def field(self, name: str) -> StructField:
        for fld in self.fields:
            if fld.name == name:
                return fld
        raise KeyError(name)

    def unpack_from(self, buffer: bytes, offset: int = 0) -> dict[str, Any]:
        """Decode one record starting at *offset* in *buffer*.

        Raises:
            UnexpectedEndOfData: If *buffer* holds fewer than :attr:`size`
                bytes from *offset* on.
        """
        available = len(buffer) - offset
        if available < self.size:
            raise UnexpectedEndOfData(self.name, self.size, max(available, 0))
        return {fld.name: fld.unpack_from(buffer, offset) for fld in self.fields}

    def __repr__(self) -> str:
        return f"StructLayout({self.name!r}, size={self.size}, fields={len(self.fields)})"


def read_exact(source: BinaryIO, size: int, record: str) -> bytes:
    """Read exactly *size* bytes from *source*.

    Short reads from unbuffered streams are retried until EOF.

    Raises:
        UnexpectedEndOfData: If the stream ends first.
    """
    start = source.tell()
    chunks: list[bytes] = []
    remaining = size
    while remaining > 0:
        chunk = source.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    data = b"".join(chunks)
    if len(data) < size:
        raise UnexpectedEndOfData(record, size, len(data), offset=start)
    return data


def read_struct(source: BinaryIO, layout: StructLayout) -> dict[str, Any]:
    """Consume exactly ``layout.size`` bytes from *source* and decode them.

    The stream position advances by the record size on success.  On
    failure :class:`UnexpectedEndOfData` is raised and no values are
    produced.
    """
    data = read_exact(source, layout.size, layout.name)
    return layout.unpack_from(data)
