"""
PE/COFF Header Parser
======================

Schema-driven decoder for the header region of a Portable Executable
(PE) image: the MS-DOS header, the COFF file header, the PE32 or PE32+
optional header and the section table.

Decoding is a strict four-stage pipeline over a seekable byte stream:

    1. DOS header at offset 0, yielding ``e_lfanew``
    2. seek to ``e_lfanew``, read the 4-byte signature, then the file header
    3. the 32-bit or 64-bit optional header, chosen by file header flag 0x0100
    4. ``NumberOfSections`` section headers, back-to-back

The read position only moves forward.  Any failure aborts the whole
decode; no partially-populated result is ever returned.

References:
    - Microsoft. (2024). PE Format. Microsoft Learn.
      https://learn.microsoft.com/en-us/windows/win32/debug/pe-format
    - Pietrek, M. (1994). Peering Inside the PE: A Tour of the Win32
      Portable Executable File Format. Microsoft Systems Journal.
"""

from __future__ import annotations

import io
import os
from pathlib import Path
from typing import Any, BinaryIO, Optional

from shared.logger import PeheadLogger

from pehead.core.errors import InvalidOffset, InvalidSignature
from pehead.core.flags import (
    MZ_MAGIC,
    NUMBER_OF_DIRECTORY_ENTRIES,
    PE_MAGIC,
    is_32bit_characteristics,
)
from pehead.core.models import (
    DATA_DIRECTORY_NAMES,
    DataDirectories,
    DataDirectory,
    DosHeader,
    FileHeader,
    HeaderOffsets,
    OptionalHeader32,
    OptionalHeader64,
    PeHeaders,
    SectionHeader,
)
from pehead.parsers.layout import StructField, StructLayout, read_struct


# ---------------------------------------------------------------------------
# Record layouts
# ---------------------------------------------------------------------------

DOS_HEADER = StructLayout.sequential("IMAGE_DOS_HEADER", [
    StructField("e_magic", "H"),
    StructField("e_cblp", "H"),
    StructField("e_cp", "H"),
    StructField("e_crlc", "H"),
    StructField("e_cparhdr", "H"),
    StructField("e_minalloc", "H"),
    StructField("e_maxalloc", "H"),
    StructField("e_ss", "H"),
    StructField("e_sp", "H"),
    StructField("e_csum", "H"),
    StructField("e_ip", "H"),
    StructField("e_cs", "H"),
    StructField("e_lfarlc", "H"),
    StructField("e_ovno", "H"),
    StructField("e_res", "H", count=4),
    StructField("e_oemid", "H"),
    StructField("e_oeminfo", "H"),
    StructField("e_res2", "H", count=10),
    StructField("e_lfanew", "I"),  # offset 60
])

NT_SIGNATURE = StructLayout.sequential("NT_SIGNATURE", [
    StructField("signature", "I"),
])

FILE_HEADER = StructLayout.sequential("IMAGE_FILE_HEADER", [
    StructField("machine", "H"),
    StructField("number_of_sections", "H"),
    StructField("time_date_stamp", "I"),
    StructField("pointer_to_symbol_table", "I"),
    StructField("number_of_symbols", "I"),
    StructField("size_of_optional_header", "H"),
    StructField("characteristics", "H"),
])

DATA_DIRECTORY = StructLayout.sequential("IMAGE_DATA_DIRECTORY", [
    StructField("virtual_address", "I"),
    StructField("size", "I"),
])


def _optional_header_fields(wide: str, with_base_of_data: bool) -> list[StructField]:
    """Field list shared by both optional headers.

    *wide* is the format code of the address-sized fields (``"I"`` for
    PE32, ``"Q"`` for PE32+).
    """
    fields = [
        StructField("magic", "H"),
        StructField("major_linker_version", "B"),
        StructField("minor_linker_version", "B"),
        StructField("size_of_code", "I"),
        StructField("size_of_initialized_data", "I"),
        StructField("size_of_uninitialized_data", "I"),
        StructField("address_of_entry_point", "I"),
        StructField("base_of_code", "I"),
    ]
    if with_base_of_data:
        fields.append(StructField("base_of_data", "I"))
    fields += [
        StructField("image_base", wide),
        StructField("section_alignment", "I"),
        StructField("file_alignment", "I"),
        StructField("major_operating_system_version", "H"),
        StructField("minor_operating_system_version", "H"),
        StructField("major_image_version", "H"),
        StructField("minor_image_version", "H"),
        StructField("major_subsystem_version", "H"),
        StructField("minor_subsystem_version", "H"),
        StructField("win32_version_value", "I"),
        StructField("size_of_image", "I"),
        StructField("size_of_headers", "I"),
        StructField("check_sum", "I"),
        StructField("subsystem", "H"),
        StructField("dll_characteristics", "H"),
        StructField("size_of_stack_reserve", wide),
        StructField("size_of_stack_commit", wide),
        StructField("size_of_heap_reserve", wide),
        StructField("size_of_heap_commit", wide),
        StructField("loader_flags", "I"),
        StructField("number_of_rva_and_sizes", "I"),
        StructField(
            "data_directories",
            layout=DATA_DIRECTORY,
            count=NUMBER_OF_DIRECTORY_ENTRIES,
        ),
    ]
    return fields


OPTIONAL_HEADER32 = StructLayout.sequential(
    "IMAGE_OPTIONAL_HEADER32", _optional_header_fields("I", with_base_of_data=True)
)
OPTIONAL_HEADER64 = StructLayout.sequential(
    "IMAGE_OPTIONAL_HEADER64", _optional_header_fields("Q", with_base_of_data=False)
)

# Explicit offsets: Name and Characteristics sit at fixed byte ranges.
SECTION_HEADER = StructLayout.explicit("IMAGE_SECTION_HEADER", [
    StructField("raw_name", "8s", offset=0),
    StructField("virtual_size", "I", offset=8),
    StructField("virtual_address", "I", offset=12),
    StructField("size_of_raw_data", "I", offset=16),
    StructField("pointer_to_raw_data", "I", offset=20),
    StructField("pointer_to_relocations", "I", offset=24),
    StructField("pointer_to_linenumbers", "I", offset=28),
    StructField("number_of_relocations", "H", offset=32),
    StructField("number_of_linenumbers", "H", offset=34),
    StructField("characteristics", "I", offset=36),
], size=40)


def _data_directories(entries: tuple[dict[str, Any], ...]) -> DataDirectories:
    return DataDirectories(**{
        name: DataDirectory(**entry)
        for name, entry in zip(DATA_DIRECTORY_NAMES, entries)
    })


# ---------------------------------------------------------------------------
# PE header parser
# ---------------------------------------------------------------------------

class PEHeaderParser:
    """Four-stage PE/COFF header decoder.

    The parser holds only options, never per-decode state, so one instance
    can serve any number of :meth:`parse` calls, each on its own stream.

    Usage::

        parser = PEHeaderParser()
        with open("app.exe", "rb") as fh:
            headers = parser.parse(fh)
        if headers.is_32bit_header:
            print(hex(headers.optional_header32.image_base))

    Args:
        strict_signature: Reject images whose DOS magic is not ``MZ`` or
            whose NT signature is not ``PE\\0\\0``.  Off by default: the
            signature is kept on the result and a warning is logged.
        validate_offsets: Check ``e_lfanew`` and the section table extent
            against the source length before seeking.
        logger: Logger for stage tracing.  If omitted the parser writes to
            the ``pehead.parser`` logger as already configured, silent if
            it has no handlers.
    """

    def __init__(
        self,
        *,
        strict_signature: bool = False,
        validate_offsets: bool = True,
        logger: PeheadLogger | None = None,
    ) -> None:
        self._strict_signature = strict_signature
        self._validate_offsets = validate_offsets
        self._logger: PeheadLogger = logger or PeheadLogger("parser", configure=False)

    @property
    def strict_signature(self) -> bool:
        return self._strict_signature

    @property
    def validate_offsets(self) -> bool:
        return self._validate_offsets

    # ------------------------------------------------------------------ #
    #  Public interface
    # ------------------------------------------------------------------ #

    def parse(self, source: BinaryIO) -> PeHeaders:
        """Decode the header region of the image in *source*.

        The stream must be readable and seekable.  It is rewound to offset
        0 first and left positioned just past the section table; it is
        never closed here.

        Raises:
            UnexpectedEndOfData: A record ran past the end of the stream.
            InvalidOffset: ``e_lfanew`` or the section table lies outside
                the stream (``validate_offsets`` only).
            InvalidSignature: A magic value is wrong (``strict_signature``
                only).
        """
        source.seek(0, io.SEEK_SET)
        source_size = self._source_size(source) if self._validate_offsets else None

        dos_offset = source.tell()
        dos_header = self._read_dos_header(source)

        signature_offset = self._seek_nt_headers(source, dos_header, source_size)
        signature = read_struct(source, NT_SIGNATURE)["signature"]
        self._check_nt_signature(signature)

        file_header_offset = source.tell()
        file_header = FileHeader(**read_struct(source, FILE_HEADER))
        self._logger.debug(
            "File header: machine=0x%04x sections=%d characteristics=0x%04x",
            file_header.machine,
            file_header.number_of_sections,
            file_header.characteristics,
            offset=file_header_offset,
        )

        optional_offset = source.tell()
        optional_header = self._read_optional_header(source, file_header)

        section_offset = source.tell()
        sections = self._read_section_table(source, file_header, source_size)

        offsets = HeaderOffsets(
            dos_header=dos_offset,
            nt_signature=signature_offset,
            file_header=file_header_offset,
            optional_header=optional_offset,
            section_table=section_offset,
            end=source.tell(),
        )
        return PeHeaders(
            dos_header=dos_header,
            nt_signature=signature,
            file_header=file_header,
            optional_header=optional_header,
            sections=sections,
            offsets=offsets,
        )

    # ------------------------------------------------------------------ #
    #  Stage 1: DOS header
    # ------------------------------------------------------------------ #

    def _read_dos_header(self, source: BinaryIO) -> DosHeader:
        dos_header = DosHeader(**read_struct(source, DOS_HEADER))
        if not dos_header.has_mz_magic:
            actual = dos_header.e_magic.to_bytes(2, "little")
            if self._strict_signature:
                raise InvalidSignature("DOS magic", MZ_MAGIC, actual)
            self._logger.warning("DOS magic is %r, not 'MZ'", actual)
        self._logger.debug("DOS header: e_lfanew=0x%x", dos_header.e_lfanew)
        return dos_header

    def _seek_nt_headers(
        self,
        source: BinaryIO,
        dos_header: DosHeader,
        source_size: Optional[int],
    ) -> int:
        """Seek to ``e_lfanew`` (absolute) and return it."""
        e_lfanew = dos_header.e_lfanew
        if source_size is not None:
            if e_lfanew >= source_size:
                raise InvalidOffset("e_lfanew", e_lfanew, source_size)
            if e_lfanew < DOS_HEADER.size:
                raise InvalidOffset(
                    "e_lfanew",
                    e_lfanew,
                    source_size,
                    reason=f"inside the {DOS_HEADER.size}-byte DOS header",
                )
        source.seek(e_lfanew, io.SEEK_SET)
        return e_lfanew

    # ------------------------------------------------------------------ #
    #  Stage 2: signature
    # ------------------------------------------------------------------ #

    def _check_nt_signature(self, signature: int) -> None:
        actual = signature.to_bytes(4, "little")
        if actual == PE_MAGIC:
            return
        if self._strict_signature:
            raise InvalidSignature("NT signature", PE_MAGIC, actual)
        self._logger.warning("NT signature is %r, not 'PE\\0\\0'", actual)

    # ------------------------------------------------------------------ #
    #  Stage 3: optional header
    # ------------------------------------------------------------------ #

    def _read_optional_header(
        self, source: BinaryIO, file_header: FileHeader
    ) -> OptionalHeader32 | OptionalHeader64:
        """Decode exactly one optional header variant."""
        if is_32bit_characteristics(file_header.characteristics):
            layout, model = OPTIONAL_HEADER32, OptionalHeader32
        else:
            layout, model = OPTIONAL_HEADER64, OptionalHeader64

        values = read_struct(source, layout)
        values["data_directories"] = _data_directories(values["data_directories"])
        header = model(**values)

        declared = file_header.size_of_optional_header
        if declared != layout.size:
            self._logger.warning(
                "SizeOfOptionalHeader is %d but %s is %d bytes; "
                "section table read directly after it",
                declared,
                layout.name,
                layout.size,
            )
        self._logger.debug(
            "%s: magic=0x%x entry=0x%x image_base=0x%x",
            layout.name,
            header.magic,
            header.address_of_entry_point,
            header.image_base,
        )
        return header

    # ------------------------------------------------------------------ #
    #  Stage 4: section table
    # ------------------------------------------------------------------ #

    def _read_section_table(
        self,
        source: BinaryIO,
        file_header: FileHeader,
        source_size: Optional[int],
    ) -> tuple[SectionHeader, ...]:
        count = file_header.number_of_sections
        start = source.tell()
        end = start + count * SECTION_HEADER.size
        if source_size is not None and end > source_size:
            raise InvalidOffset(
                "section table end",
                end,
                source_size,
                reason=(
                    f"beyond the end of the source ({source_size} bytes) "
                    f"for {count} sections"
                ),
            )

        sections = tuple(
            SectionHeader(**read_struct(source, SECTION_HEADER))
            for _ in range(count)
        )
        self._logger.debug(
            "Section table: %s",
            ", ".join(sec.name for sec in sections) or "(empty)",
            offset=start,
        )
        return sections

    # ------------------------------------------------------------------ #
    #  Utility methods
    # ------------------------------------------------------------------ #

    @staticmethod
    def _source_size(source: BinaryIO) -> int:
        """Length of *source* in bytes; the position is left unchanged."""
        current = source.tell()
        size = source.seek(0, io.SEEK_END)
        source.seek(current, io.SEEK_SET)
        return size


# ---------------------------------------------------------------------------
# Module-level convenience
# ---------------------------------------------------------------------------

def parse_bytes(data: bytes, **options: Any) -> PeHeaders:
    """Decode headers from an in-memory image.

    Keyword options are passed to :class:`PEHeaderParser`.
    """
    return PEHeaderParser(**options).parse(io.BytesIO(data))


def parse_file(path: str | os.PathLike[str], **options: Any) -> PeHeaders:
    """Decode headers from the image at *path*.

    The file is opened read-only and closed on every exit path, including
    decode failure.
    """
    with open(Path(path), "rb") as fh:
        return PEHeaderParser(**options).parse(fh)
