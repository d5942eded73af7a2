"""
Pehead Data Models
===================

Pydantic-based models for the decoded header region of a PE/COFF image.
Every model is frozen: a decode builds the whole tree once and nothing is
mutated afterwards.

The two optional-header variants form a tagged union
(:data:`OptionalHeader`) discriminated by their ``kind`` literal, so the
aggregate always carries exactly one populated variant rather than a
populated one next to a zeroed one.

References:
    - Microsoft. (2024). PE Format. Microsoft Learn.
      https://learn.microsoft.com/en-us/windows/win32/debug/pe-format
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Iterator, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from pehead.core.flags import (
    PE32PLUS_MAGIC,
    PE_MAGIC,
    MZ_MAGIC,
    DllCharacteristics,
    FileCharacteristics,
    SectionFlags,
    is_32bit_characteristics,
    machine_name,
    section_alignment,
    subsystem_name,
)


_FROZEN = ConfigDict(frozen=True, ser_json_bytes="hex", val_json_bytes="hex")

_PE_SIGNATURE: int = int.from_bytes(PE_MAGIC, "little")
_MZ_SIGNATURE: int = int.from_bytes(MZ_MAGIC, "little")


def _stamp_to_datetime(stamp: int) -> Optional[datetime]:
    if stamp == 0:
        return None
    try:
        return datetime.fromtimestamp(stamp, tz=timezone.utc)
    except (OSError, ValueError, OverflowError):
        return None


# ---------------------------------------------------------------------------
# DOS header
# ---------------------------------------------------------------------------

class DosHeader(BaseModel):
    """The 64-byte MS-DOS header (``IMAGE_DOS_HEADER``).

    Only :attr:`e_lfanew` is used downstream: it is the absolute file
    offset of the ``PE\\0\\0`` signature.
    """
    model_config = _FROZEN

    e_magic: int = 0
    e_cblp: int = 0
    e_cp: int = 0
    e_crlc: int = 0
    e_cparhdr: int = 0
    e_minalloc: int = 0
    e_maxalloc: int = 0
    e_ss: int = 0
    e_sp: int = 0
    e_csum: int = 0
    e_ip: int = 0
    e_cs: int = 0
    e_lfarlc: int = 0
    e_ovno: int = 0
    e_res: tuple[int, int, int, int] = (0, 0, 0, 0)
    e_oemid: int = 0
    e_oeminfo: int = 0
    e_res2: tuple[int, ...] = Field(default=(0,) * 10, min_length=10, max_length=10)
    e_lfanew: int = 0

    @property
    def has_mz_magic(self) -> bool:
        return self.e_magic == _MZ_SIGNATURE


# ---------------------------------------------------------------------------
# COFF file header
# ---------------------------------------------------------------------------

class FileHeader(BaseModel):
    """The 20-byte COFF file header (``IMAGE_FILE_HEADER``).

    Attributes:
        machine: Target CPU identifier.
        number_of_sections: Number of entries in the section table.
        time_date_stamp: Link time, seconds since the Unix epoch.
        pointer_to_symbol_table: File offset of the COFF symbol table.
        number_of_symbols: Number of COFF symbol table entries.
        size_of_optional_header: Declared size of the optional header.
        characteristics: ``IMAGE_FILE_*`` bit flags.
    """
    model_config = _FROZEN

    machine: int = 0
    number_of_sections: int = Field(default=0, ge=0)
    time_date_stamp: int = 0
    pointer_to_symbol_table: int = 0
    number_of_symbols: int = 0
    size_of_optional_header: int = 0
    characteristics: int = 0

    @property
    def is_32bit_header(self) -> bool:
        """``True`` when bit 0x0100 selects the 32-bit optional header."""
        return is_32bit_characteristics(self.characteristics)

    @property
    def flags(self) -> FileCharacteristics:
        return FileCharacteristics(self.characteristics)

    @property
    def machine_name(self) -> str:
        return machine_name(self.machine)

    @property
    def is_dll(self) -> bool:
        return bool(self.characteristics & FileCharacteristics.DLL)

    @property
    def timestamp(self) -> Optional[datetime]:
        """UTC link time, or ``None`` if the stamp is zero or out of range."""
        return _stamp_to_datetime(self.time_date_stamp)


# ---------------------------------------------------------------------------
# Data directories
# ---------------------------------------------------------------------------

class DataDirectory(BaseModel):
    """One ``(VirtualAddress, Size)`` pair locating an auxiliary table."""
    model_config = _FROZEN

    virtual_address: int = 0
    size: int = 0

    @property
    def is_present(self) -> bool:
        return self.virtual_address != 0 and self.size != 0


# Decode order of the sixteen directory slots.
DATA_DIRECTORY_NAMES: tuple[str, ...] = (
    "export_table",
    "import_table",
    "resource_table",
    "exception_table",
    "certificate_table",
    "base_relocation_table",
    "debug",
    "architecture",
    "global_ptr",
    "tls_table",
    "load_config_table",
    "bound_import",
    "iat",
    "delay_import_descriptor",
    "clr_runtime_header",
    "reserved",
)


class DataDirectories(BaseModel):
    """The sixteen named data directories that end every optional header.

    Consumers look entries up by name; position only fixes decode order.
    """
    model_config = _FROZEN

    export_table: DataDirectory = Field(default_factory=DataDirectory)
    import_table: DataDirectory = Field(default_factory=DataDirectory)
    resource_table: DataDirectory = Field(default_factory=DataDirectory)
    exception_table: DataDirectory = Field(default_factory=DataDirectory)
    certificate_table: DataDirectory = Field(default_factory=DataDirectory)
    base_relocation_table: DataDirectory = Field(default_factory=DataDirectory)
    debug: DataDirectory = Field(default_factory=DataDirectory)
    architecture: DataDirectory = Field(default_factory=DataDirectory)
    global_ptr: DataDirectory = Field(default_factory=DataDirectory)
    tls_table: DataDirectory = Field(default_factory=DataDirectory)
    load_config_table: DataDirectory = Field(default_factory=DataDirectory)
    bound_import: DataDirectory = Field(default_factory=DataDirectory)
    iat: DataDirectory = Field(default_factory=DataDirectory)
    delay_import_descriptor: DataDirectory = Field(default_factory=DataDirectory)
    clr_runtime_header: DataDirectory = Field(default_factory=DataDirectory)
    reserved: DataDirectory = Field(default_factory=DataDirectory)

    def entries(self) -> Iterator[tuple[str, DataDirectory]]:
        """Yield ``(name, directory)`` pairs in on-disk order."""
        for name in DATA_DIRECTORY_NAMES:
            yield name, getattr(self, name)

    def present(self) -> list[str]:
        """Names of the directories with a non-zero address and size."""
        return [name for name, entry in self.entries() if entry.is_present]


# ---------------------------------------------------------------------------
# Optional header variants
# ---------------------------------------------------------------------------

class _OptionalHeaderBase(BaseModel):
    """Fields shared by both optional header variants.

    Not a variant itself: :class:`OptionalHeader32` and
    :class:`OptionalHeader64` are never interchangeable.
    """
    model_config = _FROZEN

    magic: int = 0
    major_linker_version: int = 0
    minor_linker_version: int = 0
    size_of_code: int = 0
    size_of_initialized_data: int = 0
    size_of_uninitialized_data: int = 0
    address_of_entry_point: int = 0
    base_of_code: int = 0
    image_base: int = 0
    section_alignment: int = 0
    file_alignment: int = 0
    major_operating_system_version: int = 0
    minor_operating_system_version: int = 0
    major_image_version: int = 0
    minor_image_version: int = 0
    major_subsystem_version: int = 0
    minor_subsystem_version: int = 0
    win32_version_value: int = 0
    size_of_image: int = 0
    size_of_headers: int = 0
    check_sum: int = 0
    subsystem: int = 0
    dll_characteristics: int = 0
    size_of_stack_reserve: int = 0
    size_of_stack_commit: int = 0
    size_of_heap_reserve: int = 0
    size_of_heap_commit: int = 0
    loader_flags: int = 0
    number_of_rva_and_sizes: int = 0
    data_directories: DataDirectories = Field(default_factory=DataDirectories)

    @property
    def subsystem_name(self) -> str:
        return subsystem_name(self.subsystem)

    @property
    def dll_flags(self) -> DllCharacteristics:
        return DllCharacteristics(self.dll_characteristics)

    @property
    def is_pe32plus_magic(self) -> bool:
        """Whether the ``Magic`` field itself claims PE32+.

        Informational only: the variant is chosen by the file header flag.
        """
        return self.magic == PE32PLUS_MAGIC


class OptionalHeader32(_OptionalHeaderBase):
    """PE32 optional header: 96 fixed bytes plus 16 data directories.

    ``image_base`` and the stack/heap sizes are 32-bit words.
    """
    kind: Literal["pe32"] = "pe32"
    base_of_data: int = 0


class OptionalHeader64(_OptionalHeaderBase):
    """PE32+ optional header: 112 fixed bytes plus 16 data directories.

    ``image_base`` and the stack/heap sizes are 64-bit words and there is
    no ``base_of_data`` field.
    """
    kind: Literal["pe32+"] = "pe32+"


OptionalHeader = Annotated[
    Union[OptionalHeader32, OptionalHeader64],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Section header
# ---------------------------------------------------------------------------

def section_display_name(raw_name: bytes) -> str:
    """Turn the 8 raw name bytes into a display string.

    Each byte is one character; surrounding whitespace is trimmed and then
    every NUL is removed, so ``b".text\\0\\0\\0"`` becomes ``".text"``.
    """
    return raw_name.decode("latin-1").strip().replace("\x00", "")


class SectionHeader(BaseModel):
    """One 40-byte section table entry (``IMAGE_SECTION_HEADER``)."""
    model_config = _FROZEN

    raw_name: bytes = Field(default=b"\x00" * 8, min_length=8, max_length=8)
    virtual_size: int = 0
    virtual_address: int = 0
    size_of_raw_data: int = 0
    pointer_to_raw_data: int = 0
    pointer_to_relocations: int = 0
    pointer_to_linenumbers: int = 0
    number_of_relocations: int = 0
    number_of_linenumbers: int = 0
    characteristics: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def name(self) -> str:
        return section_display_name(self.raw_name)

    @property
    def flags(self) -> SectionFlags:
        return SectionFlags(self.characteristics)

    def has_flag(self, flag: SectionFlags) -> bool:
        return (self.characteristics & flag) == flag

    @property
    def is_executable(self) -> bool:
        return self.has_flag(SectionFlags.MEM_EXECUTE)

    @property
    def is_readable(self) -> bool:
        return self.has_flag(SectionFlags.MEM_READ)

    @property
    def is_writable(self) -> bool:
        return self.has_flag(SectionFlags.MEM_WRITE)

    @property
    def is_discardable(self) -> bool:
        return self.has_flag(SectionFlags.MEM_DISCARDABLE)

    @property
    def is_shared(self) -> bool:
        return self.has_flag(SectionFlags.MEM_SHARED)

    @property
    def contains_code(self) -> bool:
        return self.has_flag(SectionFlags.CNT_CODE)

    @property
    def contains_initialized_data(self) -> bool:
        return self.has_flag(SectionFlags.CNT_INITIALIZED_DATA)

    @property
    def contains_uninitialized_data(self) -> bool:
        return self.has_flag(SectionFlags.CNT_UNINITIALIZED_DATA)

    @property
    def alignment(self) -> Optional[int]:
        """Alignment in bytes from the ``IMAGE_SCN_ALIGN_*`` field."""
        return section_alignment(self.characteristics)


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------

class HeaderOffsets(BaseModel):
    """Absolute file offset at which each decode stage started.

    ``end`` is the offset just past the last section header.
    """
    model_config = _FROZEN

    dos_header: int = 0
    nt_signature: int = 0
    file_header: int = 0
    optional_header: int = 0
    section_table: int = 0
    end: int = 0

    def as_sequence(self) -> tuple[int, ...]:
        return (
            self.dos_header,
            self.nt_signature,
            self.file_header,
            self.optional_header,
            self.section_table,
            self.end,
        )


class PeHeaders(BaseModel):
    """The complete decoded header region of one PE/COFF image.

    Attributes:
        dos_header: Legacy MS-DOS header.
        nt_signature: Raw little-endian value of the 4 signature bytes.
        file_header: COFF file header.
        optional_header: Exactly one of the two optional header variants.
        sections: Section headers in table order.
        offsets: Where each stage was read from.
    """
    model_config = _FROZEN

    dos_header: DosHeader
    nt_signature: int = 0
    file_header: FileHeader
    optional_header: OptionalHeader
    sections: tuple[SectionHeader, ...] = ()
    offsets: HeaderOffsets = Field(default_factory=HeaderOffsets)

    @model_validator(mode="after")
    def _check_consistency(self) -> PeHeaders:
        expected = (
            OptionalHeader32 if self.file_header.is_32bit_header else OptionalHeader64
        )
        if not isinstance(self.optional_header, expected):
            raise ValueError(
                f"optional header variant {self.optional_header.kind!r} "
                f"disagrees with file header characteristics "
                f"0x{self.file_header.characteristics:04x}"
            )
        if len(self.sections) != self.file_header.number_of_sections:
            raise ValueError(
                f"{len(self.sections)} section headers for "
                f"NumberOfSections={self.file_header.number_of_sections}"
            )
        return self

    @property
    def is_32bit_header(self) -> bool:
        return self.file_header.is_32bit_header

    @property
    def optional_header32(self) -> Optional[OptionalHeader32]:
        """The PE32 header, or ``None`` for a 64-bit image."""
        if isinstance(self.optional_header, OptionalHeader32):
            return self.optional_header
        return None

    @property
    def optional_header64(self) -> Optional[OptionalHeader64]:
        """The PE32+ header, or ``None`` for a 32-bit image."""
        if isinstance(self.optional_header, OptionalHeader64):
            return self.optional_header
        return None

    @property
    def has_pe_signature(self) -> bool:
        return self.nt_signature == _PE_SIGNATURE

    @property
    def timestamp(self) -> Optional[datetime]:
        return self.file_header.timestamp

    def section(self, name: str) -> Optional[SectionHeader]:
        """Return the first section whose display name equals *name*."""
        for sec in self.sections:
            if sec.name == name:
                return sec
        return None
