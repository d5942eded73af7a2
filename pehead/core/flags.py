"""
PE/COFF Constants and Flag Enumerations
=========================================

Magic numbers, machine and subsystem identifiers, and the bit-flag sets
carried by the COFF file header, the optional header and each section
header.

The flag sets are :class:`enum.IntFlag` subclasses so that a raw
``Characteristics`` word can be wrapped, tested with ``in`` and rendered
by name while still comparing equal to the plain integer.

References:
    - Microsoft. (2024). PE Format. Microsoft Learn.
      https://learn.microsoft.com/en-us/windows/win32/debug/pe-format
"""

from __future__ import annotations

import enum
from typing import Optional


# ---------------------------------------------------------------------------
# Magic numbers
# ---------------------------------------------------------------------------

MZ_MAGIC: bytes = b"MZ"
PE_MAGIC: bytes = b"PE\x00\x00"

# Optional header magic
PE32_MAGIC: int = 0x10B      # PE32 (32-bit)
PE32PLUS_MAGIC: int = 0x20B  # PE32+ (64-bit)
ROM_MAGIC: int = 0x107       # ROM image

# Number of data directory slots in both optional header variants
NUMBER_OF_DIRECTORY_ENTRIES: int = 16


# ---------------------------------------------------------------------------
# Machine types
# ---------------------------------------------------------------------------

IMAGE_FILE_MACHINE_UNKNOWN: int = 0x0
IMAGE_FILE_MACHINE_I386: int = 0x14C
IMAGE_FILE_MACHINE_R3000: int = 0x162
IMAGE_FILE_MACHINE_R4000: int = 0x166
IMAGE_FILE_MACHINE_MIPS16: int = 0x266
IMAGE_FILE_MACHINE_ARM: int = 0x1C0
IMAGE_FILE_MACHINE_ARMNT: int = 0x1C4
IMAGE_FILE_MACHINE_AMD64: int = 0x8664
IMAGE_FILE_MACHINE_ARM64: int = 0xAA64
IMAGE_FILE_MACHINE_IA64: int = 0x200
IMAGE_FILE_MACHINE_EBC: int = 0xEBC
IMAGE_FILE_MACHINE_RISCV32: int = 0x5032
IMAGE_FILE_MACHINE_RISCV64: int = 0x5064

_MACHINE_NAMES: dict[int, str] = {
    IMAGE_FILE_MACHINE_UNKNOWN: "Unknown",
    IMAGE_FILE_MACHINE_I386: "x86",
    IMAGE_FILE_MACHINE_R3000: "MIPS R3000",
    IMAGE_FILE_MACHINE_R4000: "MIPS R4000",
    IMAGE_FILE_MACHINE_MIPS16: "MIPS16",
    IMAGE_FILE_MACHINE_ARM: "ARM",
    IMAGE_FILE_MACHINE_ARMNT: "ARM Thumb-2",
    IMAGE_FILE_MACHINE_AMD64: "x86_64",
    IMAGE_FILE_MACHINE_ARM64: "AArch64",
    IMAGE_FILE_MACHINE_IA64: "IA-64",
    IMAGE_FILE_MACHINE_EBC: "EFI Byte Code",
    IMAGE_FILE_MACHINE_RISCV32: "RISC-V 32",
    IMAGE_FILE_MACHINE_RISCV64: "RISC-V 64",
}


# ---------------------------------------------------------------------------
# Subsystem values
# ---------------------------------------------------------------------------

IMAGE_SUBSYSTEM_UNKNOWN: int = 0
IMAGE_SUBSYSTEM_NATIVE: int = 1
IMAGE_SUBSYSTEM_WINDOWS_GUI: int = 2
IMAGE_SUBSYSTEM_WINDOWS_CUI: int = 3
IMAGE_SUBSYSTEM_OS2_CUI: int = 5
IMAGE_SUBSYSTEM_POSIX_CUI: int = 7
IMAGE_SUBSYSTEM_WINDOWS_CE_GUI: int = 9
IMAGE_SUBSYSTEM_EFI_APPLICATION: int = 10
IMAGE_SUBSYSTEM_EFI_BOOT_SERVICE_DRIVER: int = 11
IMAGE_SUBSYSTEM_EFI_RUNTIME_DRIVER: int = 12
IMAGE_SUBSYSTEM_EFI_ROM: int = 13
IMAGE_SUBSYSTEM_XBOX: int = 14
IMAGE_SUBSYSTEM_WINDOWS_BOOT_APPLICATION: int = 16

_SUBSYSTEM_NAMES: dict[int, str] = {
    IMAGE_SUBSYSTEM_UNKNOWN: "Unknown",
    IMAGE_SUBSYSTEM_NATIVE: "Native",
    IMAGE_SUBSYSTEM_WINDOWS_GUI: "Windows GUI",
    IMAGE_SUBSYSTEM_WINDOWS_CUI: "Windows Console",
    IMAGE_SUBSYSTEM_OS2_CUI: "OS/2 Console",
    IMAGE_SUBSYSTEM_POSIX_CUI: "POSIX Console",
    IMAGE_SUBSYSTEM_WINDOWS_CE_GUI: "Windows CE GUI",
    IMAGE_SUBSYSTEM_EFI_APPLICATION: "EFI Application",
    IMAGE_SUBSYSTEM_EFI_BOOT_SERVICE_DRIVER: "EFI Boot Service Driver",
    IMAGE_SUBSYSTEM_EFI_RUNTIME_DRIVER: "EFI Runtime Driver",
    IMAGE_SUBSYSTEM_EFI_ROM: "EFI ROM",
    IMAGE_SUBSYSTEM_XBOX: "Xbox",
    IMAGE_SUBSYSTEM_WINDOWS_BOOT_APPLICATION: "Windows Boot Application",
}


def machine_name(machine: int) -> str:
    """Return a short architecture name for a COFF ``Machine`` value."""
    return _MACHINE_NAMES.get(machine, f"unknown(0x{machine:x})")


def subsystem_name(subsystem: int) -> str:
    """Return the subsystem description for an optional-header value."""
    return _SUBSYSTEM_NAMES.get(subsystem, f"Unknown(0x{subsystem:x})")


# ---------------------------------------------------------------------------
# COFF file header characteristics
# ---------------------------------------------------------------------------

class FileCharacteristics(enum.IntFlag):
    """``IMAGE_FILE_*`` flags of the COFF file header."""
    RELOCS_STRIPPED = 0x0001
    EXECUTABLE_IMAGE = 0x0002
    LINE_NUMS_STRIPPED = 0x0004
    LOCAL_SYMS_STRIPPED = 0x0008
    AGGRESSIVE_WS_TRIM = 0x0010
    LARGE_ADDRESS_AWARE = 0x0020
    BYTES_REVERSED_LO = 0x0080
    MACHINE_32BIT = 0x0100
    DEBUG_STRIPPED = 0x0200
    REMOVABLE_RUN_FROM_SWAP = 0x0400
    NET_RUN_FROM_SWAP = 0x0800
    SYSTEM = 0x1000
    DLL = 0x2000
    UP_SYSTEM_ONLY = 0x4000
    BYTES_REVERSED_HI = 0x8000


# Bit that selects the 32-bit optional header.
IMAGE_FILE_32BIT_MACHINE: int = FileCharacteristics.MACHINE_32BIT.value


def is_32bit_characteristics(characteristics: int) -> bool:
    """Return ``True`` when the file header flags select the 32-bit layout.

    This single predicate drives both the decode branch and every
    ``is_32bit_header`` accessor so the two can never disagree.
    """
    return (characteristics & IMAGE_FILE_32BIT_MACHINE) == IMAGE_FILE_32BIT_MACHINE


# ---------------------------------------------------------------------------
# Optional header DLL characteristics
# ---------------------------------------------------------------------------

class DllCharacteristics(enum.IntFlag):
    """``IMAGE_DLLCHARACTERISTICS_*`` flags of the optional header."""
    HIGH_ENTROPY_VA = 0x0020
    DYNAMIC_BASE = 0x0040
    FORCE_INTEGRITY = 0x0080
    NX_COMPAT = 0x0100
    NO_ISOLATION = 0x0200
    NO_SEH = 0x0400
    NO_BIND = 0x0800
    APPCONTAINER = 0x1000
    WDM_DRIVER = 0x2000
    GUARD_CF = 0x4000
    TERMINAL_SERVER_AWARE = 0x8000


# ---------------------------------------------------------------------------
# Section characteristics
# ---------------------------------------------------------------------------

class SectionFlags(enum.IntFlag):
    """``IMAGE_SCN_*`` flags of a section header.

    The alignment values (``IMAGE_SCN_ALIGN_*``) are not independent bits
    but a 4-bit field; see :data:`SECTION_ALIGN_MASK` and
    :func:`section_alignment`.
    """
    TYPE_NO_PAD = 0x00000008
    CNT_CODE = 0x00000020
    CNT_INITIALIZED_DATA = 0x00000040
    CNT_UNINITIALIZED_DATA = 0x00000080
    LNK_OTHER = 0x00000100
    LNK_INFO = 0x00000200
    LNK_REMOVE = 0x00000800
    LNK_COMDAT = 0x00001000
    NO_DEFER_SPEC_EXC = 0x00004000
    GPREL = 0x00008000
    MEM_PURGEABLE = 0x00020000
    MEM_LOCKED = 0x00040000
    MEM_PRELOAD = 0x00080000
    LNK_NRELOC_OVFL = 0x01000000
    MEM_DISCARDABLE = 0x02000000
    MEM_NOT_CACHED = 0x04000000
    MEM_NOT_PAGED = 0x08000000
    MEM_SHARED = 0x10000000
    MEM_EXECUTE = 0x20000000
    MEM_READ = 0x40000000
    MEM_WRITE = 0x80000000


SECTION_ALIGN_MASK: int = 0x00F00000
_SECTION_ALIGN_SHIFT: int = 20


def section_alignment(characteristics: int) -> Optional[int]:
    """Decode the ``IMAGE_SCN_ALIGN_*`` field to a byte count.

    Returns:
        Alignment in bytes (1 .. 8192), or ``None`` when the field is zero
        or holds the reserved value 0xF.
    """
    nibble = (characteristics & SECTION_ALIGN_MASK) >> _SECTION_ALIGN_SHIFT
    if nibble == 0 or nibble == 0xF:
        return None
    return 1 << (nibble - 1)


def flag_names(flags: enum.IntFlag) -> list[str]:
    """Return the names of every single-bit member set in *flags*."""
    return [
        member.name
        for member in type(flags)
        if member.name and member.value and (flags & member.value) == member.value
    ]
