"""
Pehead -- PE/COFF Header Reader
================================

Decodes the header region of a Portable Executable image (DOS header,
COFF file header, PE32 or PE32+ optional header, section table) into
frozen pydantic models, without loading or executing the image.

Usage::

    from pehead import parse_file

    headers = parse_file("app.exe")
    print(headers.file_header.timestamp, [s.name for s in headers.sections])

References:
    - Microsoft. (2024). PE Format. Microsoft Learn.
"""

__version__ = "1.0.0"

from pehead.core.engine import HeaderEngine
from pehead.core.errors import (
    InvalidOffset,
    InvalidSignature,
    PeheadError,
    UnexpectedEndOfData,
)
from pehead.core.models import (
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
from pehead.parsers.pe_parser import PEHeaderParser, parse_bytes, parse_file

__all__ = [
    "DataDirectories",
    "DataDirectory",
    "DosHeader",
    "FileHeader",
    "HeaderEngine",
    "HeaderOffsets",
    "InvalidOffset",
    "InvalidSignature",
    "OptionalHeader32",
    "OptionalHeader64",
    "PEHeaderParser",
    "PeHeaders",
    "PeheadError",
    "SectionHeader",
    "UnexpectedEndOfData",
    "parse_bytes",
    "parse_file",
]
