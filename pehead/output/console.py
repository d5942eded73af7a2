"""
Pehead Console Output
======================

Rich-powered terminal display of decoded PE headers: an image summary
panel, the file and optional header fields, the populated data
directories and the section table with decoded permission flags.
"""

from __future__ import annotations

from rich.markup import escape
from rich.panel import Panel

from shared.console import PeheadConsole

from pehead.core.flags import flag_names
from pehead.core.models import (
    DataDirectories,
    FileHeader,
    OptionalHeader32,
    OptionalHeader64,
    PeHeaders,
    SectionHeader,
)


def _hex(value: int, width: int = 0) -> str:
    return f"0x{value:0{width}x}"


def section_permissions(sec: SectionHeader) -> str:
    """Render section access as ``"R-X"`` style flags."""
    return (
        ("R" if sec.is_readable else "-")
        + ("W" if sec.is_writable else "-")
        + ("X" if sec.is_executable else "-")
    )


def section_contents(sec: SectionHeader) -> str:
    parts: list[str] = []
    if sec.contains_code:
        parts.append("CODE")
    if sec.contains_initialized_data:
        parts.append("IDATA")
    if sec.contains_uninitialized_data:
        parts.append("UDATA")
    if sec.is_discardable:
        parts.append("DISCARD")
    if sec.is_shared:
        parts.append("SHARED")
    return " ".join(parts) if parts else "-"


class HeaderConsoleOutput:
    """Rich terminal display for :class:`PeHeaders`.

    Usage::

        output = HeaderConsoleOutput()
        output.display(headers, source="app.exe")
    """

    def __init__(self, console: PeheadConsole | None = None) -> None:
        self._console: PeheadConsole = console or PeheadConsole()

    def display(self, headers: PeHeaders, source: str = "") -> None:
        self.display_summary(headers, source)
        self.display_file_header(headers.file_header)
        self.display_optional_header(headers.optional_header)
        self.display_data_directories(headers.optional_header.data_directories)
        self.display_sections(headers.sections)

    def display_summary(self, headers: PeHeaders, source: str = "") -> None:
        fh = headers.file_header
        stamp = headers.timestamp
        lines: list[str] = []
        if source:
            lines.append(f"[bold]File:[/bold]         {escape(source)}")
        lines += [
            f"[bold]Format:[/bold]       {'PE32' if headers.is_32bit_header else 'PE32+'}",
            f"[bold]Machine:[/bold]      {fh.machine_name} ({_hex(fh.machine, 4)})",
            f"[bold]Linked:[/bold]       {stamp.isoformat() if stamp else 'n/a'}",
            f"[bold]Entry Point:[/bold]  {_hex(headers.optional_header.address_of_entry_point)}",
            f"[bold]Image Base:[/bold]   {_hex(headers.optional_header.image_base)}",
            f"[bold]Sections:[/bold]     {len(headers.sections)}",
        ]
        if not headers.has_pe_signature:
            lines.append("[pehead.warning]NT signature is not PE\\0\\0[/pehead.warning]")

        panel = Panel(
            "\n".join(lines),
            title="[bold bright_cyan]Image Summary[/bold bright_cyan]",
            border_style="bright_cyan",
            padding=(1, 2),
        )
        self._console.rich.print(panel)
        self._console.blank()

    def display_file_header(self, fh: FileHeader) -> None:
        self._console.section("File Header")
        rows = [
            ("Machine", _hex(fh.machine, 4), fh.machine_name),
            ("NumberOfSections", fh.number_of_sections, ""),
            ("TimeDateStamp", _hex(fh.time_date_stamp, 8),
             fh.timestamp.isoformat() if fh.timestamp else ""),
            ("PointerToSymbolTable", _hex(fh.pointer_to_symbol_table), ""),
            ("NumberOfSymbols", fh.number_of_symbols, ""),
            ("SizeOfOptionalHeader", fh.size_of_optional_header, ""),
            ("Characteristics", _hex(fh.characteristics, 4),
             " | ".join(flag_names(fh.flags))),
        ]
        self._console.table("", ["Field", "Value", "Meaning"], rows,
                            styles=["bold", "", "dim"])

    def display_optional_header(self, oh: OptionalHeader32 | OptionalHeader64) -> None:
        self._console.section(f"Optional Header ({oh.kind.upper()})")
        rows: list[tuple[str, object, str]] = [
            ("Magic", _hex(oh.magic, 4), ""),
            ("LinkerVersion", f"{oh.major_linker_version}.{oh.minor_linker_version}", ""),
            ("SizeOfCode", _hex(oh.size_of_code), ""),
            ("AddressOfEntryPoint", _hex(oh.address_of_entry_point), ""),
            ("BaseOfCode", _hex(oh.base_of_code), ""),
        ]
        if isinstance(oh, OptionalHeader32):
            rows.append(("BaseOfData", _hex(oh.base_of_data), ""))
        rows += [
            ("ImageBase", _hex(oh.image_base), ""),
            ("SectionAlignment", _hex(oh.section_alignment), ""),
            ("FileAlignment", _hex(oh.file_alignment), ""),
            ("OperatingSystemVersion",
             f"{oh.major_operating_system_version}.{oh.minor_operating_system_version}", ""),
            ("SubsystemVersion",
             f"{oh.major_subsystem_version}.{oh.minor_subsystem_version}", ""),
            ("SizeOfImage", _hex(oh.size_of_image), ""),
            ("SizeOfHeaders", _hex(oh.size_of_headers), ""),
            ("CheckSum", _hex(oh.check_sum, 8), ""),
            ("Subsystem", oh.subsystem, oh.subsystem_name),
            ("DllCharacteristics", _hex(oh.dll_characteristics, 4),
             " | ".join(flag_names(oh.dll_flags))),
            ("SizeOfStackReserve", _hex(oh.size_of_stack_reserve), ""),
            ("SizeOfStackCommit", _hex(oh.size_of_stack_commit), ""),
            ("SizeOfHeapReserve", _hex(oh.size_of_heap_reserve), ""),
            ("SizeOfHeapCommit", _hex(oh.size_of_heap_commit), ""),
            ("NumberOfRvaAndSizes", oh.number_of_rva_and_sizes, ""),
        ]
        self._console.table("", ["Field", "Value", "Meaning"], rows,
                            styles=["bold", "", "dim"])

    def display_data_directories(self, directories: DataDirectories) -> None:
        present = directories.present()
        if not present:
            return
        self._console.section("Data Directories")
        rows = [
            (name, _hex(entry.virtual_address, 8), f"{entry.size:,}")
            for name, entry in directories.entries()
            if entry.is_present
        ]
        self._console.table("", ["Directory", "RVA", "Size"], rows,
                            styles=["bold", "", ""])

    def display_sections(self, sections: tuple[SectionHeader, ...]) -> None:
        self._console.section("Sections")
        if not sections:
            self._console.info("Image has no section headers.")
            return
        rows = [
            (
                i,
                sec.name or "<unnamed>",
                _hex(sec.virtual_address),
                _hex(sec.virtual_size),
                _hex(sec.pointer_to_raw_data),
                _hex(sec.size_of_raw_data),
                section_permissions(sec),
                section_contents(sec),
            )
            for i, sec in enumerate(sections, 1)
        ]
        self._console.table(
            "",
            ["#", "Name", "VAddr", "VSize", "RawPtr", "RawSize", "Perm", "Contents"],
            rows,
            styles=["dim", "bold", "", "", "", "", "bright_green", "dim"],
        )
