"""Tests for the four-stage PE header parser."""

from __future__ import annotations

import io
import struct
from pathlib import Path

import pytest

from shared.logger import PeheadLogger

from pehead.core.errors import InvalidOffset, InvalidSignature, UnexpectedEndOfData
from pehead.core.models import OptionalHeader32, OptionalHeader64
from pehead.parsers.pe_parser import PEHeaderParser, parse_bytes, parse_file

from pe_builder import (
    DATA_FLAGS,
    OPTIONAL_HEADER32_SIZE,
    OPTIONAL_HEADER64_SIZE,
    TEXT_FLAGS,
    TIMESTAMP,
    build_pe,
)


def _with_e_lfanew(image: bytes, value: int) -> bytes:
    data = bytearray(image)
    struct.pack_into("<I", data, 60, value)
    return bytes(data)


# ---------------------------------------------------------------------------
# Happy paths
# ---------------------------------------------------------------------------

class TestPE32:
    def test_minimal_image(self, pe32_image: bytes) -> None:
        headers = parse_bytes(pe32_image)

        assert headers.dos_header.e_lfanew == 64
        assert headers.dos_header.has_mz_magic
        assert headers.has_pe_signature
        assert headers.is_32bit_header
        assert isinstance(headers.optional_header, OptionalHeader32)
        assert headers.optional_header32 is headers.optional_header
        assert headers.optional_header64 is None
        assert [sec.name for sec in headers.sections] == [".text"]

    def test_file_header_fields(self, pe32_image: bytes) -> None:
        fh = parse_bytes(pe32_image).file_header
        assert fh.machine == 0x14C
        assert fh.machine_name == "x86"
        assert fh.number_of_sections == 1
        assert fh.time_date_stamp == TIMESTAMP
        assert fh.size_of_optional_header == OPTIONAL_HEADER32_SIZE
        assert fh.is_32bit_header

    def test_optional_header_fields(self, pe32_image: bytes) -> None:
        opt = parse_bytes(pe32_image).optional_header32
        assert opt is not None
        assert opt.kind == "pe32"
        assert opt.magic == 0x10B
        assert not opt.is_pe32plus_magic
        assert opt.major_linker_version == 14
        assert opt.address_of_entry_point == 0x1000
        assert opt.base_of_data == 0x2000
        assert opt.image_base == 0x400000
        assert opt.size_of_stack_reserve == 0xFFFFFFFF
        assert opt.subsystem_name == "Windows Console"
        assert opt.number_of_rva_and_sizes == 16

    def test_section_fields(self, pe32_image: bytes) -> None:
        sec = parse_bytes(pe32_image).sections[0]
        assert sec.raw_name == b".text\x00\x00\x00"
        assert sec.virtual_size == 0x180
        assert sec.virtual_address == 0x1000
        assert sec.size_of_raw_data == 0x200
        assert sec.pointer_to_raw_data == 0x400
        assert sec.characteristics == TEXT_FLAGS
        assert sec.is_executable and sec.contains_code and not sec.is_writable

    def test_offsets(self, pe32_image: bytes) -> None:
        offsets = parse_bytes(pe32_image).offsets
        assert offsets.dos_header == 0
        assert offsets.nt_signature == 64
        assert offsets.file_header == 68
        assert offsets.optional_header == 88
        assert offsets.section_table == 88 + OPTIONAL_HEADER32_SIZE
        assert offsets.end == offsets.section_table + 40


class TestPE32Plus:
    def test_image(self, pe64_image: bytes) -> None:
        headers = parse_bytes(pe64_image)

        assert not headers.is_32bit_header
        assert isinstance(headers.optional_header, OptionalHeader64)
        assert headers.optional_header32 is None
        assert headers.file_header.machine_name == "x86_64"
        assert [sec.name for sec in headers.sections] == [".text", ".data", ".reloc"]

    def test_wide_fields(self, pe64_image: bytes) -> None:
        opt = parse_bytes(pe64_image).optional_header64
        assert opt is not None
        assert opt.kind == "pe32+"
        assert opt.is_pe32plus_magic
        assert opt.image_base == 0x140000000
        assert opt.size_of_stack_reserve == 0x100000000
        assert opt.subsystem_name == "Windows GUI"
        assert not hasattr(opt, "base_of_data")

    def test_section_table_follows_240_byte_header(self, pe64_image: bytes) -> None:
        offsets = parse_bytes(pe64_image).offsets
        assert offsets.section_table - offsets.optional_header == OPTIONAL_HEADER64_SIZE
        assert offsets.end == offsets.section_table + 3 * 40

    def test_section_flags(self, pe64_image: bytes) -> None:
        headers = parse_bytes(pe64_image)
        data = headers.section(".data")
        reloc = headers.section(".reloc")
        assert data is not None and data.characteristics == DATA_FLAGS
        assert data.is_writable and data.is_readable and not data.is_executable
        assert reloc is not None and reloc.is_discardable
        assert headers.section(".rsrc") is None


def test_variant_follows_flag_not_magic() -> None:
    # 64-bit optional header bytes, but the 32-bit flag set in the COFF header
    headers = parse_bytes(build_pe(bits=64, characteristics=0x0102))
    assert headers.is_32bit_header
    opt = headers.optional_header32
    assert opt is not None
    assert opt.is_pe32plus_magic
    # High dword of the 64-bit ImageBase lands in the 32-bit field
    assert opt.image_base == 0x1
    # The table starts 16 bytes into the zeroed tail of the directories
    assert headers.offsets.section_table == 88 + OPTIONAL_HEADER32_SIZE
    assert headers.sections[0].name == ""


def test_32bit_flag_selects_pe32_even_with_pe32plus_magic() -> None:
    image = bytearray(build_pe(bits=32))
    struct.pack_into("<H", image, 88, 0x20B)
    headers = parse_bytes(bytes(image))
    assert headers.is_32bit_header
    assert headers.optional_header32 is not None
    assert headers.optional_header32.is_pe32plus_magic


def test_e_lfanew_past_stub() -> None:
    headers = parse_bytes(build_pe(e_lfanew=0x80))
    assert headers.offsets.nt_signature == 0x80
    assert headers.offsets.file_header == 0x84


@pytest.mark.parametrize("count", [0, 1, 5])
def test_section_count(count: int) -> None:
    sections = tuple((f".s{i}".encode(), DATA_FLAGS) for i in range(count))
    headers = parse_bytes(build_pe(bits=64, sections=sections))
    assert len(headers.sections) == count
    assert headers.file_header.number_of_sections == count
    assert [sec.virtual_address for sec in headers.sections] == [
        0x1000 * (i + 1) for i in range(count)
    ]


@pytest.mark.parametrize("bits", [32, 64])
def test_offsets_are_monotonic(bits: int) -> None:
    seq = parse_bytes(build_pe(bits=bits, e_lfanew=0x100)).offsets.as_sequence()
    assert list(seq) == sorted(seq)
    assert len(set(seq)) == len(seq)


def test_decode_is_deterministic(pe64_image: bytes) -> None:
    parser = PEHeaderParser()
    first = parser.parse(io.BytesIO(pe64_image))
    second = parser.parse(io.BytesIO(pe64_image))
    assert first == second


@pytest.mark.parametrize(
    ("raw", "name"),
    [
        (b".text\x00\x00\x00", ".text"),
        (b".textbss", ".textbss"),
        (b" .rsrc\x00\x00", ".rsrc"),
        (b"\x00" * 8, ""),
    ],
)
def test_section_names(raw: bytes, name: str) -> None:
    sec = parse_bytes(build_pe(sections=((raw, TEXT_FLAGS),))).sections[0]
    assert sec.raw_name == raw
    assert sec.name == name


def test_unsigned_widths() -> None:
    image = bytearray(build_pe(bits=32))
    struct.pack_into("<I", image, 72, 0xFFFFFFFF)   # TimeDateStamp
    headers = parse_bytes(bytes(image))
    assert headers.file_header.time_date_stamp == 0xFFFFFFFF
    assert headers.optional_header32 is not None
    assert headers.optional_header32.dll_characteristics == 0x8140


def test_data_directories_by_name(pe32_image: bytes) -> None:
    opt = parse_bytes(pe32_image).optional_header
    dirs = opt.data_directories
    assert dirs.import_table.virtual_address == 0x2000
    assert dirs.import_table.size == 0x28
    assert dirs.export_table.virtual_address == 0
    assert dirs.present() == ["import_table"]
    assert len(list(dirs.entries())) == 16


# ---------------------------------------------------------------------------
# Truncation and bounds
# ---------------------------------------------------------------------------

def test_ten_byte_buffer() -> None:
    with pytest.raises(UnexpectedEndOfData) as excinfo:
        parse_bytes(bytes(10))
    err = excinfo.value
    assert err.record == "IMAGE_DOS_HEADER"
    assert err.expected == 64
    assert err.available == 10


def test_truncated_file_header(pe32_image: bytes) -> None:
    with pytest.raises(UnexpectedEndOfData) as excinfo:
        parse_bytes(pe32_image[:80])
    assert excinfo.value.record == "IMAGE_FILE_HEADER"
    assert excinfo.value.offset == 68


def test_truncated_optional_header(pe32_image: bytes) -> None:
    with pytest.raises(UnexpectedEndOfData) as excinfo:
        parse_bytes(pe32_image[:88 + 100])
    assert excinfo.value.record == "IMAGE_OPTIONAL_HEADER32"
    assert excinfo.value.expected == OPTIONAL_HEADER32_SIZE
    assert excinfo.value.available == 100


def test_truncated_section_table_bounds_checked(pe64_image: bytes) -> None:
    with pytest.raises(InvalidOffset) as excinfo:
        parse_bytes(pe64_image[:-10])
    assert excinfo.value.field == "section table end"
    assert excinfo.value.source_size == len(pe64_image) - 10


def test_truncated_section_table_unchecked(pe64_image: bytes) -> None:
    with pytest.raises(UnexpectedEndOfData) as excinfo:
        parse_bytes(pe64_image[:-10], validate_offsets=False)
    assert excinfo.value.record == "IMAGE_SECTION_HEADER"
    assert excinfo.value.available == 30


def test_declared_section_count_exceeds_table() -> None:
    image = build_pe(number_of_sections=4)
    with pytest.raises(InvalidOffset):
        parse_bytes(image)


def test_e_lfanew_beyond_source(pe32_image: bytes) -> None:
    image = _with_e_lfanew(pe32_image, 0x10000)
    with pytest.raises(InvalidOffset) as excinfo:
        parse_bytes(image)
    assert excinfo.value.field == "e_lfanew"
    assert excinfo.value.offset == 0x10000


def test_e_lfanew_beyond_source_unchecked(pe32_image: bytes) -> None:
    image = _with_e_lfanew(pe32_image, 0x10000)
    with pytest.raises(UnexpectedEndOfData) as excinfo:
        parse_bytes(image, validate_offsets=False)
    assert excinfo.value.record == "NT_SIGNATURE"
    assert excinfo.value.available == 0


def test_e_lfanew_inside_dos_header() -> None:
    with pytest.raises(InvalidOffset, match="DOS header"):
        parse_bytes(build_pe(e_lfanew=32))


# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------

def test_wrong_nt_signature_is_tolerated_by_default() -> None:
    headers = parse_bytes(build_pe(signature=b"NE\x00\x00"))
    assert not headers.has_pe_signature
    assert headers.nt_signature == int.from_bytes(b"NE\x00\x00", "little")
    assert len(headers.sections) == 1


def test_wrong_nt_signature_strict() -> None:
    with pytest.raises(InvalidSignature) as excinfo:
        parse_bytes(build_pe(signature=b"NE\x00\x00"), strict_signature=True)
    assert excinfo.value.expected == b"PE\x00\x00"
    assert excinfo.value.actual == b"NE\x00\x00"


def test_wrong_dos_magic() -> None:
    image = build_pe(mz=b"ZM")
    headers = parse_bytes(image)
    assert not headers.dos_header.has_mz_magic

    with pytest.raises(InvalidSignature) as excinfo:
        parse_bytes(image, strict_signature=True)
    assert excinfo.value.what == "DOS magic"
    assert excinfo.value.actual == b"ZM"


def test_signature_warning_is_logged(tmp_path: Path) -> None:
    log_file = tmp_path / "parser.log"
    logger = PeheadLogger("parser-test", log_file=log_file, console_output=False)
    parser = PEHeaderParser(logger=logger)
    parser.parse(io.BytesIO(build_pe(signature=b"PX\x00\x00")))
    text = log_file.read_text(encoding="utf-8")
    assert "WARNING" in text
    assert "NT signature" in text


# ---------------------------------------------------------------------------
# Stream handling
# ---------------------------------------------------------------------------

def test_stream_left_open_after_parse(pe32_image: bytes) -> None:
    stream = io.BytesIO(pe32_image + b"trailing")
    headers = PEHeaderParser().parse(stream)
    assert not stream.closed
    assert stream.tell() == headers.offsets.end
    assert stream.read() == b"trailing"


def test_stream_left_open_after_failure() -> None:
    stream = io.BytesIO(bytes(10))
    with pytest.raises(UnexpectedEndOfData):
        PEHeaderParser().parse(stream)
    assert not stream.closed


def test_parse_rewinds_stream(pe32_image: bytes) -> None:
    stream = io.BytesIO(pe32_image)
    stream.seek(100)
    headers = PEHeaderParser().parse(stream)
    assert headers.offsets.dos_header == 0
    assert headers.dos_header.e_lfanew == 64


def test_size_of_optional_header_mismatch_is_ignored(tmp_path: Path) -> None:
    log_file = tmp_path / "parser.log"
    logger = PeheadLogger("parser-test", log_file=log_file, console_output=False)
    image = build_pe(bits=32, size_of_optional_header=0xE8)
    headers = PEHeaderParser(logger=logger).parse(io.BytesIO(image))

    assert headers.file_header.size_of_optional_header == 0xE8
    assert headers.offsets.section_table == 88 + OPTIONAL_HEADER32_SIZE
    assert headers.sections[0].name == ".text"
    assert "SizeOfOptionalHeader" in log_file.read_text(encoding="utf-8")


def test_parse_file(tmp_path: Path, pe64_file: Path) -> None:
    headers = parse_file(pe64_file)
    assert not headers.is_32bit_header
    assert len(headers.sections) == 3
    assert parse_file(str(pe64_file)) == headers


def test_parse_file_truncated(tmp_path: Path) -> None:
    path = tmp_path / "short.exe"
    path.write_bytes(b"MZ" + bytes(20))
    with pytest.raises(UnexpectedEndOfData):
        parse_file(path)


def test_parser_options() -> None:
    parser = PEHeaderParser(strict_signature=True, validate_offsets=False)
    assert parser.strict_signature
    assert not parser.validate_offsets


def test_default_parser_keeps_configured_parser_logger(tmp_path: Path) -> None:
    log_file = tmp_path / "parser.log"
    logger = PeheadLogger("parser", log_file=log_file, console_output=False)
    configured = PEHeaderParser(logger=logger)

    parse_bytes(build_pe())
    PEHeaderParser()
    configured.parse(io.BytesIO(build_pe(signature=b"PX\x00\x00")))

    assert "NT signature" in log_file.read_text(encoding="utf-8")
