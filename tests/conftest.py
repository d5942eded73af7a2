"""Shared fixtures: synthetic PE32 / PE32+ images in memory and on disk."""

from __future__ import annotations

from pathlib import Path

import pytest

from pe_builder import (
    DATA_FLAGS,
    IMAGE_SCN_CNT_INITIALIZED_DATA,
    IMAGE_SCN_MEM_READ,
    TEXT_FLAGS,
    build_pe,
)


@pytest.fixture
def pe32_image() -> bytes:
    """Minimal PE32: e_lfanew=64, one ``.text`` section."""
    return build_pe(bits=32)


@pytest.fixture
def pe64_image() -> bytes:
    """PE32+ with ``.text``, ``.data`` and a discardable ``.reloc`` section."""
    return build_pe(
        bits=64,
        sections=(
            (b".text", TEXT_FLAGS),
            (b".data", DATA_FLAGS),
            (b".reloc", IMAGE_SCN_CNT_INITIALIZED_DATA | IMAGE_SCN_MEM_READ | 0x02000000),
        ),
    )


@pytest.fixture
def pe32_file(tmp_path: Path, pe32_image: bytes) -> Path:
    path = tmp_path / "sample32.exe"
    path.write_bytes(pe32_image)
    return path


@pytest.fixture
def pe64_file(tmp_path: Path, pe64_image: bytes) -> Path:
    path = tmp_path / "sample64.dll"
    path.write_bytes(pe64_image)
    return path
