"""
Pehead Engine
==============

File-level entry point to the header decoder.  The engine owns the
configuration and logging context; the parser owns the byte layout.

Each read opens its own read-only handle, decodes inside a timed
``decode`` operation and closes the handle on every exit path.  Failures
are logged and re-raised unchanged: a failed read never produces a
result.
"""

from __future__ import annotations

import io
import os
import sys
from pathlib import Path
from types import ModuleType
from typing import BinaryIO

from shared.config import PeheadConfig
from shared.logger import PeheadLogger

from pehead.core.errors import PeheadError
from pehead.core.models import PeHeaders
from pehead.parsers.pe_parser import PEHeaderParser


class HeaderEngine:
    """Reads PE headers from files, memory, or the running process image.

    Usage::

        engine = HeaderEngine()
        headers = engine.read("C:/Windows/System32/kernel32.dll")
        print(headers.file_header.timestamp)
    """

    def __init__(
        self,
        config: PeheadConfig | None = None,
        logger: PeheadLogger | None = None,
    ) -> None:
        """Initialise the engine.

        Args:
            config: Configuration; defaults are used if not provided.
            logger: Logger instance; a new one is created if not provided.
        """
        self._config: PeheadConfig = config or PeheadConfig()
        self._logger: PeheadLogger = logger or PeheadLogger(
            "engine",
            log_level=self._config.global_settings.effective_level,
            log_file=self._config.global_settings.log_file or None,
            json_logs=self._config.global_settings.log_json,
        )
        reader = self._config.reader
        self._parser = PEHeaderParser(
            strict_signature=reader.strict_signature,
            validate_offsets=reader.validate_offsets,
            logger=self._logger,
        )

    @property
    def config(self) -> PeheadConfig:
        return self._config

    @property
    def parser(self) -> PEHeaderParser:
        return self._parser

    # ------------------------------------------------------------------ #
    #  Entry points
    # ------------------------------------------------------------------ #

    def read(self, file_path: str | os.PathLike[str]) -> PeHeaders:
        """Decode the headers of the image at *file_path*.

        Raises:
            FileNotFoundError: If the file does not exist.
            ValueError: If the file exceeds ``reader.max_file_size``.
            PeheadError: If decoding fails.
        """
        path = Path(file_path)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {path}")

        max_size = self._config.reader.max_file_size
        if max_size:
            size = path.stat().st_size
            if size > max_size:
                raise ValueError(
                    f"File too large: {size:,} bytes (max: {max_size:,} bytes)"
                )

        with open(path, "rb") as fh:
            return self._decode(fh, str(path))

    def read_bytes(self, data: bytes, label: str = "<memory>") -> PeHeaders:
        """Decode the headers of an in-memory image."""
        return self._decode(io.BytesIO(data), label)

    def read_interpreter(self) -> PeHeaders:
        """Decode the headers of the running interpreter's executable.

        On Windows this is ``python.exe``; elsewhere the executable is not
        a PE image and decoding fails accordingly.
        """
        if not sys.executable:
            raise FileNotFoundError("Interpreter executable path is unavailable")
        return self.read(sys.executable)

    def read_module(self, module: ModuleType) -> PeHeaders:
        """Decode the headers of the file backing *module*.

        Meaningful for compiled extension modules (``.pyd``).
        """
        file_path = getattr(module, "__file__", None)
        if not file_path:
            raise FileNotFoundError(f"Module {module.__name__!r} has no backing file")
        return self.read(file_path)

    # ------------------------------------------------------------------ #
    #  Internal
    # ------------------------------------------------------------------ #

    def _decode(self, source: BinaryIO, label: str) -> PeHeaders:
        with self._logger.operation("decode"):
            try:
                with self._logger.timed(f"decode {label}"):
                    headers = self._parser.parse(source)
            except PeheadError as exc:
                self._logger.error("Header decode failed for %s: %s", label, exc)
                raise
            self._logger.info(
                "%s: %s, %s, %d section(s)",
                label,
                "PE32" if headers.is_32bit_header else "PE32+",
                headers.file_header.machine_name,
                len(headers.sections),
            )
        return headers
