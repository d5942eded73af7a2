"""
Pehead Report Generator
========================

Writes decoded headers as a structured JSON document suitable for
machine consumption and downstream tooling.  Field values come straight
from the pydantic models; section names and flag names are added next to
the raw values.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pehead import __version__
from pehead.core.flags import flag_names
from pehead.core.models import PeHeaders


class HeaderReportGenerator:
    """Build and write JSON reports for :class:`PeHeaders`."""

    def build(self, headers: PeHeaders, source: str = "") -> dict[str, Any]:
        """Return the report as a JSON-compatible dictionary."""
        stamp = headers.timestamp
        return {
            "report_type": "pe_headers",
            "version": __version__,
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "source": source,
            "summary": {
                "format": "PE32" if headers.is_32bit_header else "PE32+",
                "machine": headers.file_header.machine_name,
                "linked_at": stamp.isoformat() if stamp else None,
                "has_pe_signature": headers.has_pe_signature,
                "file_flags": flag_names(headers.file_header.flags),
                "data_directories": headers.optional_header.data_directories.present(),
                "sections": [
                    {"name": sec.name, "flags": flag_names(sec.flags)}
                    for sec in headers.sections
                ],
            },
            "headers": headers.model_dump(mode="json"),
        }

    def generate_json(
        self,
        headers: PeHeaders,
        output_path: str | Path,
        source: str = "",
    ) -> str:
        """Write the JSON report to *output_path*.

        Returns:
            The absolute path of the generated report.
        """
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps(self.build(headers, source), indent=2, default=str),
            encoding="utf-8",
        )
        return str(path.resolve())
