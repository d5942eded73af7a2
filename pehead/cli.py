"""
Pehead CLI -- PE Header Reader
===============================

Click-based command line for decoding the header region of a PE/COFF
image.

Usage::

    # Decode a file and render tables
    pehead C:/Windows/System32/kernel32.dll

    # Decode the running interpreter's own executable
    pehead

    # JSON to stdout, or to a report file
    pehead app.exe --json
    pehead app.exe --output report.json

    # Reject images with a wrong MZ / PE signature
    pehead app.exe --strict

References:
    - Click documentation: https://click.palletsprojects.com/
"""

from __future__ import annotations

import json
import sys

import click

from shared.config import PeheadConfig
from shared.console import PeheadConsole
from shared.logger import PeheadLogger

from pehead.core.engine import HeaderEngine
from pehead.core.errors import PeheadError
from pehead.output.console import HeaderConsoleOutput
from pehead.output.report import HeaderReportGenerator


@click.command("pehead")
@click.argument("path", required=False, type=click.Path(dir_okay=False))
@click.option(
    "--json", "json_output",
    is_flag=True,
    default=False,
    help="Print the decoded headers as JSON to stdout.",
)
@click.option(
    "--output", "-o",
    "output_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write a JSON report to this path.",
)
@click.option(
    "--strict/--permissive",
    default=None,
    help="Reject (or tolerate) a wrong MZ / PE signature.  Default: from config.",
)
@click.option(
    "--no-validate-offsets",
    is_flag=True,
    default=False,
    help="Skip bounds checks on e_lfanew and the section table.",
)
@click.option(
    "--config", "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="TOML configuration file.",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging of every decode stage.",
)
def pehead_cli(
    path: str | None,
    json_output: bool,
    output_path: str | None,
    strict: bool | None,
    no_validate_offsets: bool,
    config_path: str | None,
    verbose: bool,
) -> None:
    """Decode the DOS, COFF, optional and section headers of a PE image.

    PATH is the image to read.  Without PATH the running interpreter's
    executable is read.
    """
    console = PeheadConsole()

    try:
        config = PeheadConfig.load(config_path)
    except (OSError, ValueError) as exc:
        console.error(f"Cannot load configuration: {exc}")
        sys.exit(1)

    config.override_reader(
        strict_signature=strict,
        validate_offsets=False if no_validate_offsets else None,
        output_format="json" if json_output else None,
    )

    settings = config.global_settings
    log_level = "DEBUG" if verbose else settings.effective_level
    logger = PeheadLogger(
        "cli",
        log_level=log_level,
        log_file=settings.log_file or None,
        json_logs=settings.log_json,
    )

    engine = HeaderEngine(config=config, logger=logger)
    source = path or "<interpreter>"

    try:
        with console.status(f"Decoding {source}"):
            headers = engine.read(path) if path else engine.read_interpreter()
    except (PeheadError, OSError, ValueError) as exc:
        console.error(f"Cannot read {source}: {exc}")
        sys.exit(1)

    if output_path:
        report_path = HeaderReportGenerator().generate_json(
            headers, output_path, source=source
        )
        console.success(f"JSON report saved: {report_path}")

    if config.reader.output_format == "json":
        click.echo(json.dumps(headers.model_dump(mode="json"), indent=2))
        return

    HeaderConsoleOutput(console=console).display(headers, source=source)


def main() -> None:
    """Entry point for ``python -m pehead``."""
    pehead_cli()


if __name__ == "__main__":
    main()
