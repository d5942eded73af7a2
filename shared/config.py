"""
Pehead Configuration
=====================

Settings for logging and for the header reader, kept in dataclasses and
read from a TOML file with two tables::

    [global]
    log_level = "DEBUG"
    log_file = "pehead.log"
    log_json = true

    [reader]
    strict_signature = true
    validate_offsets = true
    max_file_size = 268435456
    output_format = "json"

Keys a table does not declare are ignored; keys it omits keep their
defaults.  Command-line flags are applied on top with
:meth:`PeheadConfig.override_reader`, which re-runs validation.

References:
    - TOML v1.0.0 Specification. https://toml.io/en/v1.0.0
"""

from __future__ import annotations

import sys
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Mapping, TypeVar

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


# config.toml next to the shared/ and pehead/ packages
DEFAULT_CONFIG_PATH: Path = Path(__file__).resolve().parent.parent / "config.toml"

OUTPUT_FORMATS: tuple[str, ...] = ("table", "json")

_Section = TypeVar("_Section")


def _section(kind: type[_Section], table: Mapping[str, Any]) -> _Section:
    known = {f.name for f in fields(kind)}  # type: ignore[arg-type]
    return kind(**{key: value for key, value in table.items() if key in known})


@dataclass(slots=True)
class ReaderConfig:
    """How images are read.

    Attributes:
        strict_signature: Fail on a wrong ``MZ`` or ``PE\\0\\0`` magic
            instead of logging a warning.
        validate_offsets: Bounds-check ``e_lfanew`` and the section table
            against the file length before seeking.
        max_file_size: Largest file accepted, in bytes; 0 disables the cap.
        output_format: ``"table"`` or ``"json"``.
    """

    strict_signature: bool = False
    validate_offsets: bool = True
    max_file_size: int = 0
    output_format: str = "table"

    def __post_init__(self) -> None:
        if self.output_format not in OUTPUT_FORMATS:
            raise ValueError(
                f"reader.output_format must be one of {list(OUTPUT_FORMATS)}, "
                f"got {self.output_format!r}"
            )
        if self.max_file_size < 0:
            raise ValueError(
                f"reader.max_file_size must be >= 0, got {self.max_file_size}"
            )


@dataclass(slots=True)
class GlobalConfig:
    """Logging settings. An empty ``log_file`` disables file logging."""

    log_level: str = "INFO"
    log_file: str = ""
    log_json: bool = False
    debug: bool = False
    version: str = "1.0.0"

    @property
    def effective_level(self) -> str:
        return "DEBUG" if self.debug else self.log_level


@dataclass(slots=True)
class PeheadConfig:
    """Top-level configuration: ``[global]`` and ``[reader]``.

    Usage::

        config = PeheadConfig.load()               # config.toml if present
        config = PeheadConfig.load("pehead.toml")  # must exist
        config.override_reader(strict_signature=True)
    """

    global_settings: GlobalConfig = field(default_factory=GlobalConfig)
    reader: ReaderConfig = field(default_factory=ReaderConfig)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> PeheadConfig:
        """Build a configuration from already-parsed TOML tables."""
        return cls(
            global_settings=_section(GlobalConfig, raw.get("global", {})),
            reader=_section(ReaderConfig, raw.get("reader", {})),
        )

    @classmethod
    def load(cls, path: str | Path | None = None) -> PeheadConfig:
        """Read a TOML configuration file.

        Without *path* the project's ``config.toml`` is used when it exists
        and the defaults otherwise.

        Raises:
            FileNotFoundError: *path* was given and does not exist.
            ValueError: A value is out of range, or the TOML is malformed.
        """
        if path is None:
            if not DEFAULT_CONFIG_PATH.is_file():
                return cls()
            config_path = DEFAULT_CONFIG_PATH
        else:
            config_path = Path(path)
            if not config_path.is_file():
                raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with config_path.open("rb") as fh:
            return cls.from_mapping(tomllib.load(fh))

    def override_reader(self, **changes: Any) -> None:
        """Replace reader settings; ``None`` values are skipped.

        Raises:
            ValueError: The resulting reader settings are invalid.
        """
        changes = {key: value for key, value in changes.items() if value is not None}
        if changes:
            self.reader = replace(self.reader, **changes)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
