"""
Pehead Structured Logger
=========================

:class:`PeheadLogger` wraps one stdlib logger per component
(``pehead.parser``, ``pehead.engine``, ``pehead.cli``).  Records go to a
Rich handler on stderr and, when a log file is configured, to a rotating
file as plain text or as JSON lines.

Each record is stamped with the component name and the operation in
progress; keyword arguments passed to a log call travel with the record
as structured context, e.g. the file offset a decode stage started at.

References:
    - Python logging HOWTO. https://docs.python.org/3/howto/logging.html
    - Rich library. https://github.com/Textualize/rich
"""

from __future__ import annotations

import json
import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Generator

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

_NAMESPACE = "pehead"

_TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_TEXT_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"

# Keyword arguments understood by logging itself; everything else is context.
_LOGGING_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel"})

_LEVEL_THEME = Theme(
    {
        "logging.level.debug": "dim cyan",
        "logging.level.info": "bold bright_blue",
        "logging.level.warning": "bold yellow",
        "logging.level.error": "bold red",
        "logging.level.critical": "bold white on red",
    }
)


class JsonLineFormatter(logging.Formatter):
    """Render a record as one JSON object on a single line.

    Always present: ``timestamp`` (UTC, ISO 8601), ``level``, ``logger``,
    ``message``.  Added when set: ``tool_name``, ``operation``, ``extra``
    (the keyword context) and ``exc_info`` (formatted traceback).
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for attr, key in (
            ("tool_name", "tool_name"),
            ("operation", "operation"),
            ("context", "extra"),
        ):
            value = getattr(record, attr, None)
            if value is not None:
                entry[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def _console_handler(level: int) -> logging.Handler:
    return RichHandler(
        console=Console(theme=_LEVEL_THEME, stderr=True),
        level=level,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )


def _file_handler(
    log_file: str | Path,
    level: int,
    json_logs: bool,
    max_bytes: int,
    backup_count: int,
) -> logging.Handler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    if json_logs:
        handler.setFormatter(JsonLineFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT, _TEXT_DATEFMT))
    return handler


class Stopwatch:
    """Elapsed-time handle yielded by :meth:`PeheadLogger.timed`."""

    __slots__ = ("started",)

    def __init__(self) -> None:
        self.started = time.perf_counter()

    @property
    def elapsed(self) -> float:
        return time.perf_counter() - self.started


class PeheadLogger:
    """Component logger with operation scoping and keyword context.

    Usage::

        log = PeheadLogger("engine", log_file="pehead.log", json_logs=True)
        with log.operation("decode"):
            log.debug("Section table", offset=0x178)
            with log.timed("decode app.exe"):
                headers = parser.parse(fh)

    Constructing a second logger for the same component replaces the
    handlers of the first, unless it is built with ``configure=False``:
    then it only attaches to whatever the component is already set up
    with, or stays silent if nothing is.

    Args:
        tool_name:       Component name, appended to the ``pehead.`` namespace.
        log_level:       Minimum level name; unknown names fall back to INFO.
        log_file:        Rotating log file; ``None`` or ``""`` disables it.
        json_logs:       Write the log file as JSON lines.
        max_bytes:       Rotation threshold of the log file.
        backup_count:    Rotated files kept.
        console_output:  Attach the Rich stderr handler.
        configure:       Apply the options above to the component logger.
            When ``False`` they are ignored and existing handlers and
            level are left untouched.
    """

    def __init__(
        self,
        tool_name: str,
        *,
        log_level: str = "INFO",
        log_file: str | Path | None = None,
        json_logs: bool = False,
        max_bytes: int = 10_485_760,
        backup_count: int = 5,
        console_output: bool = True,
        configure: bool = True,
    ) -> None:
        self._tool_name = tool_name
        self._operation: str | None = None
        self._logger = logging.getLogger(f"{_NAMESPACE}.{tool_name}")

        if not configure:
            if not self._logger.handlers:
                self._logger.addHandler(logging.NullHandler())
                self._logger.propagate = False
            return

        level = logging.getLevelName(log_level.upper())
        if not isinstance(level, int):
            level = logging.INFO

        self._logger.setLevel(level)
        self._logger.propagate = False
        for old in list(self._logger.handlers):
            self._logger.removeHandler(old)
            old.close()

        handlers: list[logging.Handler] = []
        if console_output:
            handlers.append(_console_handler(level))
        if log_file:
            handlers.append(
                _file_handler(log_file, level, json_logs, max_bytes, backup_count)
            )
        for handler in handlers or [logging.NullHandler()]:
            self._logger.addHandler(handler)

    @property
    def tool_name(self) -> str:
        return self._tool_name

    @property
    def underlying(self) -> logging.Logger:
        """The wrapped stdlib logger."""
        return self._logger

    # ------------------------------------------------------------------ #
    #  Scopes
    # ------------------------------------------------------------------ #

    @contextmanager
    def operation(self, name: str) -> Generator[PeheadLogger, None, None]:
        """Tag every record inside the block with ``operation=name``."""
        previous, self._operation = self._operation, name
        try:
            yield self
        finally:
            self._operation = previous

    @contextmanager
    def timed(self, label: str) -> Generator[Stopwatch, None, None]:
        """Log ``Started`` on entry and ``Completed`` with the elapsed time.

        A block left by an exception logs ``Aborted`` at DEBUG instead and
        the exception propagates.
        """
        watch = Stopwatch()
        self.debug("Started: %s", label)
        try:
            yield watch
        except BaseException:
            self.debug("Aborted: %s (%.3f sec)", label, watch.elapsed)
            raise
        self.info("Completed: %s (%.3f sec)", label, watch.elapsed)

    # ------------------------------------------------------------------ #
    #  Emitting
    # ------------------------------------------------------------------ #

    def log(self, level: int, msg: str, *args: Any, **kwargs: Any) -> None:
        passthrough = {key: kwargs.pop(key) for key in _LOGGING_KWARGS & kwargs.keys()}
        extra: dict[str, Any] = {
            "tool_name": self._tool_name,
            "operation": self._operation,
        }
        if kwargs:
            extra["context"] = kwargs
        self._logger.log(level, msg, *args, extra=extra, **passthrough)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self.log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self.log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self.log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self.log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """ERROR record carrying the traceback of the exception being handled."""
        kwargs.setdefault("exc_info", True)
        self.log(logging.ERROR, msg, *args, **kwargs)
