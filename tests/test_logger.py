"""Tests for the structured logger."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from shared.logger import PeheadLogger


def _json_lines(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_stdlib_logger_name() -> None:
    log = PeheadLogger("naming", console_output=False)
    assert log.tool_name == "naming"
    assert log.underlying.name == "pehead.naming"
    assert log.underlying.propagate is False


def test_silent_logger_has_null_handler() -> None:
    log = PeheadLogger("silent", console_output=False)
    assert len(log.underlying.handlers) == 1
    assert isinstance(log.underlying.handlers[0], logging.NullHandler)


def test_reinstantiation_replaces_handlers(tmp_path: Path) -> None:
    PeheadLogger("dup", log_file=tmp_path / "a.log", console_output=False)
    log = PeheadLogger("dup", log_file=tmp_path / "b.log", console_output=False)
    assert len(log.underlying.handlers) == 1


def test_json_records_carry_context(tmp_path: Path) -> None:
    path = tmp_path / "log.jsonl"
    log = PeheadLogger("ctx", log_level="DEBUG", log_file=path,
                       json_logs=True, console_output=False)
    with log.operation("decode"):
        log.debug("Seeking", offset=0x80)
    log.info("outside")

    first, second = _json_lines(path)
    assert first["level"] == "DEBUG"
    assert first["logger"] == "pehead.ctx"
    assert first["operation"] == "decode"
    assert first["extra"] == {"offset": 128}
    assert "operation" not in second


def test_level_filtering(tmp_path: Path) -> None:
    path = tmp_path / "log.jsonl"
    log = PeheadLogger("lvl", log_level="WARNING", log_file=path,
                       json_logs=True, console_output=False)
    log.info("hidden")
    log.warning("shown")
    assert [e["message"] for e in _json_lines(path)] == ["shown"]


def test_operation_scopes_nest(tmp_path: Path) -> None:
    path = tmp_path / "log.jsonl"
    log = PeheadLogger("nest", log_file=path, json_logs=True, console_output=False)
    with log.operation("outer"):
        with log.operation("inner"):
            log.info("a")
        log.info("b")
    assert [e["operation"] for e in _json_lines(path)] == ["inner", "outer"]


def test_timed_success_and_failure(tmp_path: Path) -> None:
    path = tmp_path / "log.jsonl"
    log = PeheadLogger("timer", log_level="DEBUG", log_file=path,
                       json_logs=True, console_output=False)
    with log.timed("work") as timer:
        assert timer.elapsed >= 0.0
    with pytest.raises(RuntimeError):
        with log.timed("broken"):
            raise RuntimeError("boom")

    messages = [e["message"] for e in _json_lines(path)]
    assert messages[0] == "Started: work"
    assert messages[1].startswith("Completed: work")
    assert messages[2] == "Started: broken"
    assert messages[3].startswith("Aborted: broken")


def test_exception_includes_traceback(tmp_path: Path) -> None:
    path = tmp_path / "log.jsonl"
    log = PeheadLogger("exc", log_file=path, json_logs=True, console_output=False)
    try:
        raise ValueError("bad")
    except ValueError:
        log.exception("failed")
    (entry,) = _json_lines(path)
    assert entry["level"] == "ERROR"
    assert "ValueError: bad" in entry["exc_info"]


def test_plain_text_file_format(tmp_path: Path) -> None:
    path = tmp_path / "plain.log"
    log = PeheadLogger("plain", log_file=path, console_output=False)
    log.warning("careful")
    line = path.read_text(encoding="utf-8").strip()
    assert "| WARNING  | pehead.plain | careful" in line


def test_unconfigured_attach_keeps_existing_handlers(tmp_path: Path) -> None:
    path = tmp_path / "shared.log"
    configured = PeheadLogger("attach", log_file=path, console_output=False)
    attached = PeheadLogger("attach", configure=False)

    assert attached.underlying is configured.underlying
    assert len(configured.underlying.handlers) == 1
    attached.warning("via attached")
    configured.warning("via configured")
    text = path.read_text(encoding="utf-8")
    assert "via attached" in text
    assert "via configured" in text


def test_unconfigured_logger_is_silent() -> None:
    log = PeheadLogger("fresh-unconfigured", configure=False)
    assert log.underlying.propagate is False
    assert isinstance(log.underlying.handlers[0], logging.NullHandler)
