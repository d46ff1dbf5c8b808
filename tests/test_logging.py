"""Tests for structured JSON logging."""

import json
import logging
import sys

import pytest

from chouse_rbac.logging import JSONLogFormatter, configure_logging


def _record(message: str, level: int = logging.INFO, **extra: object) -> logging.LogRecord:
    record = logging.LogRecord("chouse_rbac.test", level, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONLogFormatter:
    """Single-line JSON entries."""

    def test_core_fields(self) -> None:
        entry = json.loads(JSONLogFormatter(service="rbac").format(_record("hello")))
        assert entry["level"] == "INFO"
        assert entry["service"] == "rbac"
        assert entry["logger"] == "chouse_rbac.test"
        assert entry["message"] == "hello"
        assert "timestamp" in entry

    def test_context_fields(self) -> None:
        entry = json.loads(JSONLogFormatter().format(_record("ctx", user_id="u-1", request_id="r-1", action="")))
        assert entry["user_id"] == "u-1"
        assert entry["request_id"] == "r-1"
        assert "action" not in entry

    def test_exception(self) -> None:
        try:
            raise ValueError("bad")
        except ValueError:
            record = _record("failed", level=logging.ERROR)
            record.exc_info = sys.exc_info()
        entry = json.loads(JSONLogFormatter().format(record))
        assert "ValueError: bad" in entry["exception"]


def test_configure_logging(capsys: pytest.CaptureFixture[str]) -> None:
    """The root logger writes JSON to stdout at the requested level."""
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        configure_logging(level=logging.WARNING)
        logging.getLogger("chouse_rbac.x").info("hidden")
        logging.getLogger("chouse_rbac.x").warning("shown")
        lines = [line for line in capsys.readouterr().out.splitlines() if line]
        assert len(lines) == 1
        assert json.loads(lines[0])["message"] == "shown"
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
