"""Tests for structured logging and correlation context."""

import logging
import sys

import orjson
import pytest

from enterprise_perf.observability.logging import (
    ConsoleFormatter,
    JsonFormatter,
    LogContext,
    configure_logging,
    current_context,
    request_id_var,
)


def _record(message: str = "Loaded 3 clinics", **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="enterprise_perf.loaders.batch",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=None,
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestLogContext:
    """Tests for LogContext."""

    def test_sets_and_resets(self) -> None:
        assert current_context() == {}
        with LogContext(request_id="abc-123", tenant_id="org-1"):
            assert current_context() == {"request_id": "abc-123", "tenant_id": "org-1"}
        assert current_context() == {}

    def test_nested_restores_outer(self) -> None:
        with LogContext(request_id="outer"):
            with LogContext(request_id="inner"):
                assert request_id_var.get() == "inner"
            assert request_id_var.get() == "outer"

    def test_unknown_key_rejected(self) -> None:
        with pytest.raises(ValueError, match="user_id"):
            LogContext(user_id="u1")


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_basic_fields(self) -> None:
        data = orjson.loads(JsonFormatter().format(_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "enterprise_perf.loaders.batch"
        assert data["message"] == "Loaded 3 clinics"
        assert "timestamp" in data
        assert "request_id" not in data

    def test_includes_context_and_extras(self) -> None:
        with LogContext(request_id="abc-123"):
            line = JsonFormatter().format(_record(hits=4, hit_rate="80.00%"))

        data = orjson.loads(line)
        assert data["request_id"] == "abc-123"
        assert data["hits"] == 4
        assert data["hit_rate"] == "80.00%"

    def test_exception_info(self) -> None:
        try:
            raise RuntimeError("redis gone")
        except RuntimeError:
            record = _record()
            record.exc_info = sys.exc_info()

        data = orjson.loads(JsonFormatter().format(record))
        assert data["exception"]["type"] == "RuntimeError"
        assert data["exception"]["message"] == "redis gone"


class TestConsoleFormatter:
    """Tests for ConsoleFormatter."""

    def test_plain_line_with_context(self) -> None:
        formatter = ConsoleFormatter(use_colors=False)
        with LogContext(request_id="abcdefghijkl", tenant_id="org-1"):
            line = formatter.format(_record())

        assert "| INFO     | enterprise_perf.loaders.batch | Loaded 3 clinics" in line
        assert line.endswith("| req=abcdefgh tenant=org-1")


class TestConfigureLogging:
    """Tests for configure_logging."""

    @pytest.fixture(autouse=True)
    def restore_root(self):
        root = logging.getLogger()
        level = root.level
        yield
        for handler in root.handlers[:]:
            if isinstance(handler.formatter, (JsonFormatter, ConsoleFormatter)):
                root.removeHandler(handler)
        root.setLevel(level)

    def test_installs_single_handler(self) -> None:
        configure_logging(json_format=True, level="debug")
        configure_logging(json_format=True, level="debug")

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
        assert root.level == logging.DEBUG
        assert logging.getLogger("redis").level == logging.WARNING

    def test_console_format(self) -> None:
        configure_logging(json_format=False)
        assert isinstance(logging.getLogger().handlers[0].formatter, ConsoleFormatter)
