"""
Unit Tests for structured logging
"""

import asyncio
import json
import logging
import sys

import pytest

from quorum_agent.observability.logging import (
    ColoredFormatter,
    JSONFormatter,
    LogConfig,
    LogFormat,
    LogLevel,
    OperationFilter,
    TextFormatter,
    current_operation,
    operation_context,
    setup_logging,
)


def make_record(message="hello", level=logging.INFO, name="quorum_agent.processes.supervisor", **extra):
    record = logging.LogRecord(name, level, __file__, 10, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


async def _operation_id():
    return current_operation.get().operation_id


class TestOperationContext:
    """Test operation tagging."""

    def test_sets_and_resets(self):
        assert current_operation.get() is None

        with operation_context("start") as operation_id:
            assert operation_id.startswith("start-")
            assert current_operation.get().name == "start"
            assert current_operation.get().operation_id == operation_id

        assert current_operation.get() is None

    def test_explicit_id_and_nesting(self):
        with operation_context("restart", "outer"):
            with operation_context("stop", "inner"):
                assert current_operation.get().operation_id == "inner"
            assert current_operation.get().name == "restart"

    @pytest.mark.asyncio
    async def test_tasks_inherit_the_operation(self):
        with operation_context("update-config", "op-3"):
            seen = await asyncio.create_task(_operation_id())

        assert seen == "op-3"

    def test_filter_stamps_records(self):
        record = make_record()

        with operation_context("stop", "op-1"):
            OperationFilter("host-a").filter(record)

        assert record.operation == "stop"
        assert record.operation_id == "op-1"
        assert record.host == "host-a"

    def test_filter_outside_an_operation(self):
        record = make_record()

        OperationFilter().filter(record)

        assert record.operation is None
        assert record.operation_id is None


class TestFormatters:
    """Test JSON, text and colored output."""

    def test_json_formatter(self):
        record = make_record("config stored", operation="update-config", operation_id="op-7", host="h", bucket="b")

        entry = json.loads(JSONFormatter().format(record))

        assert entry["message"] == "config stored"
        assert entry["level"] == "INFO"
        assert entry["host"] == "h"
        assert entry["operation"] == "update-config"
        assert entry["operation_id"] == "op-7"
        assert entry["extra"] == {"bucket": "b"}

    def test_json_formatter_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())

        entry = json.loads(JSONFormatter().format(record))

        assert entry["exception"]["type"] == "ValueError"
        assert entry["exception"]["message"] == "boom"
        assert "extra" not in entry

    def test_text_formatter_appends_operation_id(self):
        formatter = TextFormatter()

        tagged = formatter.format(make_record("rendered", operation_id="render-1"))
        plain = formatter.format(make_record("rendered"))

        assert tagged.endswith("rendered [render-1]")
        assert " - INFO - rendered" in plain
        assert "[" not in plain

    def test_colored_formatter(self):
        text = ColoredFormatter().format(make_record("watching", operation="stop", operation_id="stop-abcdef123456"))

        assert "processes.supervisor: watching" in text
        assert "(stop ef123456)" in text


class TestSetupLogging:
    """Test logger tree configuration."""

    def test_console_handler_replaced_on_repeat(self):
        setup_logging(LogConfig(level=LogLevel.DEBUG))
        logger = setup_logging(LogConfig(level=LogLevel.WARNING, format=LogFormat.JSON))

        assert logger.name == "quorum_agent"
        assert logger.level == logging.WARNING
        assert len(logger.handlers) == 1
        assert logger.handlers[0].stream is sys.stderr
        assert isinstance(logger.handlers[0].formatter, JSONFormatter)
        assert logger.propagate is False

    def test_file_output_is_json(self, tmp_path):
        log_file = tmp_path / "agent.log"
        logger = setup_logging(LogConfig(output_file=str(log_file), hostname="host-a", backup_count=2))

        with operation_context("render", "op-file"):
            logging.getLogger("quorum_agent.processes").info("rendered")
        for handler in logger.handlers:
            handler.flush()

        lines = [json.loads(line) for line in log_file.read_text().splitlines()]
        assert lines[-1]["message"] == "rendered"
        assert lines[-1]["operation_id"] == "op-file"
        assert lines[-1]["host"] == "host-a"
        assert lines[-1]["logger"] == "quorum_agent.processes"
        assert logger.handlers[1].backupCount == 2
