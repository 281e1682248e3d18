"""Unit tests for observability features (structured logging, metrics)."""

import json
import logging
import sys

import pytest

from crispsync_core.observability.logging import (
    JsonFormatter,
    KeyValueFormatter,
    StructuredLogger,
    SyncContext,
    configure_logging,
    get_logger,
)
from crispsync_core.observability.metrics import MetricsCollector


def make_record(level: int = logging.INFO, msg: str = "Test message") -> logging.LogRecord:
    return logging.LogRecord(
        name="test.logger",
        level=level,
        pathname="test.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=None,
    )


class TestJsonFormatter:
    """Tests for JSON log formatter."""

    def test_format_basic_log_record(self):
        """Test formatting a basic log record to JSON."""
        formatter = JsonFormatter(service_name="crispsync-test")

        parsed = json.loads(formatter.format(make_record()))

        assert parsed["message"] == "Test message"
        assert parsed["level"] == "INFO"
        assert parsed["logger"] == "test.logger"
        assert parsed["service"] == "crispsync-test"
        assert "timestamp" in parsed
        assert "source" not in parsed

    def test_format_log_with_extra_fields(self):
        """Extra attributes are emitted as top-level fields."""
        record = make_record()
        record.website_id = "website-1"
        record.fingerprint = 42

        parsed = json.loads(JsonFormatter().format(record))

        assert parsed["website_id"] == "website-1"
        assert parsed["fingerprint"] == 42

    def test_warning_includes_source(self):
        """Warnings and above carry their source location."""
        parsed = json.loads(JsonFormatter().format(make_record(level=logging.WARNING)))

        assert parsed["source"]["line"] == 42

    def test_format_log_with_exception(self):
        """Exceptions are rendered with their traceback."""
        try:
            raise ValueError("Test error")
        except ValueError:
            exc_info = sys.exc_info()

        record = make_record(level=logging.ERROR)
        record.exc_info = exc_info

        parsed = json.loads(JsonFormatter().format(record))

        assert "ValueError: Test error" in parsed["exception"]

    def test_unserializable_extra_is_stringified(self):
        """Values json cannot encode are converted to strings."""
        record = make_record()
        record.payload = {1, 2}

        parsed = json.loads(JsonFormatter().format(record))

        assert isinstance(parsed["payload"], str)


class TestKeyValueFormatter:
    """Tests for the plain-text formatter."""

    def test_appends_sorted_fields(self):
        """Structured fields follow the text line as key=value pairs."""
        record = make_record()
        record.session_id = "s1"
        record.page = 2

        line = KeyValueFormatter(fmt="%(levelname)s %(message)s").format(record)

        assert line == "INFO Test message page=2 session_id=s1"

    def test_plain_line_without_fields(self):
        line = KeyValueFormatter(fmt="%(message)s").format(make_record())

        assert line == "Test message"


class TestSyncContext:
    """Tests for SyncContext."""

    def test_to_dict_skips_unset_fields(self):
        """Only identifiers that are set appear in log output."""
        context = SyncContext(website_id="w1", page=0, extra={"attempt": 2})

        assert context.to_dict() == {"website_id": "w1", "page": 0, "attempt": 2}

    def test_with_fields_copies(self):
        """with_fields returns a new context and leaves the original alone."""
        base = SyncContext(website_id="w1", extra={"run": 1})

        paged = base.with_fields(page=3)
        paged.extra["attempt"] = 2

        assert paged.to_dict() == {"website_id": "w1", "page": 3, "run": 1, "attempt": 2}
        assert base.to_dict() == {"website_id": "w1", "run": 1}


class TestStructuredLogger:
    """Tests for StructuredLogger."""

    def test_get_logger_is_cached(self):
        """The same name returns the same logger."""
        assert get_logger("crispsync.test") is get_logger("crispsync.test")
        assert isinstance(get_logger("crispsync.test"), StructuredLogger)

    def test_context_and_kwargs_become_extras(self, caplog):
        """Context identifiers and keyword fields land on the record."""
        logger = get_logger("crispsync.test.extras")

        with caplog.at_level(logging.INFO, logger="crispsync.test.extras"):
            logger.info(
                "Page processed",
                context=SyncContext(website_id="w1", session_id="s1"),
                conversations=20,
            )

        record = caplog.records[-1]
        assert record.website_id == "w1"
        assert record.session_id == "s1"
        assert record.conversations == 20

    def test_keyword_fields_override_context(self, caplog):
        """An explicit keyword wins over the same context identifier."""
        logger = get_logger("crispsync.test.override")

        with caplog.at_level(logging.INFO, logger="crispsync.test.override"):
            logger.info("Page fetched", context=SyncContext(page=1), page=2)

        assert caplog.records[-1].page == 2

    def test_configure_logging_installs_json_handler(self):
        """configure_logging installs one stdout handler with the JSON formatter."""
        root = logging.getLogger()
        saved_handlers = root.handlers[:]
        saved_level = root.level
        try:
            configure_logging(level="DEBUG", json_format=True, service_name="svc")

            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JsonFormatter)
            assert root.handlers[0].formatter.service_name == "svc"
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_text_mode_uses_key_value_formatter(self):
        root = logging.getLogger()
        saved_handlers = root.handlers[:]
        saved_level = root.level
        try:
            configure_logging(level="warning", json_format=False)

            assert root.level == logging.WARNING
            assert isinstance(root.handlers[0].formatter, KeyValueFormatter)
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

    def test_unknown_level_is_rejected(self):
        """A misspelt level fails instead of silently logging everything."""
        with pytest.raises(ValueError, match="Unknown log level"):
            configure_logging(level="VERBOSE")


class TestMetricsCollector:
    """Tests for MetricsCollector."""

    def test_increment_counter(self):
        """Counters accumulate."""
        metrics = MetricsCollector()

        metrics.increment("events_received")
        metrics.increment("events_received", 2)

        assert metrics.get("events_received") == 3

    def test_labels_are_separate_series(self):
        """Labels distinguish series regardless of order."""
        metrics = MetricsCollector()

        metrics.increment("writes", labels={"entity": "message", "op": "insert"})
        metrics.increment("writes", labels={"op": "insert", "entity": "message"})
        metrics.increment("writes", labels={"entity": "conversation", "op": "insert"})

        assert metrics.get("writes", labels={"entity": "message", "op": "insert"}) == 2
        assert metrics.get("writes", labels={"entity": "conversation", "op": "insert"}) == 1

    def test_gauges_and_reset(self):
        """Gauges hold the last value and reset clears everything."""
        metrics = MetricsCollector()

        metrics.set_gauge("event_queue_depth", 4)
        metrics.set_gauge("event_queue_depth", 1)
        assert metrics.get_all() == {"counters": {}, "gauges": {"event_queue_depth": 1}}

        metrics.reset()
        assert metrics.get("event_queue_depth") == 0
