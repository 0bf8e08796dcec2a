"""Tests for logging handlers, filters and formatters."""

import io
import json

import pytest

from tipwallet.logging import (
    ComponentFilter,
    ConsoleHandler,
    FileHandler,
    JSONFormatter,
    LevelFilter,
    LogContext,
    LogEntry,
    LogLevel,
    MemoryHandler,
    SecretRedactionProcessor,
    TextFormatter,
    redact,
)


def make_entry(
    level=LogLevel.INFO,
    message="Test message",
    logger_name="tipwallet.test",
    context=None,
    **kwargs,
):
    return LogEntry(
        timestamp=1234567890.5,
        level=level,
        message=message,
        logger_name=logger_name,
        context=context or LogContext(),
        **kwargs,
    )


class TestConsoleHandler:
    """Test ConsoleHandler functionality."""

    def test_creation(self):
        handler = ConsoleHandler()

        assert handler.name == "ConsoleHandler"
        assert handler.level == LogLevel.DEBUG

    def test_emit(self):
        stream = io.StringIO()
        handler = ConsoleHandler(stream)

        handler.handle(make_entry())

        assert stream.getvalue().endswith("tipwallet.test: Test message\n")

    def test_level_filtering(self):
        stream = io.StringIO()
        handler = ConsoleHandler(stream)
        handler.set_level(LogLevel.WARNING)

        handler.handle(make_entry(LogLevel.DEBUG, "Debug message"))
        handler.handle(make_entry(LogLevel.WARNING, "Warning message"))

        assert "Debug message" not in stream.getvalue()
        assert "Warning message" in stream.getvalue()


class TestFileHandler:
    """Test FileHandler functionality."""

    def test_writes_lazily(self, tmp_path):
        path = tmp_path / "logs" / "wallet.log"
        handler = FileHandler(str(path))

        assert not path.exists()

        handler.handle(make_entry())
        handler.close()

        assert "Test message" in path.read_text()


class TestMemoryHandler:
    """Test MemoryHandler functionality."""

    def test_bounded(self):
        handler = MemoryHandler(max_size=2)

        for i in range(3):
            handler.handle(make_entry(message=f"m{i}"))

        assert [log["message"] for log in handler.get_logs()] == ["m1", "m2"]

    def test_clear(self):
        handler = MemoryHandler()
        handler.handle(make_entry())

        handler.clear_logs()
        assert handler.get_logs() == []


class TestFilters:
    """Test log filters."""

    def test_level_filter(self):
        level_filter = LevelFilter(LogLevel.INFO, LogLevel.WARNING)

        assert not level_filter.filter(make_entry(LogLevel.DEBUG))
        assert level_filter.filter(make_entry(LogLevel.WARNING))
        assert not level_filter.filter(make_entry(LogLevel.ERROR))

    def test_component_filter(self):
        component_filter = ComponentFilter(["tipwallet.wallet"])

        assert component_filter.filter(make_entry(logger_name="tipwallet.wallet.session"))
        assert not component_filter.filter(make_entry(logger_name="tipwallet.storage"))

    def test_handler_applies_filters(self):
        handler = MemoryHandler()
        handler.add_filter(ComponentFilter(["tipwallet.wallet"]))

        handler.handle(make_entry(logger_name="other"))
        assert handler.get_logs() == []


class TestRedaction:
    """Test secret redaction."""

    @pytest.mark.parametrize(
        "text",
        [
            "pin=1234",
            "PIN: 'secret value'",
            'mnemonic="zoo zoo zoo"',
            "seed_phrase: abc",
        ],
    )
    def test_key_value_pairs(self, text):
        result = redact(text)

        assert "[REDACTED]" in result
        assert "1234" not in result
        assert "secret value" not in result
        assert "zoo" not in result
        assert "abc" not in result

    def test_phrase(self):
        phrase = "letter advice cage absurd amount doctor acoustic avoid letter advice cage above"
        assert redact(f"got: {phrase}.") == "got: [REDACTED]."

    def test_ordinary_text_untouched(self):
        text = "Switched to wallet 1f2e/3"
        assert redact(text) == text

    def test_processor(self):
        entry = make_entry(
            message="pin=1234",
            extra={"mnemonic": "anything", "nested": {"seed": "x", "count": 2}},
            context=LogContext(metadata={"passphrase": "hunter2"}),
        )

        entry = SecretRedactionProcessor().process(entry)

        assert entry.message == "pin=[REDACTED]"
        assert entry.extra["mnemonic"] == "[REDACTED]"
        assert entry.extra["nested"] == {"seed": "[REDACTED]", "count": 2}
        assert entry.context.metadata["passphrase"] == "[REDACTED]"


class TestFormatters:
    """Test log formatters."""

    def test_json(self):
        entry = make_entry(
            context=LogContext(component="session"), extra={"request_id": "r1"}
        )

        data = json.loads(JSONFormatter().format(entry))

        assert data["level"] == "info"
        assert data["logger"] == "tipwallet.test"
        assert data["message"] == "Test message"
        assert data["context"] == {"component": "session"}
        assert data["extra"] == {"request_id": "r1"}
        assert data["timestamp"] == "2009-02-13T23:31:30.500000Z"

    def test_json_exception(self):
        try:
            raise ValueError("boom")
        except ValueError as e:
            entry = make_entry(exception=e)

        data = json.loads(JSONFormatter().format(entry))

        assert data["exception"]["type"] == "ValueError"
        assert "boom" in data["exception"]["traceback"]

    def test_json_unix_timestamp(self):
        data = json.loads(JSONFormatter(timestamp_format="unix").format(make_entry()))
        assert data["timestamp"] == "1234567890.5"

    def test_text(self):
        line = TextFormatter().format(make_entry(LogLevel.WARNING))
        assert line == "2009-02-13 23:31:30 [WARNING] tipwallet.test: Test message"

    def test_text_exception(self):
        line = TextFormatter().format(make_entry(exception=RuntimeError("bad")))
        assert line.endswith("(RuntimeError: bad)")
