"""Tests for logging core module."""

import logging

import pytest

from tipwallet.logging import (
    LogConfig,
    LogContext,
    LogEntry,
    LogLevel,
    LogManager,
    MemoryHandler,
    get_log_manager,
    get_logger,
    setup_logging,
    shutdown_logging,
)

PHRASE = " ".join(["abandon"] * 11 + ["about"])


@pytest.fixture
def memory_manager():
    """Installed manager that only writes to a memory handler."""
    manager = setup_logging(LogConfig(level=LogLevel.DEBUG, handlers=["memory"]))
    memory = MemoryHandler()
    manager.add_handler("memory", memory)
    yield manager, memory
    shutdown_logging()


class TestLogLevel:
    """Test LogLevel functionality."""

    def test_ordering(self):
        assert LogLevel.DEBUG.rank < LogLevel.INFO.rank < LogLevel.CRITICAL.rank

    def test_stdlib_mapping(self):
        assert LogLevel.WARNING.stdlib_level == logging.WARNING
        assert LogLevel.from_stdlib(logging.ERROR) == LogLevel.ERROR
        assert LogLevel.from_stdlib(25) == LogLevel.INFO
        assert LogLevel.from_stdlib(5) == LogLevel.DEBUG


class TestLogContext:
    """Test LogContext functionality."""

    def test_merge(self):
        base = LogContext(component="session", master_key_id="m1", metadata={"a": 1})
        other = LogContext(operation="pay", sub_wallet_index=0, metadata={"b": 2})

        merged = base.merged_with(other)

        assert merged.component == "session"
        assert merged.operation == "pay"
        assert merged.master_key_id == "m1"
        assert merged.sub_wallet_index == 0
        assert merged.metadata == {"a": 1, "b": 2}

    def test_merge_none(self):
        base = LogContext(component="session")
        assert base.merged_with(None) is base


class TestLogEntry:
    """Test LogEntry functionality."""

    def test_defaults(self):
        entry = LogEntry(
            timestamp=1.0,
            level=LogLevel.INFO,
            message="hello",
            logger_name="tipwallet",
            context=LogContext(),
        )

        assert entry.thread_id is not None
        assert entry.process_id is not None
        assert '"message": "hello"' in entry.to_json()


class TestLogConfig:
    """Test LogConfig functionality."""

    def test_defaults(self):
        config = LogConfig()

        assert config.level == LogLevel.INFO
        assert config.handlers == ["console"]
        assert config.redact_secrets

    def test_file_handler_added(self, tmp_path):
        config = LogConfig(log_file=str(tmp_path / "wallet.log"))
        assert config.handlers == ["console", "file"]

    def test_invalid_format(self):
        with pytest.raises(ValueError):
            LogConfig(format_type="xml")

    def test_from_dict(self):
        config = LogConfig.from_dict({"level": "debug", "format_type": "json"})

        assert config.level == LogLevel.DEBUG
        assert config.format_type == "json"


class TestLogManager:
    """Test LogManager functionality."""

    def test_level_threshold(self):
        manager = LogManager(LogConfig(level=LogLevel.WARNING, handlers=["memory"]))
        memory = MemoryHandler()
        manager.add_handler("memory", memory)

        manager.log(LogLevel.INFO, "ignored")
        manager.log(LogLevel.ERROR, "kept")

        assert [log["message"] for log in memory.get_logs()] == ["kept"]

    def test_redacts_before_handlers(self):
        manager = LogManager(LogConfig(handlers=["memory"]))
        memory = MemoryHandler()
        manager.add_handler("memory", memory)

        manager.log(LogLevel.INFO, f"imported {PHRASE}", extra={"pin": "1234"})

        log = memory.get_logs()[0]
        assert "abandon" not in log["message"]
        assert log["extra"]["pin"] == "[REDACTED]"

    def test_redaction_disabled(self):
        manager = LogManager(LogConfig(handlers=["memory"], redact_secrets=False))
        memory = MemoryHandler()
        manager.add_handler("memory", memory)

        manager.log(LogLevel.INFO, "pin=1234")
        assert memory.get_logs()[0]["message"] == "pin=1234"

    def test_context(self):
        manager = LogManager(LogConfig(handlers=["memory"]))
        manager.set_context(LogContext(component="wallet"))

        assert manager.get_context().component == "wallet"

    def test_shutdown(self):
        manager = LogManager(LogConfig(handlers=["memory"]))
        manager.add_handler("memory", MemoryHandler())

        manager.shutdown()

        assert manager.handlers == {}
        assert manager.processors == []


class TestStdlibBridge:
    """Test routing of package loggers into the manager."""

    def test_get_logger_namespace(self):
        assert get_logger("wallet.session").name == "tipwallet.wallet.session"
        assert get_logger("tipwallet.payments").name == "tipwallet.payments"
        assert get_logger().name == "tipwallet"

    def test_package_records_captured(self, memory_manager):
        manager, memory = memory_manager

        logging.getLogger("tipwallet.wallet.session").info("Wallet locked")

        logs = memory.get_logs()
        assert logs[-1]["message"] == "Wallet locked"
        assert logs[-1]["logger_name"] == "tipwallet.wallet.session"
        assert get_log_manager() is manager

    def test_extras_and_context(self, memory_manager):
        _, memory = memory_manager

        get_logger("wallet.payments").warning(
            "Payment failed",
            extra={"request_id": "r1", "context": LogContext(operation="pay")},
        )

        log = memory.get_logs()[-1]
        assert log["extra"] == {"request_id": "r1"}

    def test_phrase_redacted(self, memory_manager):
        _, memory = memory_manager

        get_logger("wallet.registry").debug(f"phrase {PHRASE}")

        assert "abandon" not in memory.get_logs()[-1]["message"]

    def test_shutdown_detaches(self, memory_manager):
        shutdown_logging()

        assert get_log_manager() is None
        assert logging.getLogger("tipwallet").propagate
