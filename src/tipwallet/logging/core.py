"""Core logging interfaces and data structures for tipwallet.

Modules log through the standard ``logging`` module. ``setup_logging``
installs a bridge on the package's root logger so those records flow through
a ``LogManager`` where processors (secret redaction), filters, formatters and
handlers are applied.
"""

import json
import logging
import os
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class LogLevel(Enum):
    """Log levels."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]

    @property
    def stdlib_level(self) -> int:
        return _STDLIB_LEVELS[self]

    @classmethod
    def from_stdlib(cls, levelno: int) -> "LogLevel":
        """Map a stdlib ``levelno`` to the closest level at or below it."""
        result = cls.DEBUG
        for level in cls:
            if levelno >= level.stdlib_level:
                result = level
        return result


_LEVEL_RANK = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARNING: 2,
    LogLevel.ERROR: 3,
    LogLevel.CRITICAL: 4,
}

_STDLIB_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.CRITICAL: logging.CRITICAL,
}


@dataclass
class LogContext:
    """Log context information."""

    component: Optional[str] = None
    operation: Optional[str] = None
    master_key_id: Optional[str] = None
    sub_wallet_index: Optional[int] = None
    request_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary."""
        return {
            "component": self.component,
            "operation": self.operation,
            "master_key_id": self.master_key_id,
            "sub_wallet_index": self.sub_wallet_index,
            "request_id": self.request_id,
            "metadata": self.metadata,
        }

    def merged_with(self, other: Optional["LogContext"]) -> "LogContext":
        """Return a copy where fields set on ``other`` win."""
        if other is None:
            return self
        return LogContext(
            component=other.component or self.component,
            operation=other.operation or self.operation,
            master_key_id=other.master_key_id or self.master_key_id,
            sub_wallet_index=(
                other.sub_wallet_index
                if other.sub_wallet_index is not None
                else self.sub_wallet_index
            ),
            request_id=other.request_id or self.request_id,
            metadata={**self.metadata, **other.metadata},
        )


@dataclass
class LogEntry:
    """Log entry data structure."""

    timestamp: float
    level: LogLevel
    message: str
    logger_name: str
    context: LogContext
    exception: Optional[BaseException] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    thread_id: Optional[int] = None
    process_id: Optional[int] = None

    def __post_init__(self):
        if self.thread_id is None:
            self.thread_id = threading.get_ident()
        if self.process_id is None:
            self.process_id = os.getpid()

    def to_dict(self) -> Dict[str, Any]:
        """Convert log entry to dictionary."""
        return {
            "timestamp": self.timestamp,
            "level": self.level.value,
            "message": self.message,
            "logger_name": self.logger_name,
            "context": self.context.to_dict(),
            "exception": str(self.exception) if self.exception else None,
            "extra": self.extra,
            "thread_id": self.thread_id,
            "process_id": self.process_id,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class LogConfig:
    """Log configuration."""

    def __init__(
        self,
        name: str = "tipwallet",
        level: LogLevel = LogLevel.INFO,
        format_type: str = "text",
        handlers: Optional[List[str]] = None,
        redact_secrets: bool = True,
        capture_stdlib: bool = True,
        log_file: Optional[str] = None,
    ):
        if format_type not in ("json", "text"):
            raise ValueError(f"Unknown format type: {format_type}")

        self.name = name
        self.level = level
        self.format_type = format_type
        self.handlers = handlers or (["console", "file"] if log_file else ["console"])
        self.redact_secrets = redact_secrets
        self.capture_stdlib = capture_stdlib
        self.log_file = log_file

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogConfig":
        return cls(
            name=data.get("name", "tipwallet"),
            level=LogLevel(data.get("level", "info")),
            format_type=data.get("format_type", "text"),
            handlers=data.get("handlers"),
            redact_secrets=data.get("redact_secrets", True),
            capture_stdlib=data.get("capture_stdlib", True),
            log_file=data.get("log_file"),
        )


class LogFilter(ABC):
    """Abstract log filter."""

    @abstractmethod
    def filter(self, entry: LogEntry) -> bool:
        """Return True to allow the entry, False to drop it."""
        pass


class LogFormatter(ABC):
    """Abstract log formatter."""

    @abstractmethod
    def format(self, entry: LogEntry) -> str:
        pass


class LogProcessor(ABC):
    """Transforms entries before any handler sees them."""

    @abstractmethod
    def process(self, entry: LogEntry) -> LogEntry:
        pass


class LogHandler(ABC):
    """Abstract log handler."""

    def __init__(self, name: Optional[str] = None):
        self.name = name or self.__class__.__name__
        self.formatter: Optional[LogFormatter] = None
        self.filters: List[LogFilter] = []
        self.level: LogLevel = LogLevel.DEBUG
        self._lock = threading.RLock()

    def set_formatter(self, formatter: LogFormatter) -> None:
        with self._lock:
            self.formatter = formatter

    def add_filter(self, filter_obj: LogFilter) -> None:
        with self._lock:
            self.filters.append(filter_obj)

    def set_level(self, level: LogLevel) -> None:
        with self._lock:
            self.level = level

    def should_handle(self, entry: LogEntry) -> bool:
        """Check level and filters."""
        with self._lock:
            if entry.level.rank < self.level.rank:
                return False
            return all(f.filter(entry) for f in self.filters)

    def format(self, entry: LogEntry) -> str:
        if self.formatter:
            return self.formatter.format(entry)
        return (
            f"{entry.timestamp} [{entry.level.value.upper()}] "
            f"{entry.logger_name}: {entry.message}"
        )

    @abstractmethod
    def emit(self, entry: LogEntry) -> None:
        pass

    def handle(self, entry: LogEntry) -> None:
        if self.should_handle(entry):
            self.emit(entry)

    def close(self) -> None:
        pass


class LogManager:
    """Routes log entries through processors to the configured handlers."""

    def __init__(self, config: Optional[LogConfig] = None):
        self.config = config or LogConfig()
        self.handlers: Dict[str, LogHandler] = {}
        self.processors: List[LogProcessor] = []
        self._lock = threading.RLock()
        self._context = LogContext()
        self._bridge: Optional[logging.Handler] = None

        self._setup_defaults()

    def _setup_defaults(self) -> None:
        from .filters import SecretRedactionProcessor
        from .formatters import JSONFormatter, TextFormatter
        from .handlers import ConsoleHandler, FileHandler

        formatter = (
            JSONFormatter() if self.config.format_type == "json" else TextFormatter()
        )

        console = ConsoleHandler()
        console.set_formatter(formatter)
        self.add_handler("console", console)

        if self.config.log_file:
            file_handler = FileHandler(self.config.log_file)
            file_handler.set_formatter(formatter)
            self.add_handler("file", file_handler)

        if self.config.redact_secrets:
            self.add_processor(SecretRedactionProcessor())

    def add_handler(self, name: str, handler: LogHandler) -> None:
        with self._lock:
            self.handlers[name] = handler

    def remove_handler(self, name: str) -> None:
        with self._lock:
            handler = self.handlers.pop(name, None)
            if handler is not None:
                handler.close()

    def add_processor(self, processor: LogProcessor) -> None:
        with self._lock:
            self.processors.append(processor)

    def set_context(self, context: LogContext) -> None:
        with self._lock:
            self._context = context

    def get_context(self) -> LogContext:
        with self._lock:
            return self._context

    def log(
        self,
        level: LogLevel,
        message: str,
        logger_name: str = "tipwallet",
        context: Optional[LogContext] = None,
        exception: Optional[BaseException] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Build an entry and hand it to every configured handler."""
        if level.rank < self.config.level.rank:
            return

        with self._lock:
            entry = LogEntry(
                timestamp=time.time(),
                level=level,
                message=message,
                logger_name=logger_name,
                context=self._context.merged_with(context),
                exception=exception,
                extra=extra or {},
            )

            for processor in self.processors:
                entry = processor.process(entry)

            for handler_name in self.config.handlers:
                handler = self.handlers.get(handler_name)
                if handler is not None:
                    handler.handle(entry)

    def attach_stdlib(self) -> None:
        """Route stdlib records from the package logger into this manager."""
        from .handlers import StdlibBridgeHandler

        with self._lock:
            if self._bridge is not None:
                return
            self._bridge = StdlibBridgeHandler(self)
            std_logger = logging.getLogger(self.config.name)
            std_logger.addHandler(self._bridge)
            std_logger.setLevel(self.config.level.stdlib_level)
            std_logger.propagate = False

    def detach_stdlib(self) -> None:
        with self._lock:
            if self._bridge is None:
                return
            std_logger = logging.getLogger(self.config.name)
            std_logger.removeHandler(self._bridge)
            std_logger.propagate = True
            self._bridge = None

    def shutdown(self) -> None:
        with self._lock:
            self.detach_stdlib()
            for handler in self.handlers.values():
                handler.close()
            self.handlers.clear()
            self.processors.clear()


# Global log manager instance
_global_manager: Optional[LogManager] = None


def get_logger(name: str = "tipwallet") -> logging.Logger:
    """Get a stdlib logger under the package namespace."""
    if name != "tipwallet" and not name.startswith("tipwallet."):
        name = f"tipwallet.{name}"
    return logging.getLogger(name)


def get_log_manager() -> Optional[LogManager]:
    return _global_manager


def setup_logging(config: Optional[LogConfig] = None) -> LogManager:
    """Install a log manager, replacing any previous one."""
    global _global_manager
    if _global_manager is not None:
        _global_manager.shutdown()

    _global_manager = LogManager(config)
    if _global_manager.config.capture_stdlib:
        _global_manager.attach_stdlib()
    return _global_manager


def shutdown_logging() -> None:
    global _global_manager
    if _global_manager is not None:
        _global_manager.shutdown()
        _global_manager = None
