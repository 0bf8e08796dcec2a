"""tipwallet logging system.

Structured logging with JSON or text output and secret redaction, fed by
the standard ``logging`` records emitted across the package.
"""

from .core import (
    LogConfig,
    LogContext,
    LogEntry,
    LogFilter,
    LogFormatter,
    LogHandler,
    LogLevel,
    LogManager,
    LogProcessor,
    get_log_manager,
    get_logger,
    setup_logging,
    shutdown_logging,
)
from .filters import ComponentFilter, LevelFilter, SecretRedactionProcessor, redact
from .formatters import JSONFormatter, TextFormatter
from .handlers import ConsoleHandler, FileHandler, MemoryHandler, StdlibBridgeHandler

__all__ = [
    # Core
    "LogConfig",
    "LogContext",
    "LogEntry",
    "LogFilter",
    "LogFormatter",
    "LogHandler",
    "LogLevel",
    "LogManager",
    "LogProcessor",
    "get_log_manager",
    "get_logger",
    "setup_logging",
    "shutdown_logging",
    # Filters
    "ComponentFilter",
    "LevelFilter",
    "SecretRedactionProcessor",
    "redact",
    # Formatters
    "JSONFormatter",
    "TextFormatter",
    # Handlers
    "ConsoleHandler",
    "FileHandler",
    "MemoryHandler",
    "StdlibBridgeHandler",
]
