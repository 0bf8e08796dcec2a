"""Log handlers for tipwallet."""

import logging
import os
import sys
import threading
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .core import LogContext, LogEntry, LogHandler, LogLevel

if TYPE_CHECKING:
    from .core import LogManager


class ConsoleHandler(LogHandler):
    """Console log handler."""

    def __init__(self, stream: Any = None):
        super().__init__()
        self.stream = stream or sys.stderr

    def emit(self, entry: LogEntry) -> None:
        with self._lock:
            self.stream.write(self.format(entry) + "\n")
            self.stream.flush()


class FileHandler(LogHandler):
    """Append entries to a file, opened lazily."""

    def __init__(self, filename: str, encoding: str = "utf-8"):
        super().__init__()
        self.filename = filename
        self.encoding = encoding
        self.stream = None

    def _open(self) -> None:
        if self.stream is None:
            directory = os.path.dirname(self.filename)
            if directory:
                os.makedirs(directory, exist_ok=True)
            self.stream = open(self.filename, "a", encoding=self.encoding)

    def emit(self, entry: LogEntry) -> None:
        with self._lock:
            self._open()
            self.stream.write(self.format(entry) + "\n")
            self.stream.flush()

    def close(self) -> None:
        with self._lock:
            if self.stream is not None:
                self.stream.close()
                self.stream = None


class MemoryHandler(LogHandler):
    """Keeps the most recent formatted entries in memory."""

    def __init__(self, max_size: int = 1000):
        super().__init__()
        self.max_size = max_size
        self.buffer: List[Dict[str, Any]] = []

    def emit(self, entry: LogEntry) -> None:
        with self._lock:
            self.buffer.append(
                {
                    "timestamp": entry.timestamp,
                    "level": entry.level.value,
                    "message": entry.message,
                    "logger_name": entry.logger_name,
                    "extra": entry.extra,
                    "formatted": self.format(entry),
                }
            )
            if len(self.buffer) > self.max_size:
                self.buffer.pop(0)

    def get_logs(self) -> List[Dict[str, Any]]:
        with self._lock:
            return self.buffer.copy()

    def clear_logs(self) -> None:
        with self._lock:
            self.buffer.clear()

    def close(self) -> None:
        self.clear_logs()


# LogRecord attributes that are not user-supplied ``extra`` values.
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "asctime", "context"}


class StdlibBridgeHandler(logging.Handler):
    """Forward stdlib ``LogRecord`` objects into a ``LogManager``.

    A ``context`` attribute (``LogContext``) passed through ``extra=`` is
    merged into the entry context; other extras are kept as entry extras.
    """

    def __init__(self, manager: "LogManager"):
        super().__init__(level=logging.NOTSET)
        self.manager = manager
        self._guard = threading.local()

    def emit(self, record: logging.LogRecord) -> None:
        if getattr(self._guard, "active", False):
            return
        self._guard.active = True
        try:
            context: Optional[LogContext] = getattr(record, "context", None)
            extra = {
                key: value
                for key, value in vars(record).items()
                if key not in _RECORD_ATTRS
            }
            exception = record.exc_info[1] if record.exc_info else None
            self.manager.log(
                level=LogLevel.from_stdlib(record.levelno),
                message=record.getMessage(),
                logger_name=record.name,
                context=context if isinstance(context, LogContext) else None,
                exception=exception,
                extra=extra,
            )
        except Exception:
            self.handleError(record)
        finally:
            self._guard.active = False
