"""Log filters and processors for tipwallet.

``SecretRedactionProcessor`` runs before any handler and scrubs seed phrases
and PIN values from messages and extras.
"""

import re
from typing import Any, Iterable, Optional

from .core import LogEntry, LogFilter, LogLevel, LogProcessor

REDACTED = "[REDACTED]"

# Twelve or more consecutive lowercase words of BIP-39 shape (3-8 letters).
_PHRASE_PATTERN = re.compile(r"\b(?:[a-z]{3,8}\s+){11,23}[a-z]{3,8}\b")
_KEY_VALUE_PATTERN = re.compile(
    r"(?i)\b(pin|mnemonic|seed_phrase|seed|passphrase)\s*[=:]\s*(\"[^\"]*\"|'[^']*'|\S+)"
)

SENSITIVE_KEYS = frozenset(
    {"pin", "mnemonic", "seed", "seed_phrase", "passphrase", "key", "plaintext"}
)


def redact(text: str) -> str:
    """Replace seed phrases and ``pin=...`` style fields in ``text``."""
    text = _KEY_VALUE_PATTERN.sub(lambda m: f"{m.group(1)}={REDACTED}", text)
    return _PHRASE_PATTERN.sub(REDACTED, text)


def _redact_value(key: str, value: Any) -> Any:
    if key.lower() in SENSITIVE_KEYS:
        return REDACTED
    if isinstance(value, str):
        return redact(value)
    if isinstance(value, dict):
        return {k: _redact_value(str(k), v) for k, v in value.items()}
    return value


class SecretRedactionProcessor(LogProcessor):
    """Scrub secrets out of entries before they are formatted."""

    def process(self, entry: LogEntry) -> LogEntry:
        entry.message = redact(entry.message)
        entry.extra = {k: _redact_value(k, v) for k, v in entry.extra.items()}
        entry.context.metadata = {
            k: _redact_value(k, v) for k, v in entry.context.metadata.items()
        }
        return entry


class LevelFilter(LogFilter):
    """Filter logs by level."""

    def __init__(self, min_level: LogLevel, max_level: Optional[LogLevel] = None):
        self.min_level = min_level
        self.max_level = max_level or LogLevel.CRITICAL

    def filter(self, entry: LogEntry) -> bool:
        return self.min_level.rank <= entry.level.rank <= self.max_level.rank


class ComponentFilter(LogFilter):
    """Allow only entries from the given logger prefixes."""

    def __init__(self, prefixes: Iterable[str]):
        self.prefixes = tuple(prefixes)

    def filter(self, entry: LogEntry) -> bool:
        return entry.logger_name.startswith(self.prefixes)
