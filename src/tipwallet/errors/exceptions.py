"""Exception hierarchy for tipwallet.

Every error raised by the package derives from ``TipWalletError`` and carries
a category and a ``retryable`` flag so callers can decide whether to prompt
for new input, ask for the PIN again, or offer a retry.
"""

import time
from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories."""

    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    RESOURCE_LIMIT = "resource_limit"
    NETWORK = "network"
    TIMEOUT = "timeout"
    STORAGE = "storage"
    SESSION = "session"
    PAYMENT = "payment"
    CONFIGURATION = "configuration"
    SYSTEM = "system"


class TipWalletError(Exception):
    """Base exception for all tipwallet errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        cause: Optional[Exception] = None,
        retryable: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.severity = severity
        self.category = category
        self.cause = cause
        self.retryable = retryable
        self.metadata = metadata or {}
        self.timestamp = time.time()

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "severity": self.severity.value,
            "category": self.category.value,
            "cause": str(self.cause) if self.cause else None,
            "retryable": self.retryable,
            "metadata": self.metadata,
            "timestamp": self.timestamp,
        }

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]

        if self.error_code:
            parts.append(f"Code: {self.error_code}")

        if self.retryable:
            parts.append("Retryable: Yes")

        return " | ".join(parts)


# Category bases


class ValidationError(TipWalletError):
    """Caller supplied input that can never succeed as given."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs,
    ):
        kwargs.setdefault("category", ErrorCategory.VALIDATION)
        kwargs.setdefault("severity", ErrorSeverity.LOW)
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> Dict[str, Any]:
        """Convert validation error to dictionary."""
        data = super().to_dict()
        data.update(
            {
                "field": self.field,
                "value": str(self.value) if self.value is not None else None,
            }
        )
        return data


class AuthenticationError(TipWalletError):
    """The PIN-derived key could not open a stored secret."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.AUTHENTICATION)
        kwargs.setdefault("severity", ErrorSeverity.MEDIUM)
        super().__init__(message, **kwargs)


class ResourceLimitError(TipWalletError):
    """A registry limit would be exceeded by the requested mutation."""

    def __init__(self, message: str, limit: Optional[int] = None, **kwargs):
        kwargs.setdefault("category", ErrorCategory.RESOURCE_LIMIT)
        super().__init__(message, **kwargs)
        self.limit = limit

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["limit"] = self.limit
        return data


class NetworkError(TipWalletError):
    """Transient failure talking to the payment engine."""

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs):
        kwargs.setdefault("category", ErrorCategory.NETWORK)
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)
        self.operation = operation

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["operation"] = self.operation
        return data


class TimeoutError(TipWalletError):
    """An engine call did not complete within its time budget."""

    def __init__(
        self,
        message: str,
        timeout: Optional[float] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        kwargs.setdefault("category", ErrorCategory.TIMEOUT)
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)
        self.timeout = timeout
        self.operation = operation

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"timeout": self.timeout, "operation": self.operation})
        return data


class StorageError(TipWalletError):
    """Persisted state could not be read or written."""

    def __init__(self, message: str, key: Optional[str] = None, **kwargs):
        kwargs.setdefault("category", ErrorCategory.STORAGE)
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        super().__init__(message, **kwargs)
        self.key = key


class SessionError(TipWalletError):
    """Operation not allowed in the current session state."""

    def __init__(self, message: str, state: Optional[str] = None, **kwargs):
        kwargs.setdefault("category", ErrorCategory.SESSION)
        super().__init__(message, **kwargs)
        self.state = state


class PaymentError(TipWalletError):
    """Payment-level failure."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.PAYMENT)
        super().__init__(message, **kwargs)


class ConfigurationError(TipWalletError):
    """Invalid configuration value."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.CONFIGURATION)
        super().__init__(message, **kwargs)


# Validation


class InvalidSeedError(ValidationError):
    """Seed phrase is not a valid 12-word BIP-39 mnemonic."""

    def __init__(self, message: str = "Invalid seed phrase", **kwargs):
        super().__init__(message, field="seed_phrase", **kwargs)


class IndexOutOfRangeError(ValidationError):
    """Sub-wallet index outside [0, MAX_SUB_WALLETS)."""

    def __init__(self, index: Any, upper: int, **kwargs):
        super().__init__(
            f"Sub-wallet index {index} out of range [0, {upper})",
            field="index",
            value=index,
            **kwargs,
        )
        self.index = index


class InvalidNicknameError(ValidationError):
    def __init__(self, message: str, **kwargs):
        super().__init__(message, field="nickname", **kwargs)


class DuplicateNameError(ValidationError):
    def __init__(self, nickname: str, **kwargs):
        super().__init__(
            f'A wallet named "{nickname}" already exists',
            field="nickname",
            value=nickname,
            **kwargs,
        )


class DuplicateWalletError(ValidationError):
    def __init__(self, existing_id: Optional[str] = None, **kwargs):
        super().__init__(
            "This seed phrase has already been imported",
            field="seed_phrase",
            metadata={"existing_id": existing_id},
            **kwargs,
        )
        self.existing_id = existing_id


class WalletNotFoundError(ValidationError):
    def __init__(self, master_key_id: str, **kwargs):
        super().__init__(
            f"Master key not found: {master_key_id}",
            field="master_key_id",
            value=master_key_id,
            **kwargs,
        )


class SubWalletNotFoundError(ValidationError):
    def __init__(self, master_key_id: str, index: int, **kwargs):
        super().__init__(
            f"Sub-wallet {index} not found on master key {master_key_id}",
            field="index",
            value=index,
            **kwargs,
        )


class SubWalletExistsError(ValidationError):
    def __init__(self, master_key_id: str, index: int, **kwargs):
        super().__init__(
            f"Sub-wallet {index} already exists on master key {master_key_id}",
            field="index",
            value=index,
            **kwargs,
        )


class MainWalletRequiredError(ValidationError):
    """Sub-wallet 0 is the master seed itself and always stays listed."""

    def __init__(self, master_key_id: str, **kwargs):
        super().__init__(
            f"Sub-wallet 0 of master key {master_key_id} cannot be removed or archived",
            field="index",
            value=0,
            **kwargs,
        )


class SubWalletCollisionError(ValidationError):
    """Derived phrase for an index equals the phrase of another index."""

    def __init__(self, index: int, colliding_index: int, **kwargs):
        super().__init__(
            f"Sub-wallet {index} derives the same seed as sub-wallet {colliding_index}",
            field="index",
            value=index,
            **kwargs,
        )
        self.colliding_index = colliding_index


class AmountOutOfBoundsError(ValidationError):
    def __init__(self, amount_sats: int, min_sendable: int, max_sendable: int, **kwargs):
        super().__init__(
            f"Amount {amount_sats} sats outside payable range "
            f"[{min_sendable // 1000}, {max_sendable // 1000}] sats",
            field="amount_sats",
            value=amount_sats,
            **kwargs,
        )
        self.min_sendable = min_sendable
        self.max_sendable = max_sendable


class CommentTooLongError(ValidationError):
    def __init__(self, length: int, allowed: int, **kwargs):
        super().__init__(
            f"Comment is {length} characters, endpoint allows {allowed}",
            field="comment",
            value=length,
            **kwargs,
        )
        self.allowed = allowed


class InsufficientBalanceError(ValidationError):
    def __init__(self, amount_sats: int, balance_sats: int, **kwargs):
        super().__init__(
            f"Insufficient balance: need {amount_sats} sats, have {balance_sats}",
            field="amount_sats",
            value=amount_sats,
            **kwargs,
        )
        self.balance_sats = balance_sats


class InvalidPayableIdentifierError(ValidationError):
    def __init__(self, identifier: str, **kwargs):
        super().__init__(
            f"Not a payable identifier: {identifier!r}",
            field="identifier",
            value=identifier,
            **kwargs,
        )


# Authentication


class DecryptionError(AuthenticationError):
    """Authenticated decryption rejected the blob (wrong key or tampering)."""

    def __init__(self, message: str = "Decryption failed", **kwargs):
        super().__init__(message, **kwargs)


class InvalidPinError(AuthenticationError):
    def __init__(self, message: str = "Invalid PIN", **kwargs):
        super().__init__(message, **kwargs)


# Resource limits


class TooManyWalletsError(ResourceLimitError):
    def __init__(self, limit: int, **kwargs):
        super().__init__(
            f"Maximum of {limit} master keys reached", limit=limit, **kwargs
        )


class SubWalletLimitError(ResourceLimitError):
    def __init__(self, limit: int, **kwargs):
        super().__init__(
            f"Maximum of {limit} sub-wallets per master key reached",
            limit=limit,
            **kwargs,
        )


class CannotDeleteLastWalletError(ResourceLimitError):
    def __init__(self, **kwargs):
        super().__init__("Cannot delete the last remaining wallet", limit=1, **kwargs)


# Network


class ConnectError(NetworkError):
    def __init__(self, message: str = "Failed to connect payment engine", **kwargs):
        super().__init__(message, operation="connect", **kwargs)


class PayableParseError(NetworkError):
    """Endpoint metadata could not be resolved.

    Retryable by default because the usual cause is an unreachable endpoint;
    engines signal malformed identifiers with ``retryable=False``.
    """

    def __init__(self, message: str, **kwargs):
        super().__init__(message, operation="parse", **kwargs)


# Storage


class SchemaVersionError(StorageError):
    def __init__(self, version: Any, **kwargs):
        super().__init__(f"Unsupported storage schema version: {version}", **kwargs)
        self.version = version


class MigrationRequiredError(StorageError):
    """Legacy data exists that can only be migrated with the user's PIN."""

    def __init__(self, from_version: int, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.MEDIUM)
        super().__init__(
            f"Stored data (schema v{from_version}) must be migrated with the PIN",
            **kwargs,
        )
        self.from_version = from_version


class CorruptStorageError(StorageError):
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.CRITICAL)
        super().__init__(message, **kwargs)


# Session


class WalletLockedError(SessionError):
    def __init__(self, message: str = "Wallet is locked", **kwargs):
        super().__init__(message, **kwargs)


class NotConnectedError(SessionError):
    def __init__(self, message: str = "Wallet is not connected", **kwargs):
        super().__init__(message, **kwargs)


class InvalidStateError(SessionError):
    pass


class SessionBusyError(SessionError):
    def __init__(self, message: str = "Another payment is in progress", **kwargs):
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)


# Payment


class EnginePaymentError(PaymentError):
    """Failure reported by the payment engine while preparing or executing."""

    def __init__(self, message: str, phase: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.phase = phase
