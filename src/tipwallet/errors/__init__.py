"""tipwallet error handling.

Exception hierarchy and retry helpers shared by every component.
"""

from .exceptions import (
    AmountOutOfBoundsError,
    AuthenticationError,
    CannotDeleteLastWalletError,
    CommentTooLongError,
    ConfigurationError,
    ConnectError,
    CorruptStorageError,
    DecryptionError,
    DuplicateNameError,
    DuplicateWalletError,
    EnginePaymentError,
    ErrorCategory,
    ErrorSeverity,
    IndexOutOfRangeError,
    InsufficientBalanceError,
    InvalidNicknameError,
    InvalidPayableIdentifierError,
    InvalidPinError,
    InvalidSeedError,
    InvalidStateError,
    MainWalletRequiredError,
    MigrationRequiredError,
    NetworkError,
    NotConnectedError,
    PayableParseError,
    PaymentError,
    ResourceLimitError,
    SchemaVersionError,
    SessionBusyError,
    SessionError,
    StorageError,
    SubWalletCollisionError,
    SubWalletExistsError,
    SubWalletLimitError,
    SubWalletNotFoundError,
    TimeoutError,
    TipWalletError,
    TooManyWalletsError,
    ValidationError,
    WalletLockedError,
    WalletNotFoundError,
)
from .recovery import RetryPolicy, is_retryable_error, retry_async

__all__ = [
    # Base and categories
    "TipWalletError",
    "ErrorSeverity",
    "ErrorCategory",
    "ValidationError",
    "AuthenticationError",
    "ResourceLimitError",
    "NetworkError",
    "TimeoutError",
    "StorageError",
    "SessionError",
    "PaymentError",
    "ConfigurationError",
    # Validation
    "InvalidSeedError",
    "IndexOutOfRangeError",
    "InvalidNicknameError",
    "DuplicateNameError",
    "DuplicateWalletError",
    "WalletNotFoundError",
    "SubWalletNotFoundError",
    "SubWalletExistsError",
    "MainWalletRequiredError",
    "SubWalletCollisionError",
    "AmountOutOfBoundsError",
    "CommentTooLongError",
    "InsufficientBalanceError",
    "InvalidPayableIdentifierError",
    # Authentication
    "DecryptionError",
    "InvalidPinError",
    # Resource limits
    "TooManyWalletsError",
    "SubWalletLimitError",
    "CannotDeleteLastWalletError",
    # Network
    "ConnectError",
    "PayableParseError",
    # Storage
    "SchemaVersionError",
    "MigrationRequiredError",
    "CorruptStorageError",
    # Session
    "WalletLockedError",
    "NotConnectedError",
    "InvalidStateError",
    "SessionBusyError",
    # Payment
    "EnginePaymentError",
    # Recovery
    "RetryPolicy",
    "retry_async",
    "is_retryable_error",
]
