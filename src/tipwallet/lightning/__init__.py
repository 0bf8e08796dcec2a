"""Lightning payment engine interface, SDK adapter and identifier helpers."""

from .adapter import SdkPaymentEngine
from .engine import (
    EngineHandle,
    NetworkConfig,
    PayableMetadata,
    PaymentDirection,
    PaymentEngine,
    PaymentRecord,
    PaymentRecordStatus,
    PreparedPayment,
    SettledPayment,
    SuccessAction,
    SuccessActionType,
)
from .identifiers import (
    IdentifierKind,
    PayableIdentifier,
    lightning_address_url,
    normalize_payable_identifier,
)

__all__ = [
    "PaymentEngine",
    "SdkPaymentEngine",
    "NetworkConfig",
    "EngineHandle",
    "PayableMetadata",
    "PreparedPayment",
    "SettledPayment",
    "SuccessAction",
    "SuccessActionType",
    "PaymentRecord",
    "PaymentDirection",
    "PaymentRecordStatus",
    "IdentifierKind",
    "PayableIdentifier",
    "lightning_address_url",
    "normalize_payable_identifier",
]
