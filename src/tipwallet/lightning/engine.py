"""
Typed interface to the external Lightning payment engine.

The wallet core talks only to ``PaymentEngine`` and the models below; engine
specific response shapes are mapped in the adapter.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class NetworkConfig:
    """Where and how the engine should connect.

    ``storage_dir`` is the engine's private working directory; discovery
    gives every scanned index its own so sessions never share state.
    """

    network: str = "mainnet"
    api_key: Optional[str] = None
    storage_dir: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def with_storage_dir(self, storage_dir: str) -> "NetworkConfig":
        return NetworkConfig(
            network=self.network,
            api_key=self.api_key,
            storage_dir=storage_dir,
            extra=dict(self.extra),
        )


@dataclass
class EngineHandle:
    """Opaque live connection returned by ``PaymentEngine.connect``."""

    handle_id: str
    network: str
    storage_dir: Optional[str] = None
    connected_at: float = field(default_factory=time.time)
    native: Any = field(default=None, repr=False, compare=False)


@dataclass(frozen=True)
class PayableMetadata:
    """Pay-endpoint constraints. Sendable bounds are in millisatoshi."""

    identifier: str
    min_sendable: int
    max_sendable: int
    comment_allowed: int = 0
    description: Optional[str] = None
    domain: Optional[str] = None
    callback: Optional[str] = None
    native: Any = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        if self.min_sendable < 0 or self.max_sendable < self.min_sendable:
            raise ValueError("Invalid sendable range")
        if self.comment_allowed < 0:
            raise ValueError("comment_allowed cannot be negative")

    @property
    def min_sendable_sats(self) -> int:
        return -(-self.min_sendable // 1000)

    @property
    def max_sendable_sats(self) -> int:
        return self.max_sendable // 1000


@dataclass(frozen=True)
class PreparedPayment:
    """A quoted payment ready for execution."""

    amount_sats: int
    fee_sats: int
    payable: PayableMetadata
    comment: Optional[str] = None
    native: Any = field(default=None, repr=False, compare=False)


class SuccessActionType(Enum):
    MESSAGE = "message"
    URL = "url"
    AES = "aes"


@dataclass(frozen=True)
class SuccessAction:
    """Post-payment payload supplied by the pay endpoint."""

    type: SuccessActionType
    message: Optional[str] = None
    url: Optional[str] = None
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "message": self.message,
            "url": self.url,
            "description": self.description,
        }


@dataclass(frozen=True)
class SettledPayment:
    """Engine confirmation that a payment settled."""

    payment_id: str
    amount_sats: int
    fee_sats: int
    payment_hash: Optional[str] = None
    preimage: Optional[str] = None
    success_action: Optional[SuccessAction] = None
    settled_at: float = field(default_factory=time.time)


class PaymentDirection(Enum):
    SENT = "sent"
    RECEIVED = "received"


class PaymentRecordStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class PaymentRecord:
    """One entry of the engine's payment history."""

    payment_id: str
    amount_sats: int
    fee_sats: int
    direction: PaymentDirection
    status: PaymentRecordStatus
    timestamp: float
    description: Optional[str] = None


class PaymentEngine(ABC):
    """Lightning payment engine. Every network-bound call is a coroutine."""

    @abstractmethod
    async def connect(self, seed_phrase: str, config: NetworkConfig) -> EngineHandle:
        """Open a session for ``seed_phrase``. Raises ConnectError."""
        pass

    @abstractmethod
    async def disconnect(self, handle: EngineHandle) -> None:
        pass

    @abstractmethod
    async def get_balance_sats(self, handle: EngineHandle) -> int:
        pass

    @abstractmethod
    async def parse_payable_identifier(
        self, handle: EngineHandle, identifier: str
    ) -> PayableMetadata:
        """Resolve endpoint metadata. Raises PayableParseError."""
        pass

    @abstractmethod
    async def prepare_payment(
        self,
        handle: EngineHandle,
        amount_sats: int,
        payable: PayableMetadata,
        comment: Optional[str] = None,
    ) -> PreparedPayment:
        pass

    @abstractmethod
    async def execute_payment(
        self, handle: EngineHandle, prepared: PreparedPayment
    ) -> SettledPayment:
        """Pay and return only once the engine confirms settlement."""
        pass

    @abstractmethod
    async def list_payments(self, handle: EngineHandle) -> List[PaymentRecord]:
        pass
