"""
Two-phase payment orchestration.

Phase one resolves the destination and validates amount, comment and
balance locally; violations raise before anything is sent. Phase two asks
the engine to prepare (quote) and then execute the payment. Engine failures
in phase two come back as a ``PaymentResult`` with ``success=False`` and a
``retryable`` flag instead of an exception.

Only preparation is retried automatically. Execution is attempted once; if
it times out the outcome is reported as UNKNOWN, never as success.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..config import WalletConfig
from ..constants import MSATS_PER_SAT
from ..errors import (
    AmountOutOfBoundsError,
    CommentTooLongError,
    InsufficientBalanceError,
    InvalidStateError,
    PayableParseError,
    TipWalletError,
    ValidationError,
    is_retryable_error,
    retry_async,
)
from ..lightning.engine import (
    EngineHandle,
    PayableMetadata,
    PaymentEngine,
    PreparedPayment,
    SettledPayment,
    SuccessAction,
)
from ..lightning.identifiers import normalize_payable_identifier
from .session import PaymentSlot, WalletSessionManager

logger = logging.getLogger(__name__)


class PaymentStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


@dataclass
class PaymentRequestContext:
    """Everything one payment call needs, alive only for that call."""

    identifier: str
    payable: PayableMetadata
    amount_sats: int
    comment: Optional[str] = None

    @property
    def amount_msats(self) -> int:
        return self.amount_sats * MSATS_PER_SAT


@dataclass
class PaymentResult:
    """Outcome of a payment attempt."""

    success: bool
    request_id: str
    status: PaymentStatus
    amount_sats: int
    fee_sats: int = 0
    payment_id: Optional[str] = None
    payment_hash: Optional[str] = None
    preimage: Optional[str] = None
    success_action: Optional[SuccessAction] = None
    error: Optional[str] = None
    retryable: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "requestId": self.request_id,
            "status": self.status.value,
            "amountSats": self.amount_sats,
        }
        if self.success:
            data.update(
                {
                    "paymentId": self.payment_id,
                    "feeSats": self.fee_sats,
                    "paymentHash": self.payment_hash,
                    "preimage": self.preimage,
                    "successAction": (
                        self.success_action.to_dict() if self.success_action else None
                    ),
                }
            )
        else:
            data.update({"error": self.error, "retryable": self.retryable})
        return data


@dataclass
class PaymentStatusRecord:
    """Tracked state of one payment request."""

    request_id: str
    context: PaymentRequestContext
    status: PaymentStatus = PaymentStatus.PENDING
    attempts: int = 0
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    error: Optional[str] = None
    retryable: bool = False
    result: Optional[PaymentResult] = None

    def update(self, status: PaymentStatus, error: Optional[str] = None) -> None:
        self.status = status
        self.error = error
        self.updated_at = time.time()


class PaymentOrchestrator:
    """Runs pay-to-endpoint requests against the session's connection."""

    def __init__(
        self,
        session: WalletSessionManager,
        config: Optional[WalletConfig] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        self.session = session
        self.config = config or session.config
        self.retry_policy = self.config.retry_policy()
        self._sleep = sleep or asyncio.sleep
        self._records: Dict[str, PaymentStatusRecord] = {}

    @property
    def engine(self) -> PaymentEngine:
        return self.session.engine

    # Phase one

    async def resolve(self, identifier: str) -> PayableMetadata:
        """Resolve a payable identifier through the connected engine."""
        handle = self.session.require_connection()
        return await self._resolve_with(handle, identifier)

    async def _resolve_with(self, handle: EngineHandle, identifier: str) -> PayableMetadata:
        target = normalize_payable_identifier(identifier)
        try:
            return await asyncio.wait_for(
                self.engine.parse_payable_identifier(handle, target.value),
                timeout=self.config.payment_timeout,
            )
        except asyncio.TimeoutError as e:
            raise PayableParseError("Timed out resolving pay endpoint", cause=e)

    @staticmethod
    def validate_amount(amount_sats: Any) -> int:
        if isinstance(amount_sats, bool) or not isinstance(amount_sats, int) or amount_sats <= 0:
            raise ValidationError(
                "Amount must be a positive whole number of sats",
                field="amount_sats",
                value=amount_sats,
            )
        return amount_sats

    @staticmethod
    def validate_request(context: PaymentRequestContext, balance_sats: Optional[int] = None) -> None:
        """Local checks against the endpoint limits and the session balance.

        Raises:
            AmountOutOfBoundsError, CommentTooLongError, InsufficientBalanceError
        """
        payable = context.payable
        if not payable.min_sendable <= context.amount_msats <= payable.max_sendable:
            raise AmountOutOfBoundsError(
                context.amount_sats, payable.min_sendable, payable.max_sendable
            )

        if context.comment and len(context.comment) > payable.comment_allowed:
            raise CommentTooLongError(len(context.comment), payable.comment_allowed)

        if balance_sats is not None and balance_sats < context.amount_sats:
            raise InsufficientBalanceError(context.amount_sats, balance_sats)

    # Phase two

    async def pay(
        self,
        identifier: str,
        amount_sats: int,
        comment: Optional[str] = None,
        payable: Optional[PayableMetadata] = None,
    ) -> PaymentResult:
        """Validate and execute a payment.

        With ``payable`` supplied, validation runs before any engine call.

        Raises:
            ValidationError subclasses for local rejections, plus
            WalletLockedError, NotConnectedError or SessionBusyError when the
            session cannot take a payment. Errors from fetching a balance
            that is not yet known also propagate.
        """
        amount_sats = self.validate_amount(amount_sats)
        comment = comment.strip() if comment else None

        if payable is not None:
            self.validate_request(
                PaymentRequestContext(identifier, payable, amount_sats, comment),
                self.session.current_balance_sats(),
            )

        request_id = str(uuid.uuid4())
        async with self.session.payment_slot() as slot:
            if payable is None:
                try:
                    payable = await self._resolve_with(slot.handle, identifier)
                except ValidationError:
                    raise
                except TipWalletError as e:
                    logger.warning(f"Could not resolve {identifier}: {e.message}")
                    return PaymentResult(
                        success=False,
                        request_id=request_id,
                        status=PaymentStatus.FAILED,
                        amount_sats=amount_sats,
                        error=e.message,
                        retryable=e.retryable,
                    )

            context = PaymentRequestContext(identifier, payable, amount_sats, comment)
            self.validate_request(context, slot.balance_sats)

            record = PaymentStatusRecord(request_id=request_id, context=context)
            self._records[request_id] = record
            return await self._run(slot, record)

    def _fail(
        self,
        record: PaymentStatusRecord,
        error: str,
        retryable: bool,
        status: PaymentStatus = PaymentStatus.FAILED,
    ) -> PaymentResult:
        record.update(status, error)
        record.retryable = retryable
        record.result = PaymentResult(
            success=False,
            request_id=record.request_id,
            status=status,
            amount_sats=record.context.amount_sats,
            error=error,
            retryable=retryable,
        )
        logger.warning(f"Payment {record.request_id} {status.value}: {error}")
        return record.result

    async def _prepare(self, handle: EngineHandle, context: PaymentRequestContext) -> PreparedPayment:
        async def attempt() -> PreparedPayment:
            return await asyncio.wait_for(
                self.engine.prepare_payment(
                    handle, context.amount_sats, context.payable, context.comment
                ),
                timeout=self.config.payment_timeout,
            )

        return await retry_async(
            attempt, self.retry_policy, operation="Payment preparation", sleep=self._sleep
        )

    async def _run(self, slot: PaymentSlot, record: PaymentStatusRecord) -> PaymentResult:
        context = record.context
        record.attempts += 1
        record.update(PaymentStatus.PROCESSING)

        try:
            prepared = await self._prepare(slot.handle, context)
        except asyncio.TimeoutError:
            return self._fail(record, "Payment preparation timed out", retryable=True)
        except TipWalletError as e:
            return self._fail(record, e.message, retryable=e.retryable)
        except Exception as e:
            return self._fail(record, str(e), retryable=is_retryable_error(e))

        if not self.session.is_current(slot.generation):
            return self._fail(record, "Session ended before payment was sent", retryable=True)

        try:
            settled: SettledPayment = await asyncio.wait_for(
                self.engine.execute_payment(slot.handle, prepared),
                timeout=self.config.payment_timeout,
            )
        except asyncio.TimeoutError:
            return self._fail(
                record,
                "Payment was sent but not confirmed in time; check payment history",
                retryable=False,
                status=PaymentStatus.UNKNOWN,
            )
        except asyncio.CancelledError:
            self._fail(record, "Payment cancelled while in flight", False, PaymentStatus.UNKNOWN)
            raise
        except TipWalletError as e:
            return self._fail(record, e.message, retryable=e.retryable)
        except Exception as e:
            return self._fail(record, str(e), retryable=is_retryable_error(e))

        self.session.apply_spend(slot.generation, settled.amount_sats + settled.fee_sats)

        record.update(PaymentStatus.COMPLETED)
        record.retryable = False
        record.result = PaymentResult(
            success=True,
            request_id=record.request_id,
            status=PaymentStatus.COMPLETED,
            amount_sats=settled.amount_sats,
            fee_sats=settled.fee_sats,
            payment_id=settled.payment_id,
            payment_hash=settled.payment_hash,
            preimage=settled.preimage,
            success_action=settled.success_action,
        )
        logger.info(
            f"Payment {record.request_id} completed: {settled.amount_sats} sats "
            f"+ {settled.fee_sats} fee"
        )
        return record.result

    # Tracking

    async def retry_payment(self, request_id: str) -> PaymentResult:
        """Run a failed, retryable request again with its original parameters."""
        record = self._records.get(request_id)
        if record is None:
            raise ValidationError(f"Unknown payment request: {request_id}", field="request_id")
        if record.status is not PaymentStatus.FAILED or not record.retryable:
            raise InvalidStateError(
                f"Payment {request_id} cannot be retried (status {record.status.value})"
            )
        if record.attempts > self.config.max_payment_retries:
            raise InvalidStateError(f"Payment {request_id} has no retries left")

        async with self.session.payment_slot() as slot:
            self.validate_request(record.context, slot.balance_sats)
            return await self._run(slot, record)

    def cancel_payment(self, request_id: str) -> bool:
        """Mark a pending or failed request as cancelled."""
        record = self._records.get(request_id)
        if record is None or record.status not in (PaymentStatus.PENDING, PaymentStatus.FAILED):
            return False
        record.update(PaymentStatus.CANCELLED)
        record.retryable = False
        return True

    def get_payment_status(self, request_id: str) -> Optional[PaymentStatusRecord]:
        return self._records.get(request_id)

    def active_payments(self) -> List[PaymentStatusRecord]:
        return [
            r
            for r in self._records.values()
            if r.status in (PaymentStatus.PENDING, PaymentStatus.PROCESSING)
        ]

    def clear_finished(self) -> int:
        finished = [
            request_id
            for request_id, r in self._records.items()
            if r.status in (PaymentStatus.COMPLETED, PaymentStatus.CANCELLED)
        ]
        for request_id in finished:
            del self._records[request_id]
        return len(finished)
