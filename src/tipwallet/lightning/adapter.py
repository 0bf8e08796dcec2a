"""
Adapter from an untyped Lightning SDK to ``PaymentEngine``.

The SDK is reached through a ``connect`` coroutine that returns a client
object with camelCase coroutine methods (``nodeInfo``, ``parseLnurl``,
``prepareLnurlPay``, ``lnurlPay``, ``listPayments``, ``disconnect``) whose
results are plain dicts or attribute objects. Every shape assumption about
those results lives in this module.
"""

import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..errors import (
    ConnectError,
    EnginePaymentError,
    PayableParseError,
    TipWalletError,
    is_retryable_error,
)
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

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_DIR = "lightning_data"

SdkConnect = Callable[[Dict[str, Any]], Awaitable[Any]]

_STATUS_MAP = {
    "complete": PaymentRecordStatus.COMPLETED,
    "completed": PaymentRecordStatus.COMPLETED,
    "succeeded": PaymentRecordStatus.COMPLETED,
    "pending": PaymentRecordStatus.PENDING,
    "in_flight": PaymentRecordStatus.PENDING,
    "failed": PaymentRecordStatus.FAILED,
    "canceled": PaymentRecordStatus.FAILED,
    "cancelled": PaymentRecordStatus.FAILED,
}


def _get(obj: Any, *names: str, default: Any = None) -> Any:
    """First present field among ``names`` on a dict or attribute object."""
    if obj is None:
        return default
    for name in names:
        if isinstance(obj, dict):
            if obj.get(name) is not None:
                return obj[name]
        elif getattr(obj, name, None) is not None:
            return getattr(obj, name)
    return default


def map_success_action(raw: Any) -> Optional[SuccessAction]:
    if raw is None:
        return None
    kind = str(_get(raw, "type", default="message")).lower()
    try:
        action_type = SuccessActionType(kind)
    except ValueError:
        logger.warning(f"Unknown success action type: {kind}")
        return None
    data = _get(raw, "data", default=raw)
    return SuccessAction(
        type=action_type,
        message=_get(data, "message"),
        url=_get(data, "url"),
        description=_get(data, "description"),
    )


def map_payment_record(raw: Any) -> PaymentRecord:
    direction = str(_get(raw, "paymentType", "payment_type", default="sent")).lower()
    status = str(_get(raw, "status", default="pending")).lower()
    return PaymentRecord(
        payment_id=str(_get(raw, "id", default="")),
        amount_sats=int(_get(raw, "amountSats", "amount_sats", "amount", default=0)),
        fee_sats=int(_get(raw, "fees", "feeSats", "fee_sats", default=0)),
        direction=(
            PaymentDirection.RECEIVED
            if direction in ("received", "receive")
            else PaymentDirection.SENT
        ),
        status=_STATUS_MAP.get(status, PaymentRecordStatus.PENDING),
        timestamp=float(_get(raw, "paymentTime", "timestamp", default=0)),
        description=_get(raw, "description"),
    )


class SdkPaymentEngine(PaymentEngine):
    """``PaymentEngine`` backed by a dynamic SDK client."""

    def __init__(self, sdk_connect: SdkConnect, default_storage_dir: str = DEFAULT_STORAGE_DIR):
        self._sdk_connect = sdk_connect
        self.default_storage_dir = default_storage_dir

    @staticmethod
    def _client(handle: EngineHandle) -> Any:
        if handle.native is None:
            raise ConnectError("Engine handle is not connected", retryable=False)
        return handle.native

    async def connect(self, seed_phrase: str, config: NetworkConfig) -> EngineHandle:
        storage_dir = config.storage_dir or self.default_storage_dir
        sdk_config: Dict[str, Any] = {"network": config.network, **config.extra}
        if config.api_key:
            sdk_config["apiKey"] = config.api_key

        try:
            client = await self._sdk_connect(
                {"config": sdk_config, "mnemonic": seed_phrase, "storageDir": storage_dir}
            )
        except TipWalletError:
            raise
        except Exception as e:
            raise ConnectError(f"Wallet connection failed: {e}", cause=e)

        return EngineHandle(
            handle_id=str(uuid.uuid4()),
            network=config.network,
            storage_dir=storage_dir,
            native=client,
        )

    async def disconnect(self, handle: EngineHandle) -> None:
        client = handle.native
        handle.native = None
        if client is None:
            return
        try:
            await client.disconnect()
        except Exception as e:
            logger.warning(f"Engine disconnect failed for {handle.handle_id}: {e}")

    async def get_balance_sats(self, handle: EngineHandle) -> int:
        try:
            info = await self._client(handle).nodeInfo()
        except TipWalletError:
            raise
        except Exception as e:
            raise EnginePaymentError(
                f"Balance query failed: {e}", phase="balance",
                retryable=is_retryable_error(e), cause=e,
            )
        return int(_get(info, "channelsBalanceSats", "balanceSats", "balance_sats", default=0))

    async def parse_payable_identifier(
        self, handle: EngineHandle, identifier: str
    ) -> PayableMetadata:
        try:
            parsed = await self._client(handle).parseLnurl(identifier)
        except TipWalletError:
            raise
        except Exception as e:
            raise PayableParseError(
                f"LNURL parsing failed: {e}", retryable=is_retryable_error(e), cause=e
            )

        kind = str(_get(parsed, "type", default="payRequest"))
        if kind.lower() not in ("payrequest", "pay_request", "pay"):
            raise PayableParseError(
                f"Identifier is not a pay request (got {kind})", retryable=False
            )

        data = _get(parsed, "data", default=parsed)
        try:
            return PayableMetadata(
                identifier=identifier,
                min_sendable=int(_get(data, "minSendable", "min_sendable", default=0)),
                max_sendable=int(_get(data, "maxSendable", "max_sendable", default=0)),
                comment_allowed=int(_get(data, "commentAllowed", "comment_allowed", default=0)),
                description=_get(data, "description", "metadataStr"),
                domain=_get(data, "domain"),
                callback=_get(data, "callback"),
                native=data,
            )
        except (TypeError, ValueError) as e:
            raise PayableParseError(f"Malformed pay request: {e}", retryable=False, cause=e)

    async def prepare_payment(
        self,
        handle: EngineHandle,
        amount_sats: int,
        payable: PayableMetadata,
        comment: Optional[str] = None,
    ) -> PreparedPayment:
        request: Dict[str, Any] = {
            "amountSats": amount_sats,
            "payRequest": payable.native if payable.native is not None else {
                "callback": payable.callback,
                "minSendable": payable.min_sendable,
                "maxSendable": payable.max_sendable,
                "commentAllowed": payable.comment_allowed,
                "domain": payable.domain,
            },
            "validateSuccessActionUrl": True,
        }
        if comment:
            request["comment"] = comment

        try:
            response = await self._client(handle).prepareLnurlPay(request)
        except TipWalletError:
            raise
        except Exception as e:
            raise EnginePaymentError(
                f"Payment preparation failed: {e}", phase="prepare",
                retryable=is_retryable_error(e), cause=e,
            )

        return PreparedPayment(
            amount_sats=int(_get(response, "amountSats", "amount_sats", default=amount_sats)),
            fee_sats=int(_get(response, "feeSats", "fee_sats", default=0)),
            payable=payable,
            comment=comment,
            native=response,
        )

    async def execute_payment(
        self, handle: EngineHandle, prepared: PreparedPayment
    ) -> SettledPayment:
        try:
            result = await self._client(handle).lnurlPay({"prepareResponse": prepared.native})
        except TipWalletError:
            raise
        except Exception as e:
            raise EnginePaymentError(
                f"Payment failed: {e}", phase="execute",
                retryable=is_retryable_error(e), cause=e,
            )

        payment = _get(result, "payment", default={})
        details = _get(payment, "details", default={})
        return SettledPayment(
            payment_id=str(_get(payment, "id", default="")),
            amount_sats=int(_get(payment, "amountSats", "amount_sats", default=prepared.amount_sats)),
            fee_sats=int(_get(payment, "fees", "feeSats", default=prepared.fee_sats)),
            payment_hash=_get(details, "paymentHash", "payment_hash"),
            preimage=_get(details, "preimage"),
            success_action=map_success_action(_get(result, "successAction", "success_action")),
        )

    async def list_payments(self, handle: EngineHandle) -> List[PaymentRecord]:
        try:
            payments = await self._client(handle).listPayments()
        except TipWalletError:
            raise
        except Exception as e:
            raise EnginePaymentError(
                f"Listing payments failed: {e}", phase="list",
                retryable=is_retryable_error(e), cause=e,
            )
        return [map_payment_record(p) for p in payments or []]
