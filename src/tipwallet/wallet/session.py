"""
Wallet session manager.

Owns the unlocked seed and the single live payment-engine connection, and
moves between four states::

    LOCKED --unlock--> UNLOCKED_DISCONNECTED --connect--> UNLOCKED_CONNECTED
       ^                      ^                                  |
       |                      +------------ switch_wallet -------+
       +------------------------- lock (any state) --------------+

Every transition either completes or leaves the previous state intact.
``lock`` bumps a generation counter so work started before it (a connect or
a payment) can tell that the session it belonged to is gone.
"""

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import AsyncIterator, Callable, List, Optional

from ..config import WalletConfig
from ..errors import (
    ConnectError,
    InvalidStateError,
    MigrationRequiredError,
    NotConnectedError,
    SessionBusyError,
    TimeoutError,
    TipWalletError,
    WalletLockedError,
)
from ..lightning.engine import EngineHandle, NetworkConfig, PaymentEngine, PaymentRecord
from .encryption import SymmetricKey
from .registry import WalletRegistry

logger = logging.getLogger(__name__)


class SessionState(Enum):
    LOCKED = "locked"
    UNLOCKING = "unlocking"
    UNLOCKED_DISCONNECTED = "unlocked_disconnected"
    UNLOCKED_CONNECTED = "unlocked_connected"

    @property
    def is_unlocked(self) -> bool:
        return self in (SessionState.UNLOCKED_DISCONNECTED, SessionState.UNLOCKED_CONNECTED)


@dataclass(frozen=True)
class WalletSessionStatus:
    """Point-in-time view of the session. Never persisted."""

    state: SessionState
    is_unlocked: bool
    is_connected: bool
    balance_sats: Optional[int] = None
    last_sync: Optional[float] = None
    master_key_id: Optional[str] = None
    sub_wallet_index: Optional[int] = None


LOCKED_STATUS = WalletSessionStatus(
    state=SessionState.LOCKED, is_unlocked=False, is_connected=False
)


@dataclass(frozen=True)
class PaymentSlot:
    """Exclusive right to run one payment on the current connection."""

    handle: EngineHandle
    generation: int
    balance_sats: int


class WalletSessionManager:
    """Lock, unlock, connect and switch the active wallet."""

    def __init__(
        self,
        registry: WalletRegistry,
        engine: PaymentEngine,
        config: Optional[WalletConfig] = None,
        network_config: Optional[NetworkConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.registry = registry
        self.engine = engine
        self.config = config or WalletConfig()
        self.network_config = network_config or NetworkConfig(
            network=self.config.network,
            api_key=self.config.api_key,
            storage_dir=self.config.storage_dir,
        )
        self._clock = clock

        self._state = SessionState.LOCKED
        self._generation = 0
        self._seed: Optional[str] = None
        self._key: Optional[SymmetricKey] = None
        self._handle: Optional[EngineHandle] = None
        self._status = LOCKED_STATUS
        self._connecting = False
        self._payment_in_flight = False
        self._last_activity = clock()
        self._auto_lock_task: Optional[asyncio.Task] = None

    # State

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_unlocked(self) -> bool:
        return self._state.is_unlocked

    @property
    def is_connected(self) -> bool:
        return self._state is SessionState.UNLOCKED_CONNECTED

    @property
    def payment_in_flight(self) -> bool:
        return self._payment_in_flight

    @property
    def last_activity(self) -> float:
        return self._last_activity

    def record_activity(self) -> None:
        self._last_activity = self._clock()

    def _require_unlocked(self) -> None:
        if not self._state.is_unlocked:
            raise WalletLockedError(state=self._state.value)

    def _require_connected(self) -> EngineHandle:
        self._require_unlocked()
        if self._state is not SessionState.UNLOCKED_CONNECTED or self._handle is None:
            raise NotConnectedError(state=self._state.value)
        return self._handle

    def _set_status(self, **changes) -> None:
        self._status = replace(self._status, **changes)

    # Transitions

    async def unlock(self, pin: str) -> WalletSessionStatus:
        """Decrypt the active wallet's seed.

        Raises:
            InvalidPinError: the PIN is wrong; the session stays locked.
            InvalidStateError: the session is not locked.
        """
        if self._state is not SessionState.LOCKED:
            raise InvalidStateError("Session is already unlocked", state=self._state.value)

        self._state = SessionState.UNLOCKING
        generation = self._generation
        try:
            key = self.registry.store.derive_key(pin)
            try:
                active = self.registry.get_active_wallet()
            except MigrationRequiredError:
                logger.info("Migrating legacy wallet data during unlock")
                self.registry.store.migrate_legacy(pin)
                active = self.registry.get_active_wallet()

            if active is None:
                raise InvalidStateError("No wallet has been created yet")

            master_key_id, sub_index = active
            seed = self.registry.get_seed_phrase_with_key(master_key_id, sub_index, key)
        except BaseException:
            if self._generation == generation:
                self._state = SessionState.LOCKED
            raise

        if self._generation != generation:
            raise InvalidStateError("Session was locked during unlock")

        self._seed = seed
        self._key = key
        self._state = SessionState.UNLOCKED_DISCONNECTED
        self._status = WalletSessionStatus(
            state=self._state,
            is_unlocked=True,
            is_connected=False,
            master_key_id=master_key_id,
            sub_wallet_index=sub_index,
        )
        self.record_activity()
        logger.info(f"Unlocked wallet {master_key_id}/{sub_index}")
        return self._status

    async def connect(self) -> WalletSessionStatus:
        """Connect the unlocked seed to the payment engine.

        Raises:
            ConnectError, TimeoutError: retryable; the session stays
                unlocked and disconnected.
            WalletLockedError: the session is locked.
            SessionBusyError: another connect is running.
        """
        self._require_unlocked()
        if self._state is SessionState.UNLOCKED_CONNECTED:
            return self._status
        if self._connecting:
            raise SessionBusyError("Connection already in progress")

        self._connecting = True
        generation = self._generation
        seed = self._seed
        try:
            try:
                handle = await asyncio.wait_for(
                    self.engine.connect(seed, self.network_config),
                    timeout=self.config.connect_timeout,
                )
            except asyncio.TimeoutError as e:
                raise TimeoutError(
                    "Payment engine connection timed out",
                    timeout=self.config.connect_timeout,
                    operation="connect",
                    cause=e,
                )
            except TipWalletError:
                raise
            except Exception as e:
                raise ConnectError(f"Wallet connection failed: {e}", cause=e)

            if self._generation != generation or self._state is not SessionState.UNLOCKED_DISCONNECTED:
                await self._release(handle)
                raise InvalidStateError("Session changed while connecting")

            self._handle = handle
            self._state = SessionState.UNLOCKED_CONNECTED
            self._set_status(state=self._state, is_connected=True)
        finally:
            self._connecting = False

        self.record_activity()
        logger.info("Payment engine connected")

        try:
            await self.refresh_balance()
        except TipWalletError as e:
            logger.warning(f"Initial balance refresh failed: {e}")

        return self._status

    async def _release(self, handle: EngineHandle) -> None:
        try:
            await self.engine.disconnect(handle)
        except Exception as e:
            logger.warning(f"Engine disconnect failed: {e}")

    async def lock(self) -> None:
        """Forget the seed and release the engine. Safe in any state."""
        self._generation += 1
        handle = self._handle

        self._handle = None
        self._seed = None
        self._key = None
        self._status = LOCKED_STATUS
        self._state = SessionState.LOCKED

        if handle is not None:
            await self._release(handle)
        logger.info("Wallet locked")

    async def switch_wallet(
        self, master_key_id: str, sub_index: int, pin: Optional[str] = None
    ) -> WalletSessionStatus:
        """Make another wallet active. The caller reconnects afterwards.

        The new seed is decrypted before anything changes, so a bad PIN or
        unknown wallet leaves the current session as it was.
        """
        self._require_unlocked()
        if self._payment_in_flight:
            raise SessionBusyError("Cannot switch wallets during a payment")

        key = self.registry.store.derive_key(pin) if pin is not None else self._key
        if key is None:
            raise WalletLockedError()
        seed = self.registry.get_seed_phrase_with_key(master_key_id, sub_index, key)
        self.registry.set_active_wallet(master_key_id, sub_index)

        self._generation += 1
        handle = self._handle
        self._handle = None
        self._seed = seed
        self._key = key
        self._state = SessionState.UNLOCKED_DISCONNECTED
        self._status = WalletSessionStatus(
            state=self._state,
            is_unlocked=True,
            is_connected=False,
            master_key_id=master_key_id,
            sub_wallet_index=sub_index,
        )

        if handle is not None:
            await self._release(handle)

        self.record_activity()
        logger.info(f"Switched to wallet {master_key_id}/{sub_index}")
        return self._status

    # Reads

    def get_status(self) -> WalletSessionStatus:
        return self._status

    def require_connection(self) -> EngineHandle:
        """Live engine handle, or WalletLockedError / NotConnectedError."""
        return self._require_connected()

    def current_balance_sats(self) -> Optional[int]:
        """Last known balance of the connected wallet, None until one is fetched."""
        self._require_connected()
        return self._status.balance_sats

    async def refresh_balance(self) -> int:
        handle = self._require_connected()
        generation = self._generation
        try:
            balance = await asyncio.wait_for(
                self.engine.get_balance_sats(handle), timeout=self.config.connect_timeout
            )
        except asyncio.TimeoutError as e:
            raise TimeoutError(
                "Balance query timed out",
                timeout=self.config.connect_timeout,
                operation="balance",
                cause=e,
            )

        if self._generation != generation:
            raise InvalidStateError("Session changed during balance refresh")

        self._set_status(balance_sats=balance, last_sync=time.time())
        return balance

    async def list_payments(self) -> List[PaymentRecord]:
        handle = self._require_connected()
        self.record_activity()
        return await self.engine.list_payments(handle)

    # Payments

    @contextlib.asynccontextmanager
    async def payment_slot(self) -> AsyncIterator[PaymentSlot]:
        """Hold the session's single payment slot.

        A balance that was never fetched is refreshed first; an error from
        that refresh propagates and no payment starts.

        Raises:
            SessionBusyError: a payment is already running.
        """
        if self._payment_in_flight:
            raise SessionBusyError()
        handle = self._require_connected()

        self._payment_in_flight = True
        self.record_activity()
        try:
            balance = self._status.balance_sats
            if balance is None:
                balance = await self.refresh_balance()
            yield PaymentSlot(
                handle=handle,
                generation=self._generation,
                balance_sats=balance,
            )
        finally:
            self._payment_in_flight = False
            self.record_activity()

    def is_current(self, generation: int) -> bool:
        return generation == self._generation and self.is_connected

    def apply_spend(self, generation: int, total_sats: int) -> None:
        """Deduct a settled payment from the cached balance."""
        if not self.is_current(generation) or self._status.balance_sats is None:
            return
        balance = max(self._status.balance_sats - total_sats, 0)
        self._set_status(balance_sats=balance)

    # Auto-lock

    async def check_auto_lock(self) -> bool:
        """Lock when idle longer than the timeout. Returns True if it locked."""
        if not self.config.auto_lock_enabled or self._state is SessionState.LOCKED:
            return False
        if self._payment_in_flight:
            return False
        if self._clock() - self._last_activity < self.config.auto_lock_timeout:
            return False

        logger.info("Auto-locking idle wallet")
        await self.lock()
        return True

    async def _auto_lock_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.auto_lock_check_interval)
            await self.check_auto_lock()

    def start_auto_lock(self) -> None:
        if not self.config.auto_lock_enabled:
            return
        if self._auto_lock_task is None or self._auto_lock_task.done():
            self._auto_lock_task = asyncio.get_running_loop().create_task(
                self._auto_lock_loop()
            )

    async def stop_auto_lock(self) -> None:
        task = self._auto_lock_task
        self._auto_lock_task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    # Wallet lifecycle conveniences

    async def _activate_new(self, master_key_id: str, pin: str) -> WalletSessionStatus:
        self.registry.set_active_wallet(master_key_id, 0)
        await self.lock()
        return await self.unlock(pin)

    async def create_wallet(self, nickname: str, pin: str) -> str:
        """Create a master key, make it active and unlock it."""
        master_key_id = self.registry.create_master_key(nickname, pin)
        await self._activate_new(master_key_id, pin)
        return master_key_id

    async def import_wallet(self, phrase: str, nickname: str, pin: str) -> str:
        """Import a master key, make it active and unlock it."""
        master_key_id = self.registry.import_master_key(phrase, nickname, pin)
        await self._activate_new(master_key_id, pin)
        return master_key_id

    async def close(self) -> None:
        await self.stop_auto_lock()
        await self.lock()
