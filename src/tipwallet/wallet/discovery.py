"""
Sub-wallet discovery.

Finds which derived indices of a master seed have been used before by
connecting each one to the payment engine in turn and checking its balance.
The scan is sequential and every index gets its own storage namespace that
is torn down before the next index starts.
"""

import asyncio
import logging
import os
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from ..config import WalletConfig
from ..constants import MAIN_WALLET_NAME, SUB_WALLET_NAME_TEMPLATE
from ..errors import InvalidSeedError, ValidationError
from ..lightning.engine import EngineHandle, NetworkConfig, PaymentEngine
from .mnemonic import MnemonicDeriver, get_default_deriver

logger = logging.getLogger(__name__)


@dataclass
class SubWalletDiscoveryResult:
    """Outcome for one scanned index."""

    index: int
    has_activity: bool
    balance_sats: int = 0
    error: Optional[str] = None
    timed_out: bool = False

    def to_dict(self):
        return {
            "index": self.index,
            "hasActivity": self.has_activity,
            "balanceSats": self.balance_sats,
            "error": self.error,
            "timedOut": self.timed_out,
        }


@dataclass
class DiscoveryProgress:
    current_index: int
    total_to_scan: int
    discovered_wallets: int
    is_complete: bool


ProgressCallback = Callable[[DiscoveryProgress], None]


def discovered_wallet_names(results: List[SubWalletDiscoveryResult]) -> Dict[int, str]:
    """Default nicknames for the indices that showed activity."""
    return {
        r.index: MAIN_WALLET_NAME if r.index == 0 else SUB_WALLET_NAME_TEMPLATE.format(index=r.index)
        for r in results
        if r.has_activity
    }


class SubWalletDiscovery:
    """Gap-limit scanner over derived sub-wallet indices."""

    def __init__(
        self,
        engine: PaymentEngine,
        deriver: Optional[MnemonicDeriver] = None,
        config: Optional[WalletConfig] = None,
        network_config: Optional[NetworkConfig] = None,
    ):
        self.engine = engine
        self.deriver = deriver or get_default_deriver()
        self.config = config or WalletConfig()
        self.network_config = network_config or NetworkConfig(
            network=self.config.network, api_key=self.config.api_key
        )

    def _namespace(self, index: int) -> str:
        name = f"discovery_{uuid.uuid4().hex[:12]}_{index}"
        base = self.network_config.storage_dir or self.config.storage_dir
        return os.path.join(base, name) if base else name

    async def _release(self, handle: EngineHandle, index: int) -> None:
        try:
            await self.engine.disconnect(handle)
        except Exception as e:
            logger.warning(f"Discovery disconnect failed for index {index}: {e}")

    async def scan_index(self, seed_phrase: str, index: int) -> SubWalletDiscoveryResult:
        """Connect ``seed_phrase`` in an isolated namespace and read its balance.

        Timeouts mean "no activity"; other failures are recorded on the
        result. The engine session is always released.
        """
        config = self.network_config.with_storage_dir(self._namespace(index))
        handle: Optional[EngineHandle] = None
        try:
            handle = await asyncio.wait_for(
                self.engine.connect(seed_phrase, config),
                timeout=self.config.discovery_connect_timeout,
            )
            balance = await asyncio.wait_for(
                self.engine.get_balance_sats(handle),
                timeout=self.config.discovery_balance_timeout,
            )
            return SubWalletDiscoveryResult(
                index=index, has_activity=balance > 0, balance_sats=balance
            )
        except asyncio.TimeoutError:
            logger.info(f"Discovery timed out at index {index}, treating as unused")
            return SubWalletDiscoveryResult(index=index, has_activity=False, timed_out=True)
        except Exception as e:
            logger.warning(f"Discovery failed at index {index}: {e}")
            return SubWalletDiscoveryResult(index=index, has_activity=False, error=str(e))
        finally:
            if handle is not None:
                await self._release(handle, index)

    async def discover(
        self,
        master_phrase: str,
        stop_after_empty_count: Optional[int] = None,
        max_index_to_scan: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[SubWalletDiscoveryResult]:
        """Scan indices from 0 until a run of empty indices is found.

        Index 0 is always scanned. Scanning stops once
        ``stop_after_empty_count`` consecutive indices show no activity or
        ``max_index_to_scan`` indices have been visited.

        Raises:
            InvalidSeedError: the master phrase is invalid.
        """
        stop_after = (
            self.config.stop_after_empty_count
            if stop_after_empty_count is None
            else stop_after_empty_count
        )
        limit = self.config.max_index_to_scan if max_index_to_scan is None else max_index_to_scan
        if stop_after < 1:
            raise ValidationError("stop_after_empty_count must be at least 1", field="stop_after_empty_count")
        if not 1 <= limit <= self.deriver.max_sub_wallets:
            raise ValidationError(
                f"max_index_to_scan must be between 1 and {self.deriver.max_sub_wallets}",
                field="max_index_to_scan",
            )
        if not self.deriver.validate_seed_phrase(master_phrase):
            raise InvalidSeedError()

        results: List[SubWalletDiscoveryResult] = []
        seen: Dict[str, int] = {}
        consecutive_empty = 0

        def report(index: int, complete: bool) -> None:
            if on_progress is None:
                return
            try:
                on_progress(
                    DiscoveryProgress(
                        current_index=index,
                        total_to_scan=limit,
                        discovered_wallets=sum(1 for r in results if r.has_activity),
                        is_complete=complete,
                    )
                )
            except Exception as e:
                logger.warning(f"Discovery progress callback failed: {e}")

        for index in range(limit):
            if index > 0 and consecutive_empty >= stop_after:
                break

            report(index, False)
            phrase = self.deriver.derive_sub_wallet_seed(master_phrase, index)

            if phrase in seen:
                result = SubWalletDiscoveryResult(
                    index=index,
                    has_activity=False,
                    error=f"derives the same seed as index {seen[phrase]}",
                )
            else:
                seen[phrase] = index
                result = await self.scan_index(phrase, index)

            results.append(result)
            consecutive_empty = 0 if result.has_activity else consecutive_empty + 1

        report(results[-1].index if results else 0, True)

        active = [r.index for r in results if r.has_activity]
        logger.info(f"Discovery scanned {len(results)} indices, active: {active}")
        return results

    async def has_main_wallet_activity(self, master_phrase: str) -> bool:
        if not self.deriver.validate_seed_phrase(master_phrase):
            raise InvalidSeedError()
        result = await self.scan_index(
            self.deriver.derive_sub_wallet_seed(master_phrase, 0), 0
        )
        return result.has_activity
