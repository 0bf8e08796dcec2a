"""
tipwallet: the core of a Lightning tipping wallet.

Many wallets from one backup phrase, kept under a single PIN, with
sub-wallet discovery and a two-phase payment flow on top of a pluggable
payment engine.
"""

__version__ = "0.1.0"

from .config import WalletConfig
from .errors import TipWalletError
from .wallet import (
    CredentialStore,
    MnemonicDeriver,
    PaymentOrchestrator,
    PaymentResult,
    SubWalletDiscovery,
    WalletRegistry,
    WalletSessionManager,
)

__all__ = [
    "__version__",
    "WalletConfig",
    "TipWalletError",
    "MnemonicDeriver",
    "CredentialStore",
    "WalletRegistry",
    "SubWalletDiscovery",
    "WalletSessionManager",
    "PaymentOrchestrator",
    "PaymentResult",
]
