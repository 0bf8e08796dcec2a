"""
Tipping wallet core.

Sub-wallet derivation, PIN-encrypted hierarchical storage, the wallet
registry, gap-limit discovery, the session state machine and payment
orchestration.
"""

import logging

logger = logging.getLogger(__name__)
from .credential_store import CredentialStore
from .discovery import (
    DiscoveryProgress,
    SubWalletDiscovery,
    SubWalletDiscoveryResult,
    discovered_wallet_names,
)
from .encryption import EncryptedBlob, EncryptionConfig, PinEncryption, SymmetricKey
from .migrations import (
    MigrationRecord,
    MigrationStatus,
    SchemaMigrator,
    detect_schema_version,
    migrate_v1_data,
)
from .mnemonic import (
    DerivationInfo,
    MnemonicDeriver,
    calculate_checksum_word,
    derive_sub_wallet_seed,
    generate_seed_phrase,
    normalize_seed_phrase,
    seed_fingerprint,
    validate_seed_phrase,
)
from .models import (
    ArchivedSubWallet,
    HierarchicalWalletStorage,
    MasterKeyEntry,
    MasterKeyMetadata,
    SubWalletEntry,
)
from .payments import (
    PaymentOrchestrator,
    PaymentRequestContext,
    PaymentResult,
    PaymentStatus,
    PaymentStatusRecord,
)
from .registry import WalletRegistry, validate_nickname
from .session import (
    PaymentSlot,
    SessionState,
    WalletSessionManager,
    WalletSessionStatus,
)

__all__ = [
    # Derivation
    "MnemonicDeriver",
    "DerivationInfo",
    "normalize_seed_phrase",
    "validate_seed_phrase",
    "derive_sub_wallet_seed",
    "calculate_checksum_word",
    "generate_seed_phrase",
    "seed_fingerprint",
    # Encryption and storage
    "PinEncryption",
    "EncryptionConfig",
    "EncryptedBlob",
    "SymmetricKey",
    "CredentialStore",
    "HierarchicalWalletStorage",
    "MasterKeyEntry",
    "MasterKeyMetadata",
    "SubWalletEntry",
    "ArchivedSubWallet",
    "SchemaMigrator",
    "MigrationRecord",
    "MigrationStatus",
    "detect_schema_version",
    "migrate_v1_data",
    # Registry
    "WalletRegistry",
    "validate_nickname",
    # Discovery
    "SubWalletDiscovery",
    "SubWalletDiscoveryResult",
    "DiscoveryProgress",
    "discovered_wallet_names",
    # Session
    "WalletSessionManager",
    "WalletSessionStatus",
    "SessionState",
    "PaymentSlot",
    # Payments
    "PaymentOrchestrator",
    "PaymentRequestContext",
    "PaymentResult",
    "PaymentStatus",
    "PaymentStatusRecord",
]
