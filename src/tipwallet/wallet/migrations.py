"""
Schema detection and migration of persisted wallet data.

Three layouts exist:

* v0: a single encrypted JSON wallet under ``encryptedWallet``.
* v1: a flat list of wallets under ``multiWalletData``, each with its own
  encrypted mnemonic.
* v2: the hierarchical root under ``hierarchicalWalletData``.

v1 re-uses the existing ciphertexts and migrates without the PIN. v0 must be
decrypted to pull out the mnemonic, so it needs the PIN. The source record is
always copied to a ``backup_`` key before the new root is written.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..constants import (
    BACKUP_KEY_PREFIX,
    DEFAULT_MASTER_KEY_NAME_TEMPLATE,
    LEGACY_MULTI_WALLET_KEY,
    LEGACY_SINGLE_WALLET_KEY,
    MAX_MASTER_KEYS,
    SCHEMA_VERSION,
    STORAGE_KEY,
)
from ..errors import (
    CorruptStorageError,
    DecryptionError,
    InvalidPinError,
    SchemaVersionError,
    StorageError,
)
from ..storage import KeyValueStore
from .encryption import EncryptedBlob, PinEncryption
from .models import HierarchicalWalletStorage, MasterKeyEntry, SubWalletEntry, now_ms

logger = logging.getLogger(__name__)


class MigrationStatus(Enum):
    """Migration status."""

    COMPLETED = "completed"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


@dataclass
class MigrationRecord:
    """Outcome of one migration run."""

    from_version: int
    to_version: int
    status: MigrationStatus
    backup_key: Optional[str] = None
    wallets_migrated: int = 0
    executed_at: float = field(default_factory=time.time)
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_version": self.from_version,
            "to_version": self.to_version,
            "status": self.status.value,
            "backup_key": self.backup_key,
            "wallets_migrated": self.wallets_migrated,
            "executed_at": self.executed_at,
            "error_message": self.error_message,
        }


def read_json(backend: KeyValueStore, key: str) -> Optional[Dict[str, Any]]:
    raw = backend.get(key)
    if raw is None:
        return None
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CorruptStorageError(f"Record {key} is not valid JSON", key=key, cause=e)
    if not isinstance(data, dict):
        raise CorruptStorageError(f"Record {key} is not an object", key=key)
    return data


def write_json(backend: KeyValueStore, key: str, data: Dict[str, Any]) -> None:
    backend.set(key, json.dumps(data, separators=(",", ":")).encode("utf-8"))


def detect_schema_version(backend: KeyValueStore) -> Optional[int]:
    """Schema version of the stored data, or None when nothing is stored.

    Raises:
        SchemaVersionError: the root record carries an unknown version.
    """
    root = read_json(backend, STORAGE_KEY)
    if root is not None:
        version = root.get("version")
        if version != SCHEMA_VERSION:
            raise SchemaVersionError(version, key=STORAGE_KEY)
        return SCHEMA_VERSION

    multi = read_json(backend, LEGACY_MULTI_WALLET_KEY)
    if multi is not None:
        version = multi.get("version", 1)
        if version != 1:
            raise SchemaVersionError(version, key=LEGACY_MULTI_WALLET_KEY)
        return 1

    if backend.get(LEGACY_SINGLE_WALLET_KEY) is not None:
        return 0

    return None


def migrate_v1_sub_wallets(
    wallet: Dict[str, Any],
) -> Tuple[List[SubWalletEntry], List[SubWalletEntry]]:
    """Active and archived sub-wallets of one v1 wallet."""
    active, archived = [], []
    for data in wallet.get("subWallets") or []:
        sub = SubWalletEntry.from_dict(data)
        if sub.archived_at is not None:
            archived.append(sub)
        else:
            active.append(sub)
    return active, archived


def migrate_v1_data(data: Dict[str, Any]) -> HierarchicalWalletStorage:
    """Convert a v1 multi-wallet record into a v2 root.

    Each flat wallet becomes a master key. Sub-wallets recorded under a
    wallet are carried over, as is the active sub-wallet index when the
    active wallet still lists it.
    """
    wallets = data.get("wallets")
    if not isinstance(wallets, list):
        raise CorruptStorageError("v1 record has no wallet list")
    if len(wallets) > MAX_MASTER_KEYS:
        raise CorruptStorageError(f"v1 record has more than {MAX_MASTER_KEYS} wallets")

    entries: Dict[str, MasterKeyEntry] = {}
    try:
        for wallet in wallets:
            meta = wallet["metadata"]
            created = int(meta.get("createdAt", now_ms()))
            last_used = int(meta.get("lastUsedAt", created))
            sub_wallets, archived = migrate_v1_sub_wallets(wallet)
            entries[meta["id"]] = MasterKeyEntry(
                id=meta["id"],
                nickname=meta["nickname"],
                encrypted_seed=EncryptedBlob.from_dict(wallet["encryptedMnemonic"]),
                created_at=created,
                last_used_at=last_used,
                sub_wallets=sorted(sub_wallets, key=lambda s: s.index),
                archived_sub_wallets=archived,
            )
    except (KeyError, TypeError, ValueError, DecryptionError) as e:
        raise CorruptStorageError(f"Malformed v1 wallet entry: {e}", cause=e)

    order = [i for i in data.get("walletOrder", []) if i in entries]
    order += [i for i in entries if i not in order]

    active = data.get("activeWalletId")
    if active not in entries:
        active = order[0] if order else None

    active_index = 0
    if active is not None:
        try:
            requested = int(data.get("activeSubWalletIndex") or 0)
        except (TypeError, ValueError):
            requested = 0
        if entries[active].get_sub_wallet(requested) is not None:
            active_index = requested

    root = HierarchicalWalletStorage(
        master_keys=[entries[i] for i in order],
        active_master_key_id=active,
        active_sub_wallet_index=active_index,
        master_key_order=order,
    )
    root.validate()
    return root


class SchemaMigrator:
    """Detects old layouts and upgrades them to the current root record."""

    def __init__(self, backend: KeyValueStore, encryption: PinEncryption):
        self.backend = backend
        self.encryption = encryption
        self.history: List[MigrationRecord] = []

    def _backup(self, key: str) -> str:
        backup_key = BACKUP_KEY_PREFIX + key
        raw = self.backend.get(key)
        if raw is None:
            raise StorageError(f"Nothing to back up under {key}", key=key)
        self.backend.set(backup_key, raw)
        return backup_key

    def _record(self, record: MigrationRecord) -> MigrationRecord:
        self.history.append(record)
        return record

    def migrate_v1(self) -> HierarchicalWalletStorage:
        """Upgrade a v1 record in place, keeping a backup."""
        data = read_json(self.backend, LEGACY_MULTI_WALLET_KEY)
        if data is None:
            raise StorageError("No v1 record to migrate", key=LEGACY_MULTI_WALLET_KEY)

        try:
            root = migrate_v1_data(data)
        except CorruptStorageError as e:
            self._record(
                MigrationRecord(1, SCHEMA_VERSION, MigrationStatus.FAILED, error_message=str(e))
            )
            raise

        backup_key = self._backup(LEGACY_MULTI_WALLET_KEY)
        write_json(self.backend, STORAGE_KEY, root.to_dict())
        self.backend.delete(LEGACY_MULTI_WALLET_KEY)

        logger.info(f"Migrated {len(root.master_keys)} wallet(s) from schema v1")
        self._record(
            MigrationRecord(
                1,
                SCHEMA_VERSION,
                MigrationStatus.COMPLETED,
                backup_key=backup_key,
                wallets_migrated=len(root.master_keys),
            )
        )
        return root

    def migrate_legacy(self, pin: str) -> HierarchicalWalletStorage:
        """Upgrade a v0 single wallet. The PIN decrypts the old wallet JSON.

        Raises:
            InvalidPinError: the PIN does not open the legacy record.
        """
        data = read_json(self.backend, LEGACY_SINGLE_WALLET_KEY)
        if data is None:
            raise StorageError("No legacy wallet to migrate", key=LEGACY_SINGLE_WALLET_KEY)

        key = self.encryption.derive_key(pin)
        try:
            wallet = self.encryption.decrypt_dict(EncryptedBlob.from_dict(data), key)
        except DecryptionError as e:
            self._record(
                MigrationRecord(0, SCHEMA_VERSION, MigrationStatus.FAILED, error_message=str(e))
            )
            raise InvalidPinError(cause=e)

        mnemonic = wallet.get("mnemonic")
        if not isinstance(mnemonic, str) or not mnemonic.strip():
            raise CorruptStorageError("Legacy wallet has no mnemonic")

        entry = MasterKeyEntry.create(
            DEFAULT_MASTER_KEY_NAME_TEMPLATE.format(number=1),
            self.encryption.encrypt_string(mnemonic.strip(), key),
        )
        root = HierarchicalWalletStorage(
            master_keys=[entry],
            active_master_key_id=entry.id,
            active_sub_wallet_index=0,
            master_key_order=[entry.id],
        )

        backup_key = self._backup(LEGACY_SINGLE_WALLET_KEY)
        write_json(self.backend, STORAGE_KEY, root.to_dict())
        self.backend.delete(LEGACY_SINGLE_WALLET_KEY)

        logger.info("Migrated legacy single wallet to schema v2")
        self._record(
            MigrationRecord(
                0,
                SCHEMA_VERSION,
                MigrationStatus.COMPLETED,
                backup_key=backup_key,
                wallets_migrated=1,
            )
        )
        return root

    def rollback(self, from_version: int) -> None:
        """Restore the backed-up record for ``from_version`` and drop the v2 root."""
        if from_version == 0:
            source = LEGACY_SINGLE_WALLET_KEY
        elif from_version == 1:
            source = LEGACY_MULTI_WALLET_KEY
        else:
            raise SchemaVersionError(from_version)

        backup_key = BACKUP_KEY_PREFIX + source
        raw = self.backend.get(backup_key)
        if raw is None:
            raise StorageError(f"No backup found under {backup_key}", key=backup_key)

        self.backend.set(source, raw)
        self.backend.delete(STORAGE_KEY)
        logger.warning(f"Rolled back schema v{from_version} migration")
        self._record(
            MigrationRecord(
                from_version,
                SCHEMA_VERSION,
                MigrationStatus.ROLLED_BACK,
                backup_key=backup_key,
            )
        )
