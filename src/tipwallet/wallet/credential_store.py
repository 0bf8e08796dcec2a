"""
Encrypted credential store.

Owns the PIN-derived key handling and the single persisted root record.
Plaintext seed phrases never reach the backend.
"""

import logging
from typing import Optional

from ..config import WalletConfig
from ..constants import SCHEMA_VERSION, STORAGE_KEY
from ..errors import MigrationRequiredError
from ..storage import InMemoryKeyValueStore, KeyValueStore
from .encryption import EncryptedBlob, EncryptionConfig, PinEncryption, SymmetricKey
from .migrations import SchemaMigrator, detect_schema_version, read_json, write_json
from .models import HierarchicalWalletStorage

logger = logging.getLogger(__name__)


class CredentialStore:
    """Loads, saves and (de)crypts wallet credentials."""

    def __init__(
        self,
        backend: Optional[KeyValueStore] = None,
        encryption: Optional[PinEncryption] = None,
    ):
        self.backend = backend if backend is not None else InMemoryKeyValueStore()
        self.encryption = encryption or PinEncryption()
        self.migrator = SchemaMigrator(self.backend, self.encryption)

    @classmethod
    def with_iterations(
        cls, iterations: int, backend: Optional[KeyValueStore] = None
    ) -> "CredentialStore":
        return cls(backend, PinEncryption(EncryptionConfig(iterations=iterations)))

    @classmethod
    def from_config(
        cls, config: WalletConfig, backend: Optional[KeyValueStore] = None
    ) -> "CredentialStore":
        """Store whose key derivation uses ``config.kdf_iterations``."""
        return cls.with_iterations(config.kdf_iterations, backend)

    # Keys and blobs

    def derive_key(self, pin: str) -> SymmetricKey:
        return self.encryption.derive_key(pin)

    def encrypt(self, plaintext: bytes, key: SymmetricKey) -> EncryptedBlob:
        return self.encryption.encrypt(plaintext, key)

    def decrypt(self, blob: EncryptedBlob, key: SymmetricKey) -> bytes:
        return self.encryption.decrypt(blob, key)

    def encrypt_seed(self, phrase: str, key: SymmetricKey) -> EncryptedBlob:
        return self.encryption.encrypt_string(phrase, key)

    def decrypt_seed(self, blob: EncryptedBlob, key: SymmetricKey) -> str:
        """Raises DecryptionError for a wrong key or a tampered blob."""
        return self.encryption.decrypt_string(blob, key)

    # Persistence

    def schema_version(self) -> Optional[int]:
        return detect_schema_version(self.backend)

    def has_data(self) -> bool:
        return self.schema_version() is not None

    def load(self) -> Optional[HierarchicalWalletStorage]:
        """Read the root record, migrating v1 data on the way.

        Raises:
            MigrationRequiredError: only a v0 wallet exists; call
                ``migrate_legacy`` with the PIN.
            SchemaVersionError: the stored version is unknown.
            CorruptStorageError: the record violates its invariants.
        """
        version = self.schema_version()

        if version is None:
            return None

        if version == 0:
            raise MigrationRequiredError(0)

        if version == 1:
            logger.info("Found schema v1 wallet data, migrating")
            return self.migrator.migrate_v1()

        root = HierarchicalWalletStorage.from_dict(read_json(self.backend, STORAGE_KEY))
        root.validate()
        return root

    def load_or_empty(self) -> HierarchicalWalletStorage:
        root = self.load()
        return root if root is not None else HierarchicalWalletStorage()

    def save(self, root: HierarchicalWalletStorage) -> None:
        """Validate and write ``root`` as the single persisted record."""
        root.version = SCHEMA_VERSION
        root.validate()
        write_json(self.backend, STORAGE_KEY, root.to_dict())
        logger.debug(f"Saved wallet storage with {len(root.master_keys)} master key(s)")

    def clear(self) -> None:
        self.backend.delete(STORAGE_KEY)

    def migrate_legacy(self, pin: str) -> HierarchicalWalletStorage:
        return self.migrator.migrate_legacy(pin)

    def rollback_legacy_migration(self) -> None:
        self.migrator.rollback(0)
