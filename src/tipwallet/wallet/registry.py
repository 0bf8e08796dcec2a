"""
Hierarchical wallet registry.

CRUD over master keys and their sub-wallets. Every mutating call loads the
root record, validates the request, mutates and saves once; a rejected
request leaves storage untouched.
"""

import logging
import threading
from typing import Iterable, List, Optional, Sequence, Tuple

from ..constants import (
    MAX_MASTER_KEYS,
    MAX_NICKNAME_LENGTH,
    MAX_SUB_WALLETS,
    SUB_WALLET_NAME_TEMPLATE,
)
from ..errors import (
    CannotDeleteLastWalletError,
    DecryptionError,
    DuplicateNameError,
    DuplicateWalletError,
    IndexOutOfRangeError,
    InvalidNicknameError,
    InvalidPinError,
    InvalidSeedError,
    MainWalletRequiredError,
    SubWalletCollisionError,
    SubWalletExistsError,
    SubWalletLimitError,
    SubWalletNotFoundError,
    TooManyWalletsError,
    ValidationError,
    WalletNotFoundError,
)
from .credential_store import CredentialStore
from .encryption import SymmetricKey
from .mnemonic import MnemonicDeriver, get_default_deriver, normalize_seed_phrase
from .models import (
    ArchivedSubWallet,
    HierarchicalWalletStorage,
    MasterKeyEntry,
    MasterKeyMetadata,
    SubWalletEntry,
    now_ms,
)

logger = logging.getLogger(__name__)


def validate_nickname(nickname: str) -> str:
    """Trimmed nickname, or InvalidNicknameError."""
    if not isinstance(nickname, str) or not nickname.strip():
        raise InvalidNicknameError("Nickname cannot be empty")
    nickname = nickname.strip()
    if len(nickname) > MAX_NICKNAME_LENGTH:
        raise InvalidNicknameError(
            f"Nickname must be {MAX_NICKNAME_LENGTH} characters or less"
        )
    return nickname


class WalletRegistry:
    """Manages master keys and sub-wallets in the persisted root record."""

    def __init__(
        self,
        store: CredentialStore,
        deriver: Optional[MnemonicDeriver] = None,
        max_master_keys: int = MAX_MASTER_KEYS,
        max_sub_wallets: int = MAX_SUB_WALLETS,
    ):
        self.store = store
        self.deriver = deriver or get_default_deriver()
        self.max_master_keys = max_master_keys
        self.max_sub_wallets = max_sub_wallets
        self._lock = threading.RLock()

    # Internal helpers

    def _load(self) -> HierarchicalWalletStorage:
        return self.store.load_or_empty()

    def _require_master(
        self, root: HierarchicalWalletStorage, master_key_id: str
    ) -> MasterKeyEntry:
        entry = root.get_master_key(master_key_id)
        if entry is None:
            raise WalletNotFoundError(master_key_id)
        return entry

    def _require_sub(self, entry: MasterKeyEntry, index: int) -> SubWalletEntry:
        sub = entry.get_sub_wallet(index)
        if sub is None:
            raise SubWalletNotFoundError(entry.id, index)
        return sub

    def _require_archived(self, entry: MasterKeyEntry, index: int) -> SubWalletEntry:
        sub = entry.get_archived_sub_wallet(index)
        if sub is None:
            raise SubWalletNotFoundError(entry.id, index)
        return sub

    def _reset_active_if(
        self, root: HierarchicalWalletStorage, master_key_id: str, index: int
    ) -> None:
        """Fall back to sub-wallet 0 when ``index`` was the active one."""
        if root.active_master_key_id == master_key_id and root.active_sub_wallet_index == index:
            root.active_sub_wallet_index = 0

    def _check_unique_name(
        self,
        root: HierarchicalWalletStorage,
        nickname: str,
        exclude_id: Optional[str] = None,
    ) -> None:
        for entry in root.master_keys:
            if entry.id != exclude_id and entry.nickname.lower() == nickname.lower():
                raise DuplicateNameError(nickname)

    def _decrypt_master(self, entry: MasterKeyEntry, key: SymmetricKey) -> str:
        try:
            return self.store.decrypt_seed(entry.encrypted_seed, key)
        except DecryptionError as e:
            raise InvalidPinError(cause=e, metadata={"master_key_id": entry.id})

    def _verify_pin(self, root: HierarchicalWalletStorage, key: SymmetricKey) -> None:
        """All master keys share one PIN; check it against the active one."""
        if not root.master_keys:
            return
        entry = root.get_master_key(root.active_master_key_id or "") or root.master_keys[0]
        self._decrypt_master(entry, key)

    def _find_duplicate(
        self, root: HierarchicalWalletStorage, phrase: str, key: SymmetricKey
    ) -> Optional[str]:
        fingerprint = self.deriver.seed_fingerprint(phrase)
        for entry in root.master_keys:
            existing = self._decrypt_master(entry, key)
            if self.deriver.seed_fingerprint(existing) == fingerprint:
                return entry.id
        return None

    def _append_master(
        self, root: HierarchicalWalletStorage, nickname: str, phrase: str, key: SymmetricKey
    ) -> MasterKeyEntry:
        entry = MasterKeyEntry.create(nickname, self.store.encrypt_seed(phrase, key))
        root.master_keys.append(entry)
        root.master_key_order.append(entry.id)
        if root.active_master_key_id is None:
            root.active_master_key_id = entry.id
            root.active_sub_wallet_index = 0
        return entry

    # Master keys

    def create_master_key(self, nickname: str, pin: str) -> str:
        """Generate a new seed and store it as a master key.

        Raises:
            TooManyWalletsError: the registry already holds the maximum.
            InvalidNicknameError, DuplicateNameError: bad nickname.
            InvalidPinError: the PIN does not match existing wallets.
        """
        with self._lock:
            root = self._load()
            if len(root.master_keys) >= self.max_master_keys:
                raise TooManyWalletsError(self.max_master_keys)

            nickname = validate_nickname(nickname)
            self._check_unique_name(root, nickname)

            key = self.store.derive_key(pin)
            self._verify_pin(root, key)

            entry = self._append_master(
                root, nickname, self.deriver.generate_seed_phrase(), key
            )
            self.store.save(root)

            logger.info(f"Created master key {entry.id}")
            return entry.id

    def import_master_key(self, phrase: str, nickname: str, pin: str) -> str:
        """Store an existing seed phrase as a master key.

        Raises:
            InvalidSeedError: the phrase is not a valid 12-word mnemonic.
            DuplicateWalletError: the same seed is already stored.
            TooManyWalletsError, InvalidNicknameError, DuplicateNameError,
            InvalidPinError.
        """
        with self._lock:
            if not self.deriver.validate_seed_phrase(phrase):
                raise InvalidSeedError()
            phrase = normalize_seed_phrase(phrase)

            root = self._load()
            if len(root.master_keys) >= self.max_master_keys:
                raise TooManyWalletsError(self.max_master_keys)

            nickname = validate_nickname(nickname)
            self._check_unique_name(root, nickname)

            key = self.store.derive_key(pin)
            existing_id = self._find_duplicate(root, phrase, key)
            if existing_id is not None:
                raise DuplicateWalletError(existing_id)

            entry = self._append_master(root, nickname, phrase, key)
            self.store.save(root)

            logger.info(f"Imported master key {entry.id}")
            return entry.id

    def rename_master_key(self, master_key_id: str, new_nickname: str, pin: str) -> None:
        with self._lock:
            root = self._load()
            entry = self._require_master(root, master_key_id)
            nickname = validate_nickname(new_nickname)
            self._check_unique_name(root, nickname, exclude_id=master_key_id)
            self._decrypt_master(entry, self.store.derive_key(pin))

            entry.nickname = nickname
            self.store.save(root)
            logger.info(f"Renamed master key {master_key_id}")

    def delete_master_key(self, master_key_id: str, pin: str) -> None:
        """Remove a master key and all its sub-wallets.

        Raises:
            CannotDeleteLastWalletError: it is the only master key.
        """
        with self._lock:
            root = self._load()
            entry = self._require_master(root, master_key_id)
            if len(root.master_keys) <= 1:
                raise CannotDeleteLastWalletError()
            self._decrypt_master(entry, self.store.derive_key(pin))

            root.master_keys = [m for m in root.master_keys if m.id != master_key_id]
            root.master_key_order = [i for i in root.master_key_order if i != master_key_id]

            if root.active_master_key_id == master_key_id:
                root.active_master_key_id = root.ordered_master_keys()[0].id
                root.active_sub_wallet_index = 0

            self.store.save(root)
            logger.info(f"Deleted master key {master_key_id}")

    def toggle_master_key_expanded(self, master_key_id: str) -> bool:
        with self._lock:
            root = self._load()
            entry = self._require_master(root, master_key_id)
            entry.is_expanded = not entry.is_expanded
            self.store.save(root)
            return entry.is_expanded

    def reorder_master_keys(self, order: Sequence[str]) -> None:
        with self._lock:
            root = self._load()
            if sorted(order) != sorted(root.master_key_order):
                raise ValidationError(
                    "Order must list every master key exactly once", field="order"
                )
            root.master_key_order = list(order)
            self.store.save(root)

    # Sub-wallets

    def add_sub_wallet(
        self,
        master_key_id: str,
        index: Optional[int] = None,
        nickname: Optional[str] = None,
        pin: Optional[str] = None,
    ) -> SubWalletEntry:
        """Add a derived wallet at ``index`` (next free index when None).

        Archived indices count as taken. With ``pin`` the derived phrase is
        also checked against the phrases of existing sub-wallets and
        ``SubWalletCollisionError`` is raised on a match.
        """
        with self._lock:
            root = self._load()
            entry = self._require_master(root, master_key_id)

            if len(entry.sub_wallets) >= self.max_sub_wallets:
                raise SubWalletLimitError(self.max_sub_wallets)

            if index is None:
                index = self.deriver.get_next_available_index(entry.reserved_indices)
                if index is None:
                    raise SubWalletLimitError(self.max_sub_wallets)
            if not self.deriver.is_valid_sub_wallet_index(index):
                raise IndexOutOfRangeError(index, self.max_sub_wallets)
            if index in entry.reserved_indices:
                raise SubWalletExistsError(master_key_id, index)

            nickname = validate_nickname(
                nickname if nickname is not None else SUB_WALLET_NAME_TEMPLATE.format(index=index)
            )

            if pin is not None:
                master = self._decrypt_master(entry, self.store.derive_key(pin))
                other = self.deriver.colliding_index(master, index, entry.reserved_indices)
                if other is not None:
                    raise SubWalletCollisionError(index, other)

            sub = SubWalletEntry(index=index, nickname=nickname)
            entry.sub_wallets.append(sub)
            self.store.save(root)

            logger.info(f"Added sub-wallet {index} to master key {master_key_id}")
            return sub

    def rename_sub_wallet(self, master_key_id: str, index: int, nickname: str) -> None:
        with self._lock:
            root = self._load()
            sub = self._require_sub(self._require_master(root, master_key_id), index)
            sub.nickname = validate_nickname(nickname)
            self.store.save(root)

    def remove_sub_wallet(self, master_key_id: str, index: int) -> None:
        """Forget a sub-wallet. Sub-wallet 0 is the master and stays."""
        with self._lock:
            root = self._load()
            entry = self._require_master(root, master_key_id)
            self._require_sub(entry, index)
            if index == 0:
                raise MainWalletRequiredError(master_key_id)

            entry.sub_wallets = [s for s in entry.sub_wallets if s.index != index]
            self._reset_active_if(root, master_key_id, index)

            self.store.save(root)
            logger.info(f"Removed sub-wallet {index} from master key {master_key_id}")

    def archive_sub_wallet(self, master_key_id: str, index: int) -> None:
        """Hide a sub-wallet. Its index stays reserved until it is deleted."""
        with self._lock:
            root = self._load()
            entry = self._require_master(root, master_key_id)
            sub = self._require_sub(entry, index)
            if index == 0:
                raise MainWalletRequiredError(master_key_id)

            entry.sub_wallets.remove(sub)
            sub.archived_at = now_ms()
            entry.archived_sub_wallets.append(sub)
            self._reset_active_if(root, master_key_id, index)

            self.store.save(root)
            logger.info(f"Archived sub-wallet {index} of master key {master_key_id}")

    def restore_sub_wallet(self, master_key_id: str, index: int) -> SubWalletEntry:
        with self._lock:
            root = self._load()
            entry = self._require_master(root, master_key_id)
            sub = self._require_archived(entry, index)

            entry.archived_sub_wallets.remove(sub)
            sub.archived_at = None
            sub.last_used_at = now_ms()
            entry.sub_wallets.append(sub)
            entry.sub_wallets.sort(key=lambda s: s.index)

            self.store.save(root)
            logger.info(f"Restored sub-wallet {index} of master key {master_key_id}")
            return sub

    def delete_archived_sub_wallet(self, master_key_id: str, index: int) -> None:
        """Permanently drop an archived sub-wallet, freeing its index."""
        with self._lock:
            root = self._load()
            entry = self._require_master(root, master_key_id)
            sub = self._require_archived(entry, index)

            entry.archived_sub_wallets.remove(sub)
            self.store.save(root)
            logger.info(f"Deleted archived sub-wallet {index} of master key {master_key_id}")

    def add_discovered_sub_wallets(
        self, master_key_id: str, indices: Iterable[int]
    ) -> List[int]:
        """Register discovered indices not yet present. Returns the ones added."""
        with self._lock:
            root = self._load()
            entry = self._require_master(root, master_key_id)

            added = []
            for index in sorted(set(indices)):
                if index in entry.reserved_indices:
                    continue
                if not self.deriver.is_valid_sub_wallet_index(index):
                    raise IndexOutOfRangeError(index, self.max_sub_wallets)
                if len(entry.sub_wallets) >= self.max_sub_wallets:
                    raise SubWalletLimitError(self.max_sub_wallets)
                entry.sub_wallets.append(
                    SubWalletEntry(index, SUB_WALLET_NAME_TEMPLATE.format(index=index))
                )
                added.append(index)

            if added:
                self.store.save(root)
                logger.info(
                    f"Added {len(added)} discovered sub-wallet(s) to master key {master_key_id}"
                )
            return added

    # Queries

    def has_wallets(self) -> bool:
        return bool(self._load().master_keys)

    def get_all_wallet_metadata(self) -> List[MasterKeyMetadata]:
        """Display metadata for every master key, in display order. No decryption."""
        root = self._load()
        return [
            MasterKeyMetadata(
                id=entry.id,
                nickname=entry.nickname,
                created_at=entry.created_at,
                last_used_at=entry.last_used_at,
                sub_wallet_count=len(entry.sub_wallets),
                sub_wallets=entry.sorted_sub_wallets(),
                is_expanded=entry.is_expanded,
                is_active=entry.id == root.active_master_key_id,
                active_sub_wallet_index=(
                    root.active_sub_wallet_index
                    if entry.id == root.active_master_key_id
                    else None
                ),
            )
            for entry in root.ordered_master_keys()
        ]

    def get_master_key(self, master_key_id: str) -> MasterKeyEntry:
        return self._require_master(self._load(), master_key_id)

    def get_sub_wallets(
        self, master_key_id: str, include_archived: bool = False
    ) -> List[SubWalletEntry]:
        """Active sub-wallets by index, followed by archived ones when asked."""
        entry = self._require_master(self._load(), master_key_id)
        subs = entry.sorted_sub_wallets()
        if include_archived:
            subs += sorted(entry.archived_sub_wallets, key=lambda s: s.index)
        return subs

    def get_archived_sub_wallets(self) -> List[ArchivedSubWallet]:
        """Archived sub-wallets across all master keys, in display order."""
        return [
            ArchivedSubWallet(
                master_key_id=entry.id,
                master_key_nickname=entry.nickname,
                sub_wallet_index=sub.index,
                sub_wallet_nickname=sub.nickname,
                archived_at=sub.archived_at,
            )
            for entry in self._load().ordered_master_keys()
            for sub in sorted(entry.archived_sub_wallets, key=lambda s: s.index)
        ]

    def get_active_wallet(self) -> Optional[Tuple[str, int]]:
        root = self._load()
        if root.active_master_key_id is None:
            return None
        return root.active_master_key_id, root.active_sub_wallet_index

    def set_active_wallet(self, master_key_id: str, sub_index: int) -> None:
        """Point the active wallet at ``(master_key_id, sub_index)``."""
        with self._lock:
            root = self._load()
            entry = self._require_master(root, master_key_id)
            sub = self._require_sub(entry, sub_index)

            timestamp = now_ms()
            root.active_master_key_id = master_key_id
            root.active_sub_wallet_index = sub_index
            entry.last_used_at = timestamp
            sub.last_used_at = timestamp
            self.store.save(root)

    # Secrets

    def get_seed_phrase(self, master_key_id: str, sub_index: int, pin: str) -> str:
        """Decrypt the master seed and derive the sub-wallet phrase."""
        return self.get_seed_phrase_with_key(
            master_key_id, sub_index, self.store.derive_key(pin)
        )

    def get_seed_phrase_with_key(
        self, master_key_id: str, sub_index: int, key: SymmetricKey
    ) -> str:
        entry = self._require_master(self._load(), master_key_id)
        self._require_sub(entry, sub_index)
        master = self._decrypt_master(entry, key)
        return self.deriver.derive_sub_wallet_seed(master, sub_index)

    def get_master_seed_phrase(self, master_key_id: str, pin: str) -> str:
        entry = self._require_master(self._load(), master_key_id)
        return self._decrypt_master(entry, self.store.derive_key(pin))

    def is_duplicate_seed(self, phrase: str, pin: str) -> bool:
        """True when ``phrase`` matches a stored master key."""
        if not self.deriver.validate_seed_phrase(phrase):
            return False
        root = self._load()
        key = self.store.derive_key(pin)
        return self._find_duplicate(root, normalize_seed_phrase(phrase), key) is not None
