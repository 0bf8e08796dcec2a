"""
Persisted wallet data model.

The root record is serialized as JSON with camelCase keys so data written by
earlier clients of the same schema stays readable.
"""

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..constants import (
    MAIN_WALLET_NAME,
    MAX_MASTER_KEYS,
    MAX_SUB_WALLETS,
    SCHEMA_VERSION,
)
from ..errors import CorruptStorageError, DecryptionError
from .encryption import EncryptedBlob


def now_ms() -> int:
    return int(time.time() * 1000)


def new_master_key_id() -> str:
    return str(uuid.uuid4())


@dataclass
class SubWalletEntry:
    """A derived wallet. Its phrase is recomputed from the master, never stored."""

    index: int
    nickname: str
    created_at: int = field(default_factory=now_ms)
    last_used_at: int = field(default_factory=now_ms)
    archived_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "index": self.index,
            "nickname": self.nickname,
            "createdAt": self.created_at,
            "lastUsedAt": self.last_used_at,
        }
        if self.archived_at is not None:
            data["archivedAt"] = self.archived_at
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubWalletEntry":
        return cls(
            index=int(data["index"]),
            nickname=data["nickname"],
            created_at=int(data.get("createdAt", 0)),
            last_used_at=int(data.get("lastUsedAt", 0)),
            archived_at=int(data["archivedAt"]) if data.get("archivedAt") is not None else None,
        )


@dataclass
class MasterKeyEntry:
    """An encrypted master seed and the sub-wallets derived from it.

    Sub-wallet 0 is the master seed itself and is always listed. Archived
    sub-wallets are hidden from the active list but keep their index.
    """

    id: str
    nickname: str
    encrypted_seed: EncryptedBlob
    created_at: int = field(default_factory=now_ms)
    last_used_at: int = field(default_factory=now_ms)
    sub_wallets: List[SubWalletEntry] = field(default_factory=list)
    archived_sub_wallets: List[SubWalletEntry] = field(default_factory=list)
    is_expanded: bool = False

    def __post_init__(self):
        self.ensure_main_wallet()

    @classmethod
    def create(cls, nickname: str, encrypted_seed: EncryptedBlob) -> "MasterKeyEntry":
        """New entry holding only sub-wallet 0."""
        timestamp = now_ms()
        return cls(
            id=new_master_key_id(),
            nickname=nickname,
            encrypted_seed=encrypted_seed,
            created_at=timestamp,
            last_used_at=timestamp,
        )

    def ensure_main_wallet(self) -> None:
        """Put sub-wallet 0 in the active list if it is missing or archived."""
        if self.get_sub_wallet(0) is not None:
            return
        main = self.get_archived_sub_wallet(0)
        if main is not None:
            self.archived_sub_wallets.remove(main)
            main.archived_at = None
        else:
            main = SubWalletEntry(0, MAIN_WALLET_NAME, self.created_at, self.last_used_at)
        self.sub_wallets.insert(0, main)

    @property
    def used_indices(self) -> List[int]:
        return [sub.index for sub in self.sub_wallets]

    @property
    def reserved_indices(self) -> List[int]:
        """Indices taken by active and archived sub-wallets."""
        return self.used_indices + [sub.index for sub in self.archived_sub_wallets]

    def get_sub_wallet(self, index: int) -> Optional[SubWalletEntry]:
        for sub in self.sub_wallets:
            if sub.index == index:
                return sub
        return None

    def get_archived_sub_wallet(self, index: int) -> Optional[SubWalletEntry]:
        for sub in self.archived_sub_wallets:
            if sub.index == index:
                return sub
        return None

    def sorted_sub_wallets(self) -> List[SubWalletEntry]:
        return sorted(self.sub_wallets, key=lambda s: s.index)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "nickname": self.nickname,
            "encryptedSeed": self.encrypted_seed.to_dict(),
            "createdAt": self.created_at,
            "lastUsedAt": self.last_used_at,
            "subWallets": [sub.to_dict() for sub in self.sub_wallets],
            "archivedSubWallets": [sub.to_dict() for sub in self.archived_sub_wallets],
            "isExpanded": self.is_expanded,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MasterKeyEntry":
        return cls(
            id=data["id"],
            nickname=data["nickname"],
            encrypted_seed=EncryptedBlob.from_dict(data["encryptedSeed"]),
            created_at=int(data.get("createdAt", 0)),
            last_used_at=int(data.get("lastUsedAt", 0)),
            sub_wallets=[SubWalletEntry.from_dict(s) for s in data.get("subWallets", [])],
            archived_sub_wallets=[
                SubWalletEntry.from_dict(s) for s in data.get("archivedSubWallets", [])
            ],
            is_expanded=bool(data.get("isExpanded", False)),
        )


@dataclass
class MasterKeyMetadata:
    """Display data for a master key. Holds no secret material."""

    id: str
    nickname: str
    created_at: int
    last_used_at: int
    sub_wallet_count: int
    sub_wallets: List[SubWalletEntry]
    is_expanded: bool
    is_active: bool
    active_sub_wallet_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "nickname": self.nickname,
            "createdAt": self.created_at,
            "lastUsedAt": self.last_used_at,
            "subWalletCount": self.sub_wallet_count,
            "subWallets": [sub.to_dict() for sub in self.sub_wallets],
            "isExpanded": self.is_expanded,
            "isActive": self.is_active,
            "activeSubWalletIndex": self.active_sub_wallet_index,
        }


@dataclass
class ArchivedSubWallet:
    """An archived sub-wallet together with its parent master key."""

    master_key_id: str
    master_key_nickname: str
    sub_wallet_index: int
    sub_wallet_nickname: str
    archived_at: Optional[int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "masterKeyId": self.master_key_id,
            "masterKeyNickname": self.master_key_nickname,
            "subWalletIndex": self.sub_wallet_index,
            "subWalletNickname": self.sub_wallet_nickname,
            "archivedAt": self.archived_at,
        }


@dataclass
class HierarchicalWalletStorage:
    """Persisted root record (schema version 2)."""

    master_keys: List[MasterKeyEntry] = field(default_factory=list)
    active_master_key_id: Optional[str] = None
    active_sub_wallet_index: int = 0
    master_key_order: List[str] = field(default_factory=list)
    version: int = SCHEMA_VERSION

    def get_master_key(self, master_key_id: str) -> Optional[MasterKeyEntry]:
        for entry in self.master_keys:
            if entry.id == master_key_id:
                return entry
        return None

    def ordered_master_keys(self) -> List[MasterKeyEntry]:
        by_id = {entry.id: entry for entry in self.master_keys}
        return [by_id[i] for i in self.master_key_order if i in by_id]

    def validate(self) -> None:
        """Check structural invariants.

        Raises:
            CorruptStorageError: an invariant does not hold.
        """
        if self.version != SCHEMA_VERSION:
            raise CorruptStorageError(f"Expected schema version {SCHEMA_VERSION}")

        if len(self.master_keys) > MAX_MASTER_KEYS:
            raise CorruptStorageError(f"More than {MAX_MASTER_KEYS} master keys")

        ids = [entry.id for entry in self.master_keys]
        if len(set(ids)) != len(ids):
            raise CorruptStorageError("Duplicate master key ids")

        if sorted(self.master_key_order) != sorted(ids):
            raise CorruptStorageError("masterKeyOrder is not a permutation of master keys")

        for entry in self.master_keys:
            indices = entry.reserved_indices
            if len(entry.sub_wallets) > MAX_SUB_WALLETS:
                raise CorruptStorageError(f"Master key {entry.id} has too many sub-wallets")
            if len(set(indices)) != len(indices):
                raise CorruptStorageError(f"Master key {entry.id} has duplicate sub-wallet indices")
            if any(not 0 <= i < MAX_SUB_WALLETS for i in indices):
                raise CorruptStorageError(f"Master key {entry.id} has an out-of-range index")

        if self.master_keys:
            active = self.get_master_key(self.active_master_key_id or "")
            if active is None:
                raise CorruptStorageError("Active master key does not exist")
            if active.get_sub_wallet(self.active_sub_wallet_index) is None:
                raise CorruptStorageError("Active sub-wallet does not exist")
        elif self.active_master_key_id is not None:
            raise CorruptStorageError("Active master key set on empty storage")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "masterKeys": [entry.to_dict() for entry in self.master_keys],
            "activeMasterKeyId": self.active_master_key_id,
            "activeSubWalletIndex": self.active_sub_wallet_index,
            "masterKeyOrder": list(self.master_key_order),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HierarchicalWalletStorage":
        try:
            return cls(
                version=int(data["version"]),
                master_keys=[MasterKeyEntry.from_dict(m) for m in data.get("masterKeys", [])],
                active_master_key_id=data.get("activeMasterKeyId"),
                active_sub_wallet_index=int(data.get("activeSubWalletIndex", 0)),
                master_key_order=list(data.get("masterKeyOrder", [])),
            )
        except (KeyError, TypeError, ValueError, DecryptionError) as e:
            raise CorruptStorageError(f"Malformed wallet storage: {e}", cause=e)
