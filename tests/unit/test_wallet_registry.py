"""
Unit tests for the hierarchical wallet registry.
"""

import json
from unittest.mock import patch

import pytest

from tipwallet.constants import STORAGE_KEY
from tipwallet.errors import (
    CannotDeleteLastWalletError,
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
from tipwallet.wallet import WalletRegistry, validate_nickname


@pytest.fixture
def imported(registry, pin, master_phrase):
    return registry.import_master_key(master_phrase, "Main", pin)


class TestNicknames:
    """Test nickname validation."""

    def test_trimmed(self):
        assert validate_nickname("  Savings  ") == "Savings"

    def test_length_limit(self):
        assert validate_nickname("x" * 30) == "x" * 30

        with pytest.raises(InvalidNicknameError):
            validate_nickname("x" * 31)

    @pytest.mark.parametrize("nickname", ["", "   ", None])
    def test_empty(self, nickname):
        with pytest.raises(InvalidNicknameError):
            validate_nickname(nickname)


class TestMasterKeys:
    """Test master key management."""

    def test_create_first_wallet(self, registry, pin, deriver):
        master_id = registry.create_master_key("Savings", pin)

        assert registry.has_wallets()
        assert registry.get_active_wallet() == (master_id, 0)

        metadata = registry.get_all_wallet_metadata()
        assert len(metadata) == 1
        assert metadata[0].id == master_id
        assert metadata[0].nickname == "Savings"
        assert metadata[0].sub_wallet_count == 1
        assert metadata[0].sub_wallets[0].nickname == "Main Wallet"
        assert metadata[0].is_active
        assert metadata[0].active_sub_wallet_index == 0

        assert deriver.validate_seed_phrase(registry.get_master_seed_phrase(master_id, pin))

    def test_no_plaintext_persisted(self, registry, backend, pin, master_phrase):
        registry.import_master_key(master_phrase, "Main", pin)

        raw = backend.get(STORAGE_KEY)
        assert b"abandon" not in raw
        assert b"about" not in raw

    def test_create_requires_matching_pin(self, registry, imported):
        with pytest.raises(InvalidPinError):
            registry.create_master_key("Second", "wrong")

        assert len(registry.get_all_wallet_metadata()) == 1

    def test_import(self, registry, imported, pin, master_phrase):
        assert registry.get_master_seed_phrase(imported, pin) == master_phrase
        assert registry.get_seed_phrase(imported, 0, pin) == master_phrase

    def test_import_normalizes(self, registry, pin, master_phrase):
        master_id = registry.import_master_key("  " + master_phrase.upper() + "  ", "Main", pin)
        assert registry.get_master_seed_phrase(master_id, pin) == master_phrase

    def test_import_invalid_phrase(self, registry, pin):
        with pytest.raises(InvalidSeedError):
            registry.import_master_key(" ".join(["abandon"] * 12), "Main", pin)

        assert not registry.has_wallets()

    def test_import_duplicate(self, registry, imported, pin, master_phrase):
        """Test the same seed cannot be imported twice, whatever its formatting."""
        with pytest.raises(DuplicateWalletError) as exc_info:
            registry.import_master_key(master_phrase.upper(), "Other", pin)

        assert exc_info.value.existing_id == imported
        assert len(registry.get_all_wallet_metadata()) == 1

    def test_import_duplicate_check_wrong_pin(self, registry, imported, letter_phrase):
        with pytest.raises(InvalidPinError):
            registry.import_master_key(letter_phrase, "Other", "wrong")

    def test_is_duplicate_seed(self, registry, imported, pin, letter_phrase, master_phrase):
        assert registry.is_duplicate_seed(master_phrase, pin)
        assert not registry.is_duplicate_seed(letter_phrase, pin)
        assert not registry.is_duplicate_seed("not a phrase", pin)

    def test_duplicate_nickname_case_insensitive(self, registry, imported, pin):
        with pytest.raises(DuplicateNameError):
            registry.create_master_key("MAIN", pin)

    def test_master_key_limit(self, registry, pin, master_phrase):
        for i in range(10):
            registry.create_master_key(f"Wallet {i}", pin)

        with pytest.raises(TooManyWalletsError):
            registry.create_master_key("One more", pin)

        with pytest.raises(TooManyWalletsError):
            registry.import_master_key(master_phrase, "One more", pin)

        assert len(registry.get_all_wallet_metadata()) == 10

    def test_limit_checked_before_nickname(self, store, deriver, pin):
        registry = WalletRegistry(store, deriver, max_master_keys=1)
        registry.create_master_key("Only", pin)

        with pytest.raises(TooManyWalletsError):
            registry.create_master_key("", pin)

    def test_rename(self, registry, imported, pin):
        registry.rename_master_key(imported, "  Renamed ", pin)
        assert registry.get_master_key(imported).nickname == "Renamed"

    def test_rename_to_own_name(self, registry, imported, pin):
        registry.rename_master_key(imported, "MAIN", pin)
        assert registry.get_master_key(imported).nickname == "MAIN"

    def test_rename_wrong_pin(self, registry, imported):
        with pytest.raises(InvalidPinError):
            registry.rename_master_key(imported, "Renamed", "wrong")
        assert registry.get_master_key(imported).nickname == "Main"

    def test_delete_last_wallet(self, registry, imported, pin):
        with pytest.raises(CannotDeleteLastWalletError):
            registry.delete_master_key(imported, pin)

        assert registry.has_wallets()

    def test_delete_active_falls_back(self, registry, imported, pin, letter_phrase):
        second = registry.import_master_key(letter_phrase, "Second", pin)
        registry.add_sub_wallet(second, 3)
        registry.reorder_master_keys([second, imported])
        registry.set_active_wallet(imported, 0)

        registry.delete_master_key(imported, pin)

        assert registry.get_active_wallet() == (second, 0)
        assert [m.id for m in registry.get_all_wallet_metadata()] == [second]

    def test_delete_inactive_keeps_active(self, registry, imported, pin, letter_phrase):
        second = registry.import_master_key(letter_phrase, "Second", pin)
        registry.delete_master_key(second, pin)

        assert registry.get_active_wallet() == (imported, 0)

    def test_delete_wrong_pin(self, registry, imported, pin, letter_phrase):
        second = registry.import_master_key(letter_phrase, "Second", pin)

        with pytest.raises(InvalidPinError):
            registry.delete_master_key(second, "wrong")
        assert len(registry.get_all_wallet_metadata()) == 2

    def test_unknown_master_key(self, registry, imported, pin):
        with pytest.raises(WalletNotFoundError):
            registry.delete_master_key("missing", pin)

        with pytest.raises(WalletNotFoundError):
            registry.get_master_key("missing")

    def test_reorder(self, registry, imported, pin, letter_phrase):
        second = registry.import_master_key(letter_phrase, "Second", pin)

        registry.reorder_master_keys([second, imported])
        assert [m.id for m in registry.get_all_wallet_metadata()] == [second, imported]

        with pytest.raises(ValidationError):
            registry.reorder_master_keys([second])

        with pytest.raises(ValidationError):
            registry.reorder_master_keys([second, second])

    def test_toggle_expanded(self, registry, imported):
        assert registry.toggle_master_key_expanded(imported) is True
        assert registry.get_master_key(imported).is_expanded
        assert registry.toggle_master_key_expanded(imported) is False


class TestSubWallets:
    """Test sub-wallet management."""

    def test_add_next_index(self, registry, imported):
        sub = registry.add_sub_wallet(imported)

        assert sub.index == 1
        assert sub.nickname == "Sub-Wallet 1"
        assert [s.index for s in registry.get_sub_wallets(imported)] == [0, 1]

    def test_add_explicit_index(self, registry, imported):
        registry.add_sub_wallet(imported, 5, "Tips")

        sub = registry.get_master_key(imported).get_sub_wallet(5)
        assert sub.nickname == "Tips"
        assert registry.add_sub_wallet(imported).index == 1

    def test_add_existing_index(self, registry, imported):
        with pytest.raises(SubWalletExistsError):
            registry.add_sub_wallet(imported, 0)

    @pytest.mark.parametrize("index", [20, -1])
    def test_add_out_of_range(self, registry, imported, index):
        with pytest.raises(IndexOutOfRangeError):
            registry.add_sub_wallet(imported, index)

    def test_sub_wallet_limit(self, registry, imported):
        for _ in range(19):
            registry.add_sub_wallet(imported)

        with pytest.raises(SubWalletLimitError):
            registry.add_sub_wallet(imported)

        assert len(registry.get_sub_wallets(imported)) == 20

    def test_collision_detected_with_pin(self, registry, imported, pin):
        with patch.object(registry.deriver, "colliding_index", return_value=0):
            with pytest.raises(SubWalletCollisionError) as exc_info:
                registry.add_sub_wallet(imported, 4, pin=pin)

        assert exc_info.value.colliding_index == 0
        assert registry.get_master_key(imported).get_sub_wallet(4) is None

    def test_add_with_pin(self, registry, imported, pin):
        assert registry.add_sub_wallet(imported, 2, pin=pin).index == 2

    def test_add_with_wrong_pin(self, registry, imported):
        with pytest.raises(InvalidPinError):
            registry.add_sub_wallet(imported, 2, pin="wrong")

    def test_seed_phrase_for_sub_wallet(self, registry, imported, pin, deriver, master_phrase):
        registry.add_sub_wallet(imported, 3)

        assert registry.get_seed_phrase(imported, 3, pin) == deriver.derive_sub_wallet_seed(
            master_phrase, 3
        )

    def test_seed_phrase_for_missing_sub_wallet(self, registry, imported, pin):
        with pytest.raises(SubWalletNotFoundError):
            registry.get_seed_phrase(imported, 3, pin)

    def test_rename(self, registry, imported):
        registry.rename_sub_wallet(imported, 0, "Spending")
        assert registry.get_sub_wallets(imported)[0].nickname == "Spending"

        with pytest.raises(InvalidNicknameError):
            registry.rename_sub_wallet(imported, 0, "")

    def test_cannot_remove_main_wallet(self, registry, imported):
        registry.add_sub_wallet(imported, 2)

        with pytest.raises(MainWalletRequiredError):
            registry.remove_sub_wallet(imported, 0)
        assert [s.index for s in registry.get_sub_wallets(imported)] == [0, 2]

    def test_remove_active_sub_wallet(self, registry, imported):
        registry.add_sub_wallet(imported, 2)
        registry.add_sub_wallet(imported, 7)
        registry.set_active_wallet(imported, 7)

        registry.remove_sub_wallet(imported, 7)

        assert registry.get_active_wallet() == (imported, 0)
        assert [s.index for s in registry.get_sub_wallets(imported)] == [0, 2]

    def test_remove_missing(self, registry, imported):
        with pytest.raises(SubWalletNotFoundError):
            registry.remove_sub_wallet(imported, 9)

    def test_add_discovered(self, registry, imported):
        registry.add_sub_wallet(imported, 2)

        added = registry.add_discovered_sub_wallets(imported, [0, 2, 3, 5, 3])

        assert added == [3, 5]
        assert [s.index for s in registry.get_sub_wallets(imported)] == [0, 2, 3, 5]
        assert registry.get_master_key(imported).get_sub_wallet(5).nickname == "Sub-Wallet 5"

    def test_add_discovered_nothing_new(self, registry, imported):
        assert registry.add_discovered_sub_wallets(imported, [0]) == []


class TestActiveWallet:
    """Test active wallet selection."""

    def test_no_wallets(self, registry):
        assert registry.get_active_wallet() is None
        assert registry.get_all_wallet_metadata() == []

    def test_set_active(self, registry, imported, pin, letter_phrase):
        second = registry.import_master_key(letter_phrase, "Second", pin)
        registry.add_sub_wallet(second, 1)

        registry.set_active_wallet(second, 1)

        assert registry.get_active_wallet() == (second, 1)
        metadata = {m.id: m for m in registry.get_all_wallet_metadata()}
        assert metadata[second].is_active
        assert metadata[second].active_sub_wallet_index == 1
        assert not metadata[imported].is_active
        assert metadata[imported].active_sub_wallet_index is None

    def test_set_active_updates_last_used(self, registry, imported):
        registry.add_sub_wallet(imported, 1)
        before = registry.get_master_key(imported).get_sub_wallet(1).last_used_at

        with patch("tipwallet.wallet.registry.now_ms", return_value=before + 5000):
            registry.set_active_wallet(imported, 1)

        entry = registry.get_master_key(imported)
        assert entry.last_used_at == before + 5000
        assert entry.get_sub_wallet(1).last_used_at == before + 5000

    def test_set_active_unknown(self, registry, imported):
        with pytest.raises(WalletNotFoundError):
            registry.set_active_wallet("missing", 0)

        with pytest.raises(SubWalletNotFoundError):
            registry.set_active_wallet(imported, 4)

        assert registry.get_active_wallet() == (imported, 0)


class TestArchivedSubWallets:
    """Test archiving and restoring sub-wallets."""

    def test_archive(self, registry, imported):
        registry.add_sub_wallet(imported, 2, "Tips")

        with patch("tipwallet.wallet.registry.now_ms", return_value=12345):
            registry.archive_sub_wallet(imported, 2)

        assert [s.index for s in registry.get_sub_wallets(imported)] == [0]
        assert [s.index for s in registry.get_sub_wallets(imported, include_archived=True)] == [
            0,
            2,
        ]
        archived = registry.get_archived_sub_wallets()
        assert [a.to_dict() for a in archived] == [
            {
                "masterKeyId": imported,
                "masterKeyNickname": "Main",
                "subWalletIndex": 2,
                "subWalletNickname": "Tips",
                "archivedAt": 12345,
            }
        ]

    def test_archived_index_stays_reserved(self, registry, imported):
        registry.add_sub_wallet(imported, 1)
        registry.archive_sub_wallet(imported, 1)

        assert registry.add_sub_wallet(imported).index == 2
        assert registry.add_discovered_sub_wallets(imported, [1, 3]) == [3]

        with pytest.raises(SubWalletExistsError):
            registry.add_sub_wallet(imported, 1)

    def test_cannot_archive_main_wallet(self, registry, imported):
        with pytest.raises(MainWalletRequiredError):
            registry.archive_sub_wallet(imported, 0)

    def test_archive_active_falls_back(self, registry, imported):
        registry.add_sub_wallet(imported, 4)
        registry.set_active_wallet(imported, 4)

        registry.archive_sub_wallet(imported, 4)

        assert registry.get_active_wallet() == (imported, 0)

    def test_archived_wallet_cannot_be_active(self, registry, imported, pin):
        registry.add_sub_wallet(imported, 4)
        registry.archive_sub_wallet(imported, 4)

        with pytest.raises(SubWalletNotFoundError):
            registry.set_active_wallet(imported, 4)

        with pytest.raises(SubWalletNotFoundError):
            registry.get_seed_phrase(imported, 4, pin)

    def test_restore(self, registry, imported, pin, deriver, master_phrase):
        registry.add_sub_wallet(imported, 5, "Savings")
        registry.add_sub_wallet(imported, 3)
        registry.archive_sub_wallet(imported, 5)

        restored = registry.restore_sub_wallet(imported, 5)

        assert restored.nickname == "Savings"
        assert restored.archived_at is None
        assert [s.index for s in registry.get_sub_wallets(imported)] == [0, 3, 5]
        assert registry.get_archived_sub_wallets() == []
        assert registry.get_seed_phrase(imported, 5, pin) == deriver.derive_sub_wallet_seed(
            master_phrase, 5
        )

    def test_restore_not_archived(self, registry, imported):
        registry.add_sub_wallet(imported, 5)

        with pytest.raises(SubWalletNotFoundError):
            registry.restore_sub_wallet(imported, 5)

    def test_delete_archived(self, registry, imported):
        registry.add_sub_wallet(imported, 1)
        registry.archive_sub_wallet(imported, 1)

        registry.delete_archived_sub_wallet(imported, 1)

        assert registry.get_sub_wallets(imported, include_archived=True)[-1].index == 0
        assert registry.add_sub_wallet(imported).index == 1

        with pytest.raises(SubWalletNotFoundError):
            registry.delete_archived_sub_wallet(imported, 1)

    def test_archive_unknown(self, registry, imported):
        with pytest.raises(SubWalletNotFoundError):
            registry.archive_sub_wallet(imported, 9)

        with pytest.raises(WalletNotFoundError):
            registry.archive_sub_wallet("missing", 1)


class TestImplicitMainWallet:
    """Stored master keys that do not list sub-wallet 0."""

    @pytest.fixture
    def bare(self, registry, backend, imported, pin, letter_phrase):
        second = registry.import_master_key(letter_phrase, "Second", pin)
        data = json.loads(backend.get(STORAGE_KEY).decode("utf-8"))
        for entry in data["masterKeys"]:
            entry["subWallets"] = []
            entry.pop("archivedSubWallets", None)
        backend.set(STORAGE_KEY, json.dumps(data).encode("utf-8"))
        return second

    def test_seed_phrase_for_index_zero(self, registry, imported, bare, pin, master_phrase):
        assert registry.get_seed_phrase(imported, 0, pin) == master_phrase
        assert [s.index for s in registry.get_sub_wallets(imported)] == [0]

    def test_delete_falls_back_to_index_zero(self, registry, imported, bare, pin):
        registry.delete_master_key(imported, pin)
        assert registry.get_active_wallet() == (bare, 0)

    def test_add_next_index(self, registry, imported, bare):
        assert registry.add_sub_wallet(imported).index == 1
