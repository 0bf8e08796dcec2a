"""
Unit tests for PIN encryption.
"""

import pytest

from tipwallet.constants import KDF_ITERATIONS, KDF_SALT
from tipwallet.errors import DecryptionError, ValidationError
from tipwallet.wallet import EncryptedBlob, EncryptionConfig, PinEncryption, SymmetricKey


@pytest.fixture
def encryption():
    return PinEncryption(EncryptionConfig(iterations=1000))


class TestEncryptionConfig:
    """Test EncryptionConfig functionality."""

    def test_defaults(self):
        """Test the defaults match the persisted data format."""
        config = EncryptionConfig()

        assert config.iterations == KDF_ITERATIONS == 100000
        assert config.salt == KDF_SALT == b"lightning-tipping-salt"
        assert config.key_length == 32
        assert config.iv_length == 12

    def test_validation(self):
        """Test encryption config validation."""
        with pytest.raises(ValueError, match="Iterations must be positive"):
            EncryptionConfig(iterations=0)

        with pytest.raises(ValueError, match="Salt cannot be empty"):
            EncryptionConfig(salt=b"")

        with pytest.raises(ValueError, match="32-byte key"):
            EncryptionConfig(key_length=16)

        with pytest.raises(ValueError, match="GCM requires 12-byte IV"):
            EncryptionConfig(iv_length=16)

    def test_serialization(self):
        config = EncryptionConfig(iterations=5000, salt=b"other-salt")

        data = config.to_dict()
        assert data["iterations"] == 5000
        assert data["salt"] == b"other-salt".hex()

        restored = EncryptionConfig.from_dict(data)
        assert restored == config


class TestSymmetricKey:
    """Test SymmetricKey functionality."""

    def test_key_length(self):
        with pytest.raises(ValueError):
            SymmetricKey(b"short")

    def test_repr_hides_material(self):
        key = SymmetricKey(bytes(range(32)))
        assert "hidden" in repr(key)
        assert bytes(range(32)).hex() not in repr(key)

    def test_equality(self):
        assert SymmetricKey(b"\x01" * 32) == SymmetricKey(b"\x01" * 32)
        assert SymmetricKey(b"\x01" * 32) != SymmetricKey(b"\x02" * 32)


class TestKeyDerivation:
    """Test PIN key derivation."""

    def test_deterministic(self, encryption):
        assert encryption.derive_key("1234") == encryption.derive_key("1234")

    def test_different_pins(self, encryption):
        assert encryption.derive_key("correct123") != encryption.derive_key("wrong")

    def test_iterations_change_key(self):
        low = PinEncryption(EncryptionConfig(iterations=1000)).derive_key("1234")
        high = PinEncryption(EncryptionConfig(iterations=2000)).derive_key("1234")
        assert low != high

    def test_empty_pin(self, encryption):
        with pytest.raises(ValidationError):
            encryption.derive_key("")


class TestEncryptDecrypt:
    """Test authenticated encryption."""

    def test_round_trip(self, encryption):
        key = encryption.derive_key("correct123")
        blob = encryption.encrypt(b"secret data", key)

        assert len(blob.iv) == 12
        assert len(blob.ciphertext) == len(b"secret data") + 16
        assert blob.timestamp > 0
        assert encryption.decrypt(blob, key) == b"secret data"

    def test_fresh_iv_per_call(self, encryption):
        key = encryption.derive_key("correct123")
        first = encryption.encrypt(b"same", key)
        second = encryption.encrypt(b"same", key)

        assert first.iv != second.iv
        assert first.ciphertext != second.ciphertext

    def test_wrong_pin(self, encryption):
        """Test a blob sealed with one PIN cannot be opened with another."""
        blob = encryption.encrypt_string("seed words", encryption.derive_key("correct123"))

        with pytest.raises(DecryptionError, match="Invalid password or corrupted data"):
            encryption.decrypt_string(blob, encryption.derive_key("wrong"))

    def test_tampered_ciphertext(self, encryption):
        key = encryption.derive_key("correct123")
        blob = encryption.encrypt(b"secret data", key)
        tampered = EncryptedBlob(
            ciphertext=bytes([blob.ciphertext[0] ^ 0x01]) + blob.ciphertext[1:],
            iv=blob.iv,
        )

        with pytest.raises(DecryptionError):
            encryption.decrypt(tampered, key)

    def test_tampered_iv(self, encryption):
        key = encryption.derive_key("correct123")
        blob = encryption.encrypt(b"secret data", key)

        with pytest.raises(DecryptionError):
            encryption.decrypt(EncryptedBlob(blob.ciphertext, b"\x00" * 12), key)

        with pytest.raises(DecryptionError):
            encryption.decrypt(EncryptedBlob(blob.ciphertext, blob.iv[:8]), key)

    def test_truncated_ciphertext(self, encryption):
        key = encryption.derive_key("correct123")
        with pytest.raises(DecryptionError):
            encryption.decrypt(EncryptedBlob(b"short", b"\x00" * 12), key)

    def test_empty_plaintext(self, encryption):
        key = encryption.derive_key("correct123")
        assert encryption.decrypt(encryption.encrypt(b"", key), key) == b""

    def test_dict_round_trip(self, encryption):
        key = encryption.derive_key("correct123")
        blob = encryption.encrypt_dict({"mnemonic": "abandon about"}, key)
        assert encryption.decrypt_dict(blob, key) == {"mnemonic": "abandon about"}


class TestEncryptedBlob:
    """Test EncryptedBlob serialization."""

    def test_to_dict(self):
        blob = EncryptedBlob(ciphertext=b"\x01\x02", iv=b"\x03" * 12, timestamp=42)

        assert blob.to_dict() == {"data": "0102", "iv": "03" * 12, "timestamp": 42}

    def test_from_dict_hex(self):
        blob = EncryptedBlob.from_dict({"data": "0102", "iv": "03" * 12, "timestamp": 42})

        assert blob.ciphertext == b"\x01\x02"
        assert blob.iv == b"\x03" * 12
        assert blob.timestamp == 42

    def test_from_dict_byte_lists(self):
        """Test records that store bytes as integer arrays."""
        blob = EncryptedBlob.from_dict({"data": [1, 2], "iv": [3] * 12, "timestamp": 1})

        assert blob.ciphertext == b"\x01\x02"
        assert blob.iv == b"\x03" * 12

    def test_round_trip_through_dict(self, encryption):
        key = encryption.derive_key("correct123")
        blob = encryption.encrypt(b"secret", key)

        assert encryption.decrypt(EncryptedBlob.from_dict(blob.to_dict()), key) == b"secret"

    @pytest.mark.parametrize(
        "data",
        [{}, {"data": "zz", "iv": "00"}, {"data": "00"}, {"data": None, "iv": "00"}],
    )
    def test_malformed(self, data):
        with pytest.raises(DecryptionError):
            EncryptedBlob.from_dict(data)
