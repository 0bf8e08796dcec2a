"""
PIN-based encryption of wallet secrets.

Keys are stretched from the PIN with PBKDF2-HMAC-SHA256 over a fixed
application salt and secrets are sealed with AES-256-GCM under a fresh
96-bit IV per call.
"""

import json
import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..constants import IV_LENGTH, KDF_ITERATIONS, KDF_SALT, KEY_LENGTH
from ..errors import DecryptionError, ValidationError

logger = logging.getLogger(__name__)

TAG_LENGTH = 16


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, str):
        return bytes.fromhex(value)
    return bytes(value)


@dataclass
class EncryptionConfig:
    """Configuration for PIN encryption."""

    iterations: int = KDF_ITERATIONS
    salt: bytes = KDF_SALT
    key_length: int = KEY_LENGTH
    iv_length: int = IV_LENGTH

    def __post_init__(self):
        """Validate configuration."""
        if self.iterations <= 0:
            raise ValueError("Iterations must be positive")

        if not self.salt:
            raise ValueError("Salt cannot be empty")

        if self.key_length != 32:
            raise ValueError("AES-256 requires a 32-byte key")

        if self.iv_length != 12:
            raise ValueError("GCM requires 12-byte IV")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "iterations": self.iterations,
            "salt": self.salt.hex(),
            "key_length": self.key_length,
            "iv_length": self.iv_length,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EncryptionConfig":
        return cls(
            iterations=data.get("iterations", KDF_ITERATIONS),
            salt=bytes.fromhex(data["salt"]) if "salt" in data else KDF_SALT,
            key_length=data.get("key_length", KEY_LENGTH),
            iv_length=data.get("iv_length", IV_LENGTH),
        )


@dataclass
class EncryptedBlob:
    """Ciphertext (with the GCM tag appended), IV and creation time."""

    ciphertext: bytes
    iv: bytes
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": self.ciphertext.hex(),
            "iv": self.iv.hex(),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EncryptedBlob":
        """Accepts hex strings or, as older records store them, lists of byte values."""
        try:
            return cls(
                ciphertext=_to_bytes(data["data"]),
                iv=_to_bytes(data["iv"]),
                timestamp=int(data.get("timestamp", 0)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DecryptionError(f"Malformed encrypted blob: {e}", cause=e)


class SymmetricKey:
    """AES key derived from a PIN. The raw bytes are not printable."""

    __slots__ = ("_key",)

    def __init__(self, key: bytes):
        if len(key) != KEY_LENGTH:
            raise ValueError(f"Key must be {KEY_LENGTH} bytes")
        self._key = bytes(key)

    @property
    def material(self) -> bytes:
        return self._key

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SymmetricKey):
            return NotImplemented
        return secrets.compare_digest(self._key, other._key)

    def __hash__(self) -> int:
        return hash(self._key)

    def __repr__(self) -> str:
        return "SymmetricKey(<hidden>)"


class PinEncryption:
    """Derive keys from PINs and seal or open secrets with them."""

    def __init__(self, config: Optional[EncryptionConfig] = None):
        self.config = config or EncryptionConfig()

    def derive_key(self, pin: str) -> SymmetricKey:
        """Stretch ``pin`` into an AES-256 key. Deterministic for a given PIN."""
        if not pin:
            raise ValidationError("PIN cannot be empty", field="pin")

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=self.config.key_length,
            salt=self.config.salt,
            iterations=self.config.iterations,
            backend=default_backend(),
        )
        return SymmetricKey(kdf.derive(pin.encode("utf-8")))

    def encrypt(self, plaintext: bytes, key: SymmetricKey) -> EncryptedBlob:
        iv = secrets.token_bytes(self.config.iv_length)
        encryptor = Cipher(
            algorithms.AES(key.material), modes.GCM(iv), backend=default_backend()
        ).encryptor()
        ciphertext = encryptor.update(plaintext) + encryptor.finalize()
        return EncryptedBlob(ciphertext=ciphertext + encryptor.tag, iv=iv)

    def decrypt(self, blob: EncryptedBlob, key: SymmetricKey) -> bytes:
        """Open ``blob``.

        Raises:
            DecryptionError: the key is wrong or the blob was modified.
        """
        if len(blob.iv) != self.config.iv_length or len(blob.ciphertext) < TAG_LENGTH:
            raise DecryptionError("Invalid password or corrupted data")

        body, tag = blob.ciphertext[:-TAG_LENGTH], blob.ciphertext[-TAG_LENGTH:]
        try:
            decryptor = Cipher(
                algorithms.AES(key.material),
                modes.GCM(blob.iv, tag),
                backend=default_backend(),
            ).decryptor()
            return decryptor.update(body) + decryptor.finalize()
        except InvalidTag as e:
            raise DecryptionError("Invalid password or corrupted data", cause=e)

    def encrypt_string(self, text: str, key: SymmetricKey) -> EncryptedBlob:
        return self.encrypt(text.encode("utf-8"), key)

    def decrypt_string(self, blob: EncryptedBlob, key: SymmetricKey) -> str:
        try:
            return self.decrypt(blob, key).decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Decrypted data is not text", cause=e)

    def decrypt_dict(self, blob: EncryptedBlob, key: SymmetricKey) -> Dict[str, Any]:
        try:
            return json.loads(self.decrypt_string(blob, key))
        except json.JSONDecodeError as e:
            raise DecryptionError("Decrypted data is not JSON", cause=e)

    def encrypt_dict(self, data: Dict[str, Any], key: SymmetricKey) -> EncryptedBlob:
        return self.encrypt_string(json.dumps(data, sort_keys=True), key)
