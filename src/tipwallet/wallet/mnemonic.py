"""
Sub-wallet seed derivation by mnemonic mutation.

A sub-wallet is derived from a 12-word BIP-39 master phrase without HD
paths: word #11 is advanced ``index`` positions through the wordlist and
word #12 is recomputed as the first wordlist entry that makes the phrase
checksum-valid. Index 0 is the master phrase itself.

Everything here is pure and CPU-bound.
"""

import hashlib
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from mnemonic import Mnemonic

from ..constants import (
    BIP39_WORDLIST_SIZE,
    CHECKSUM_WORD_POSITION,
    MAX_SUB_WALLETS,
    MUTATED_WORD_POSITION,
    SEED_PHRASE_WORD_COUNT,
)
from ..errors import IndexOutOfRangeError, InvalidSeedError

logger = logging.getLogger(__name__)


def normalize_seed_phrase(phrase: str) -> str:
    """Lowercase, trim and collapse whitespace."""
    return " ".join(phrase.strip().lower().split())


@dataclass(frozen=True)
class DerivationInfo:
    """How a sub-wallet phrase differs from its master."""

    index: int
    original_word_11: str
    derived_word_11: str
    original_word_12: str
    derived_word_12: str
    derived_phrase: str
    is_valid: bool


class MnemonicDeriver:
    """Validates phrases and derives sub-wallet phrases from a master phrase."""

    def __init__(self, language: str = "english", max_sub_wallets: int = MAX_SUB_WALLETS):
        self._mnemo = Mnemonic(language)
        self.wordlist: List[str] = list(self._mnemo.wordlist)
        if len(self.wordlist) != BIP39_WORDLIST_SIZE:
            raise ValueError(f"Wordlist must contain exactly {BIP39_WORDLIST_SIZE} words")
        self._index = {word: i for i, word in enumerate(self.wordlist)}
        self.max_sub_wallets = max_sub_wallets

    # Word helpers

    def get_word_index(self, word: str) -> int:
        """Position of ``word`` in the wordlist, or -1."""
        return self._index.get(word.strip().lower(), -1)

    def get_word_at_index(self, index: int) -> str:
        if not 0 <= index < BIP39_WORDLIST_SIZE:
            raise IndexError(f"Word index {index} out of range")
        return self.wordlist[index]

    def increment_word(self, word: str, offset: int) -> str:
        """Advance ``word`` by ``offset`` positions, wrapping at the list end."""
        position = self.get_word_index(word)
        if position < 0:
            raise InvalidSeedError(f"Word not in wordlist: {word!r}")
        return self.wordlist[(position + offset) % BIP39_WORDLIST_SIZE]

    def is_valid_sub_wallet_index(self, index: object) -> bool:
        return (
            isinstance(index, int)
            and not isinstance(index, bool)
            and 0 <= index < self.max_sub_wallets
        )

    # Validation

    def validate_seed_phrase(self, phrase: str) -> bool:
        """True for a checksum-valid 12-word phrase."""
        if not isinstance(phrase, str):
            return False
        words = normalize_seed_phrase(phrase).split(" ")
        if len(words) != SEED_PHRASE_WORD_COUNT:
            return False
        if any(word not in self._index for word in words):
            return False
        return self._checksum_ok([self._index[w] for w in words])

    def _checksum_ok(self, indices: Sequence[int]) -> bool:
        bits = 0
        for i in indices:
            bits = (bits << 11) | i
        entropy = (bits >> 4).to_bytes(16, "big")
        return hashlib.sha256(entropy).digest()[0] >> 4 == bits & 0xF

    def _require_valid(self, phrase: str) -> List[str]:
        normalized = normalize_seed_phrase(phrase) if isinstance(phrase, str) else ""
        words = normalized.split(" ") if normalized else []
        if len(words) != SEED_PHRASE_WORD_COUNT:
            raise InvalidSeedError(
                f"Seed phrase must have {SEED_PHRASE_WORD_COUNT} words, got {len(words)}"
            )
        if not self.validate_seed_phrase(normalized):
            raise InvalidSeedError("Seed phrase has unknown words or a bad checksum")
        return words

    # Derivation

    def calculate_checksum_word(self, first_words: Sequence[str]) -> str:
        """First wordlist entry that completes ``first_words`` to a valid phrase."""
        if len(first_words) != SEED_PHRASE_WORD_COUNT - 1:
            raise InvalidSeedError(
                f"Need {SEED_PHRASE_WORD_COUNT - 1} words to compute a checksum word"
            )

        prefix = 0
        for word in first_words:
            position = self.get_word_index(word)
            if position < 0:
                raise InvalidSeedError(f"Word not in wordlist: {word!r}")
            prefix = (prefix << 11) | position

        for candidate in range(BIP39_WORDLIST_SIZE):
            bits = (prefix << 11) | candidate
            entropy = (bits >> 4).to_bytes(16, "big")
            if hashlib.sha256(entropy).digest()[0] >> 4 == bits & 0xF:
                return self.wordlist[candidate]

        # Unreachable: every 7-bit entropy tail has exactly one checksum.
        raise InvalidSeedError("No checksum word completes this phrase")

    def derive_sub_wallet_seed(self, master_phrase: str, index: int) -> str:
        """Phrase for sub-wallet ``index`` of ``master_phrase``.

        Raises:
            IndexOutOfRangeError: index outside [0, max_sub_wallets).
            InvalidSeedError: master phrase is not a valid 12-word mnemonic.
        """
        if not self.is_valid_sub_wallet_index(index):
            raise IndexOutOfRangeError(index, self.max_sub_wallets)

        words = self._require_valid(master_phrase)

        if index == 0:
            return " ".join(words)

        derived = list(words[:MUTATED_WORD_POSITION])
        derived.append(self.increment_word(words[MUTATED_WORD_POSITION], index))
        derived.append(self.calculate_checksum_word(derived))
        return " ".join(derived)

    def derive_sub_wallet_seeds(
        self, master_phrase: str, indices: Optional[Iterable[int]] = None
    ) -> Dict[int, str]:
        """Derive several indices, dropping any whose phrase repeats an earlier one.

        Indices are processed in ascending order so the lower index keeps a
        colliding phrase.
        """
        if indices is None:
            indices = range(self.max_sub_wallets)

        seen: Dict[str, int] = {}
        result: Dict[int, str] = {}
        for index in sorted(set(indices)):
            phrase = self.derive_sub_wallet_seed(master_phrase, index)
            if phrase in seen:
                logger.warning(
                    f"Sub-wallet {index} collides with sub-wallet {seen[phrase]}, skipping"
                )
                continue
            seen[phrase] = index
            result[index] = phrase
        return result

    def colliding_index(self, master_phrase: str, index: int, existing: Iterable[int]) -> Optional[int]:
        """Existing index whose derived phrase equals that of ``index``, if any."""
        phrase = self.derive_sub_wallet_seed(master_phrase, index)
        for other in existing:
            if other != index and self.derive_sub_wallet_seed(master_phrase, other) == phrase:
                return other
        return None

    def get_derivation_info(self, master_phrase: str, index: int) -> DerivationInfo:
        words = self._require_valid(master_phrase)
        derived = self.derive_sub_wallet_seed(master_phrase, index).split(" ")
        return DerivationInfo(
            index=index,
            original_word_11=words[MUTATED_WORD_POSITION],
            derived_word_11=derived[MUTATED_WORD_POSITION],
            original_word_12=words[CHECKSUM_WORD_POSITION],
            derived_word_12=derived[CHECKSUM_WORD_POSITION],
            derived_phrase=" ".join(derived),
            is_valid=self.validate_seed_phrase(" ".join(derived)),
        )

    # Index bookkeeping

    def get_next_available_index(self, used: Iterable[int]) -> Optional[int]:
        """Lowest free index, or None when all are taken."""
        taken = set(used)
        for index in range(self.max_sub_wallets):
            if index not in taken:
                return index
        return None

    def can_derive_sub_wallets(self, used: Iterable[int]) -> bool:
        return self.get_next_available_index(used) is not None

    # Seed material

    def generate_seed_phrase(self) -> str:
        """New random 12-word phrase (128 bits of entropy)."""
        return self._mnemo.generate(strength=128)

    def seed_fingerprint(self, phrase: str) -> str:
        """Stable identifier of the phrase's key material, as hex.

        SHA-256 over the first 32 bytes of the BIP-39 seed, truncated to 16
        bytes. Equal for phrases differing only in case or whitespace.
        """
        seed = Mnemonic.to_seed(normalize_seed_phrase(phrase), passphrase="")
        return hashlib.sha256(seed[:32]).digest()[:16].hex()


_default_deriver: Optional[MnemonicDeriver] = None


def get_default_deriver() -> MnemonicDeriver:
    global _default_deriver
    if _default_deriver is None:
        _default_deriver = MnemonicDeriver()
    return _default_deriver


def validate_seed_phrase(phrase: str) -> bool:
    return get_default_deriver().validate_seed_phrase(phrase)


def derive_sub_wallet_seed(master_phrase: str, index: int) -> str:
    return get_default_deriver().derive_sub_wallet_seed(master_phrase, index)


def calculate_checksum_word(first_words: Sequence[str]) -> str:
    return get_default_deriver().calculate_checksum_word(first_words)


def generate_seed_phrase() -> str:
    return get_default_deriver().generate_seed_phrase()


def seed_fingerprint(phrase: str) -> str:
    return get_default_deriver().seed_fingerprint(phrase)
