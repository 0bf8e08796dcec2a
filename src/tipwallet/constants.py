"""Shared limits and well-known values for tipwallet."""

# Registry limits
MAX_MASTER_KEYS = 10
MAX_SUB_WALLETS = 20
MAX_NICKNAME_LENGTH = 30

# BIP-39
BIP39_WORDLIST_SIZE = 2048
SEED_PHRASE_WORD_COUNT = 12
MUTATED_WORD_POSITION = 10  # word #11
CHECKSUM_WORD_POSITION = 11  # word #12

# Key derivation. The salt is shared by every wallet on the device; changing
# it makes previously stored seeds unreadable.
KDF_SALT = b"lightning-tipping-salt"
KDF_ITERATIONS = 100000
KEY_LENGTH = 32
IV_LENGTH = 12

# Persisted schema
SCHEMA_VERSION = 2
STORAGE_KEY = "hierarchicalWalletData"
LEGACY_MULTI_WALLET_KEY = "multiWalletData"
LEGACY_SINGLE_WALLET_KEY = "encryptedWallet"
BACKUP_KEY_PREFIX = "backup_"

MAIN_WALLET_NAME = "Main Wallet"
SUB_WALLET_NAME_TEMPLATE = "Sub-Wallet {index}"
DEFAULT_MASTER_KEY_NAME_TEMPLATE = "Wallet {number}"

# Units
MSATS_PER_SAT = 1000
