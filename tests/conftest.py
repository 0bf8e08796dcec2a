"""Shared fixtures for tipwallet tests."""

import pytest

from tipwallet.config import WalletConfig
from tipwallet.storage import InMemoryKeyValueStore
from tipwallet.testing import InMemoryPaymentEngine
from tipwallet.wallet import CredentialStore, MnemonicDeriver, WalletRegistry

# Key stretching is deliberately slow; tests use a cheap iteration count.
TEST_ITERATIONS = 1000

PIN = "correct123"
WRONG_PIN = "wrong"

MASTER_PHRASE = " ".join(["abandon"] * 11 + ["about"])
ZOO_PHRASE = " ".join(["zoo"] * 11 + ["wrong"])
LETTER_PHRASE = (
    "letter advice cage absurd amount doctor acoustic avoid letter advice cage above"
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def deriver():
    return MnemonicDeriver()


@pytest.fixture
def backend():
    return InMemoryKeyValueStore()


@pytest.fixture
def store(backend):
    return CredentialStore.with_iterations(TEST_ITERATIONS, backend)


@pytest.fixture
def registry(store, deriver):
    return WalletRegistry(store, deriver)


@pytest.fixture
def engine():
    return InMemoryPaymentEngine()


@pytest.fixture
def config():
    return WalletConfig(
        auto_lock_timeout=60.0,
        connect_timeout=1.0,
        discovery_connect_timeout=0.5,
        discovery_balance_timeout=0.5,
        payment_timeout=1.0,
        kdf_iterations=TEST_ITERATIONS,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def pin():
    return PIN


@pytest.fixture
def master_phrase():
    return MASTER_PHRASE


@pytest.fixture
def letter_phrase():
    return LETTER_PHRASE


@pytest.fixture
def zoo_phrase():
    return ZOO_PHRASE
