"""Configuration for tipwallet components."""

import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional

from .constants import KDF_ITERATIONS, MAX_SUB_WALLETS
from .errors import RetryPolicy

NETWORKS = ("mainnet", "testnet", "regtest")


@dataclass
class WalletConfig:
    """Runtime configuration shared by the session, discovery and payments.

    Timeouts are in seconds. ``auto_lock_timeout`` of 0 disables auto-lock.
    """

    network: str = "mainnet"
    api_key: Optional[str] = None
    storage_dir: Optional[str] = None
    auto_lock_timeout: float = 900.0
    auto_lock_check_interval: float = 30.0
    connect_timeout: float = 30.0
    discovery_connect_timeout: float = 15.0
    discovery_balance_timeout: float = 5.0
    stop_after_empty_count: int = 3
    max_index_to_scan: int = MAX_SUB_WALLETS
    payment_timeout: float = 30.0
    max_payment_retries: int = 3
    retry_delays: List[float] = field(default_factory=lambda: [1.0, 3.0, 5.0])
    kdf_iterations: int = KDF_ITERATIONS
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate configuration."""
        if self.network not in NETWORKS:
            raise ValueError(f"Network must be one of {', '.join(NETWORKS)}")

        if self.auto_lock_timeout < 0:
            raise ValueError("Auto-lock timeout cannot be negative")

        if self.auto_lock_check_interval <= 0:
            raise ValueError("Auto-lock check interval must be positive")

        for name in (
            "connect_timeout",
            "discovery_connect_timeout",
            "discovery_balance_timeout",
            "payment_timeout",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")

        if self.stop_after_empty_count < 1:
            raise ValueError("stop_after_empty_count must be at least 1")

        if not 1 <= self.max_index_to_scan <= MAX_SUB_WALLETS:
            raise ValueError(f"max_index_to_scan must be between 1 and {MAX_SUB_WALLETS}")

        if self.max_payment_retries < 0:
            raise ValueError("max_payment_retries cannot be negative")

        if any(delay < 0 for delay in self.retry_delays):
            raise ValueError("Retry delays cannot be negative")

        if self.kdf_iterations <= 0:
            raise ValueError("Iterations must be positive")

    @property
    def auto_lock_enabled(self) -> bool:
        return self.auto_lock_timeout > 0

    def retry_policy(self) -> RetryPolicy:
        """Retry policy for payment preparation."""
        return RetryPolicy(
            max_retries=self.max_payment_retries,
            delays=list(self.retry_delays),
            max_delay=max(self.retry_delays) if self.retry_delays else 0.0,
            base_delay=self.retry_delays[0] if self.retry_delays else 0.0,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary. The API key is never included."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["api_key"] = None
        data["retry_delays"] = list(self.retry_delays)
        data["metadata"] = dict(self.metadata)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WalletConfig":
        """Create config from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_env(
        cls, prefix: str = "TIPWALLET_", environ: Optional[Mapping[str, str]] = None
    ) -> "WalletConfig":
        """Build a config from ``<PREFIX><FIELD>`` environment variables."""
        environ = os.environ if environ is None else environ
        values: Dict[str, Any] = {}

        for f in fields(cls):
            raw = environ.get(prefix + f.name.upper())
            if raw is None or f.name == "metadata":
                continue

            if f.name == "retry_delays":
                values[f.name] = [float(x) for x in raw.split(",") if x.strip()]
            elif f.type in (int, "int"):
                values[f.name] = int(raw)
            elif f.type in (float, "float"):
                values[f.name] = float(raw)
            else:
                values[f.name] = raw

        return cls(**values)
