"""Retry policies for transient payment-engine failures."""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Sequence, TypeVar

from .exceptions import TipWalletError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_MESSAGE_PATTERNS = (
    "network",
    "timeout",
    "timed out",
    "connection",
    "temporary",
    "service unavailable",
    "try again",
    "rate limit",
    "busy",
)

NON_RETRYABLE_MESSAGE_PATTERNS = (
    "insufficient",
    "invalid",
    "unauthorized",
    "forbidden",
    "not found",
    "malformed",
    "expired",
    "cancelled",
)


def is_retryable_error(error: BaseException) -> bool:
    """Decide whether an error is worth retrying.

    Package errors carry their own flag. Anything else is classified from
    its message; non-retryable patterns win over retryable ones and unknown
    messages are not retried.
    """
    if isinstance(error, TipWalletError):
        return error.retryable

    if isinstance(error, (asyncio.TimeoutError, ConnectionError)):
        return True

    message = str(error).lower()
    if any(pattern in message for pattern in NON_RETRYABLE_MESSAGE_PATTERNS):
        return False
    return any(pattern in message for pattern in RETRYABLE_MESSAGE_PATTERNS)


@dataclass
class RetryPolicy:
    """Retry policy configuration.

    ``delays`` overrides the exponential schedule when given; attempt ``n``
    (1-based) waits ``delays[min(n, len(delays)) - 1]`` seconds.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 5.0
    exponential_base: float = 2.0
    jitter: bool = False
    delays: List[float] = field(default_factory=list)

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("Delays cannot be negative")

    def get_delay(self, attempt: int) -> float:
        """Get delay before the given retry attempt (1-based)."""
        if attempt <= 0:
            return 0.0

        if self.delays:
            delay = self.delays[min(attempt, len(self.delays)) - 1]
        else:
            delay = self.base_delay * (self.exponential_base ** (attempt - 1))

        delay = min(delay, self.max_delay)

        if self.jitter:
            delay *= random.uniform(0.5, 1.5)

        return delay


async def retry_async(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    operation: str = "operation",
    should_retry: Callable[[BaseException], bool] = is_retryable_error,
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
) -> T:
    """Await ``func()`` and retry it on retryable failures.

    The last error is re-raised once ``policy.max_retries`` retries have
    been spent or a non-retryable error is seen.
    """
    sleep = sleep or asyncio.sleep
    attempt = 0

    while True:
        try:
            return await func()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if attempt >= policy.max_retries or not should_retry(e):
                raise
            attempt += 1
            delay = policy.get_delay(attempt)
            logger.warning(
                f"{operation} failed (attempt {attempt}/{policy.max_retries}), "
                f"retrying in {delay:.1f}s: {e}"
            )
            await sleep(delay)
