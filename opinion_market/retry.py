"""Retry policy for store operations.

Exponential backoff (base, 2x base, 4x base ... capped) with optional
uniform jitter, built on tenacity. The policy is an object so callers can
inject a deterministic one in tests.
"""

import logging
import random
import time
from typing import Callable, Optional, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from opinion_market.config import settings
from opinion_market.errors import MarketError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable(exc: BaseException) -> bool:
    """Conflicts and store outages are retryable; business rules are not."""
    return isinstance(exc, MarketError) and exc.retryable


class RetryPolicy:
    def __init__(
        self,
        max_attempts: int = 4,
        base_delay: float = 1.0,
        max_delay: float = 8.0,
        jitter: float = 0.0,
        duplicate_jitter: float = 0.0,
        timeout: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self.duplicate_jitter = duplicate_jitter
        self.timeout = timeout
        self.sleep = sleep
        self._rng = rng or random.Random()
        self._backoff = wait_exponential(multiplier=base_delay, max=max_delay)

    @classmethod
    def from_settings(cls, always_jitter: bool = False, **overrides) -> "RetryPolicy":
        """Ledger policy (jitter only on duplicate-key races) or activity policy."""
        kwargs = dict(
            max_attempts=settings.RETRY_MAX_ATTEMPTS,
            base_delay=settings.RETRY_BASE_DELAY,
            max_delay=settings.RETRY_MAX_DELAY,
            jitter=settings.RETRY_JITTER if always_jitter else 0.0,
            duplicate_jitter=settings.RETRY_JITTER,
            timeout=settings.SETTLEMENT_TIMEOUT_SECONDS,
        )
        kwargs.update(overrides)
        return cls(**kwargs)

    @classmethod
    def immediate(cls, max_attempts: int = 4) -> "RetryPolicy":
        """Zero-delay, jitter-free policy."""
        return cls(max_attempts=max_attempts, base_delay=0.0, max_delay=0.0, sleep=lambda _: None)

    def compute_delay(self, retry_state: RetryCallState) -> float:
        delay = self._backoff(retry_state) if self.base_delay > 0 else 0.0
        if self.jitter:
            delay += self._rng.uniform(0, self.jitter)
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if self.duplicate_jitter and getattr(exc, "duplicate_key", False):
            # Desynchronize retriers racing on the same key.
            delay += self._rng.uniform(0, self.duplicate_jitter)
        return delay

    def run(
        self,
        operation: Callable[[], T],
        name: str = "operation",
        retry_on: Callable[[BaseException], bool] = is_retryable,
    ) -> T:
        """Run `operation`, retrying failures `retry_on` accepts.

        The last error is re-raised once attempts (or the timeout) run out.
        """
        stop = stop_after_attempt(self.max_attempts)
        if self.timeout is not None:
            stop = stop | stop_after_delay(self.timeout)

        def _log_retry(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception()
            logger.warning(
                f"{name} failed on attempt {retry_state.attempt_number}/{self.max_attempts} "
                f"({type(exc).__name__}: {exc}), retrying in {retry_state.next_action.sleep:.2f}s"
            )

        retrying = Retrying(
            stop=stop,
            wait=self.compute_delay,
            retry=retry_if_exception(retry_on),
            sleep=self.sleep,
            before_sleep=_log_retry,
            reraise=True,
        )
        return retrying(operation)
