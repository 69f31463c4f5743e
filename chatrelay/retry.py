"""
Retry executor with linear backoff for transient provider failures.

Wraps a single provider call (unary, or the opening of a stream):
- Overloaded (503 / UNAVAILABLE / "overloaded"): retried
- Rate limited (429 / "quota"): retried, honouring "retry in Ns" hints

Anything else is fatal and propagates on the first failure. Attempts are
strictly sequential.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from chatrelay.config import (
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_MAX_DELAY_MS,
    DEFAULT_MAX_RETRIES,
    retry_settings,
)
from chatrelay.errors import ErrorKind, classify_error, retry_after_ms

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExecutor:
    """Runs a zero-argument async operation with bounded retries."""

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_RETRIES,
        base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
        max_delay_ms: int = DEFAULT_MAX_DELAY_MS,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms

    @classmethod
    def from_config(cls, cfg: dict) -> "RetryExecutor":
        max_retries, base, cap = retry_settings(cfg)
        return cls(max_attempts=max_retries, base_delay_ms=base, max_delay_ms=cap)

    def delay_ms(self, attempt: int, kind: ErrorKind, message: str = "") -> int:
        """Wait before the next try, `attempt` being the number of failures so far."""
        delay = attempt * self.base_delay_ms
        if kind is ErrorKind.RATE_LIMITED:
            hinted = retry_after_ms(message, self.max_delay_ms)
            if hinted is not None:
                delay = hinted
        return delay

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as e:
                attempt += 1
                kind = classify_error(e)
                logger.error(
                    "Attempt %d failed (%s, status=%s): %s",
                    attempt,
                    kind.value,
                    getattr(e, "status_code", None),
                    e,
                )

                if not kind.transient or attempt >= self.max_attempts:
                    raise

                delay = self.delay_ms(attempt, kind, str(e))
                label = "Rate limited" if kind is ErrorKind.RATE_LIMITED else "Model overloaded"
                logger.warning(
                    "%s. Retrying in %dms (%d/%d)...",
                    label, delay, attempt, self.max_attempts - 1,
                )
                await asyncio.sleep(delay / 1000)
