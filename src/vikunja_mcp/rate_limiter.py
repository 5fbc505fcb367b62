"""Async token bucket limiting the request rate towards the Vikunja API.

Every HTTP request made by the client awaits one token. The clock is read through
the module-level ``time`` import so tests can substitute it.
"""

import asyncio
import time


class InvalidRPMError(ValueError):
    """RPM must be positive."""


class InvalidBurstError(ValueError):
    """Burst must be positive."""


class TokenBucketLimiter:
    """Token bucket: bursts up to ``burst`` requests, then ``rpm`` per minute.

    Args:
        rpm: Requests per minute (must be positive)
        burst: Bucket capacity (must be positive)

    Raises:
        InvalidRPMError: If rpm is not positive
        InvalidBurstError: If burst is not positive
    """

    def __init__(self, rpm: int, burst: int) -> None:
        if rpm <= 0:
            raise InvalidRPMError
        if burst <= 0:
            raise InvalidBurstError

        self._rpm = rpm
        self._burst = burst
        self._tokens = float(burst)
        self._refill_rate = rpm / 60.0  # tokens per second
        self._last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Take one token, sleeping until one is available.

        Waiters are served one at a time under the lock; each sleeps only for the
        fraction of a token that is still missing.
        """
        async with self._lock:
            while not self.try_acquire():
                missing = 1.0 - self._tokens
                await asyncio.sleep(missing / self._refill_rate)

    def try_acquire(self) -> bool:
        """Take one token if available, without waiting.

        Returns:
            bool: True if a token was taken, False if the bucket is empty
        """
        self._refill()
        if self._tokens >= 1.0:
            self._tokens -= 1.0
            return True
        return False

    def _refill(self) -> None:
        """Add the tokens earned since the last refill, capped at the burst size."""
        now = time.monotonic()
        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(float(self._burst), self._tokens + elapsed * self._refill_rate)
            self._last_refill = now

    @property
    def current_tokens(self) -> float:
        """Currently available tokens, after refilling.

        Returns:
            float: Fractional token count in [0, burst]
        """
        self._refill()
        return self._tokens

    @property
    def rpm(self) -> int:
        """Configured requests per minute."""
        return self._rpm

    @property
    def burst(self) -> int:
        """Configured bucket capacity."""
        return self._burst

    def __repr__(self) -> str:
        return (
            f"TokenBucketLimiter(rpm={self._rpm}, burst={self._burst}, tokens={self._tokens:.2f})"
        )
