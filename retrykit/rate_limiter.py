"""Token bucket rate limiter with lazy refill and optional jitter."""

from __future__ import annotations

import math
import random

import structlog

from . import delay
from .policy import JitterMode, RateLimitOptions

logger = structlog.get_logger(__name__)


class RateLimiter:
    """Token bucket pacing attempts, optionally shared between invocations.

    The bucket starts full and holds at most ``tokens_per_interval`` tokens.
    Refill happens lazily on every :meth:`acquire`: each whole interval that
    passed adds a full bucket, and the refill timestamp moves forward by
    exactly those intervals so partial intervals keep counting.

    Concurrent callers are not queued. Each one computes its own wait from
    the state it observed, so under contention more than
    ``tokens_per_interval`` callers may get through in one interval and the
    balance may dip below zero until the next refill.

    Example:
        >>> limiter = RateLimiter(tokens_per_interval=5, interval_ms=1000)
        >>> await limiter.acquire()
    """

    def __init__(
        self,
        tokens_per_interval: int,
        interval_ms: float,
        *,
        jitter_mode: JitterMode = JitterMode.NONE,
    ) -> None:
        if tokens_per_interval <= 0:
            raise ValueError("tokens_per_interval must be positive")
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")

        self.capacity = tokens_per_interval
        self.interval_ms = interval_ms
        self.jitter_mode = JitterMode(jitter_mode)

        self._tokens: float = float(tokens_per_interval)
        self._last_refill = delay.now_ms()

    @classmethod
    def from_options(cls, options: RateLimitOptions) -> "RateLimiter":
        return cls(
            options.tokens_per_interval,
            options.interval_ms,
            jitter_mode=options.jitter_mode,
        )

    @property
    def available_tokens(self) -> float:
        """Current balance after a refill; may be negative transiently."""
        self._refill()
        return self._tokens

    async def acquire(self) -> None:
        """Take one token, sleeping until the next refill if none is left."""
        self._refill()
        if self._tokens > 0:
            self._tokens -= 1
            return

        wait_ms = self.compute_delay(self.interval_ms - (delay.now_ms() - self._last_refill))
        logger.debug(
            "rate_limiter_wait",
            wait_ms=wait_ms,
            tokens=self._tokens,
            jitter_mode=self.jitter_mode.value,
        )
        await delay.sleep_ms(wait_ms)
        self._refill()
        # Unconditional: a short jittered wait can leave the balance at or
        # below zero, the debt is repaid by the next refill.
        self._tokens -= 1

    def compute_delay(self, base_delay_ms: float) -> float:
        """Apply the configured jitter to ``base_delay_ms``."""
        base_delay_ms = max(0.0, base_delay_ms)
        if self.jitter_mode is JitterMode.FULL:
            return random.random() * base_delay_ms
        if self.jitter_mode is JitterMode.EQUAL:
            return base_delay_ms * (0.5 + random.random() * 0.5)
        return base_delay_ms

    def _refill(self) -> None:
        now = delay.now_ms()
        intervals = math.floor((now - self._last_refill) / self.interval_ms)
        if intervals > 0:
            self._tokens = min(float(self.capacity), self._tokens + intervals * self.capacity)
            self._last_refill += intervals * self.interval_ms
