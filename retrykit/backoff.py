"""Base delay functions for constant, linear and exponential backoff."""

from __future__ import annotations

import random
from enum import Enum
from typing import Callable, Optional, Union

from . import delay
from .interfaces import DelayFn


class BackoffStrategy(str, Enum):
    """Built-in delay curves."""
    CONSTANT = "constant"  # base, base, base
    LINEAR = "linear"  # base * attempt
    EXPONENTIAL = "exponential"  # base * 2 ** (attempt - 1)


StrategyLike = Union[BackoffStrategy, str, Callable[[int], float]]


def compute_backoff_ms(
    strategy: StrategyLike,
    attempt: int,
    base_delay_ms: float = 1000.0,
    *,
    max_delay_ms: Optional[float] = None,
    jitter: bool = False,
) -> float:
    """Delay in ms before retry number ``attempt`` (1-based)."""
    if callable(strategy):
        delay_ms = float(strategy(attempt))
    else:
        kind = BackoffStrategy(strategy)
        if kind is BackoffStrategy.LINEAR:
            delay_ms = base_delay_ms * attempt
        elif kind is BackoffStrategy.EXPONENTIAL:
            delay_ms = base_delay_ms * (2 ** (attempt - 1))
        else:
            delay_ms = base_delay_ms

    if max_delay_ms is not None:
        delay_ms = min(delay_ms, max_delay_ms)

    if jitter:
        # +/-25% spread
        jitter_range = delay_ms * 0.25
        delay_ms += random.uniform(-jitter_range, jitter_range)

    return max(0.0, delay_ms)


def create_backoff_delay_fn(
    strategy: StrategyLike = BackoffStrategy.EXPONENTIAL,
    base_delay_ms: float = 1000.0,
    *,
    max_delay_ms: Optional[float] = None,
    jitter: bool = False,
) -> DelayFn:
    """Build a ``delay_fn`` for :class:`~retrykit.policy.RetryPolicy`.

    Example:
        >>> policy = RetryPolicy(delay_fn=create_backoff_delay_fn("linear", 500))
    """
    if not callable(strategy):
        BackoffStrategy(strategy)

    async def delay_fn(attempt: int) -> None:
        await delay.sleep_ms(
            compute_backoff_ms(
                strategy,
                attempt,
                base_delay_ms,
                max_delay_ms=max_delay_ms,
                jitter=jitter,
            )
        )

    return delay_fn
