"""Base delay plus override handling within an elapsed-time budget."""

from __future__ import annotations

import asyncio
import math
import time
from typing import Any, Optional

import structlog

from .interfaces import DelayFn, NextDelayOverride
from .policy import DelayContext
from .utils import maybe_await

logger = structlog.get_logger(__name__)


def now_ms() -> float:
    """Monotonic clock in milliseconds."""
    return time.monotonic() * 1000.0


async def sleep_ms(ms: float) -> None:
    """Sleep for ``ms`` milliseconds; negative values are treated as 0."""
    await asyncio.sleep(max(0.0, ms) / 1000.0)


def _resolve_target(suggested: Any, waited: float) -> float:
    if isinstance(suggested, bool) or not isinstance(suggested, (int, float)):
        return waited
    if not math.isfinite(suggested):
        return waited
    return max(0.0, float(suggested))


async def run_delay_with_override(
    *,
    attempt: int,
    start_ms: float,
    delay_fn: Optional[DelayFn] = None,
    next_delay_override: Optional[NextDelayOverride] = None,
    max_elapsed_ms: Optional[float] = None,
    last_error: Optional[BaseException] = None,
    last_result: Any = None,
) -> bool:
    """Wait before the next attempt.

    Runs ``delay_fn`` first and measures how long it actually took. That
    measured time is offered to ``next_delay_override`` as the suggested
    delay; whatever the override asks for beyond it is slept separately.

    Args:
        attempt: Number of the attempt that just failed (1-based)
        start_ms: ``now_ms()`` captured when the invocation started
        delay_fn: Base backoff, awaited with the attempt number
        next_delay_override: Hook returning the total intended wait in ms
        max_elapsed_ms: Budget for the whole invocation
        last_error: Error of the failed attempt, if any
        last_result: Rejected result, if any

    Returns:
        True if the wait finished inside the budget, False if the budget
        could not afford it (the caller must stop retrying)
    """

    def has_budget(extra: float = 0.0) -> bool:
        if max_elapsed_ms is None:
            return True
        return (now_ms() - start_ms) + extra < max_elapsed_ms

    if not has_budget():
        return False

    waited = 0.0
    if delay_fn is not None:
        started = now_ms()
        await maybe_await(delay_fn(attempt))
        waited = now_ms() - started

    if next_delay_override is None:
        return has_budget()

    suggested = await maybe_await(
        next_delay_override(
            DelayContext(
                attempt=attempt,
                suggested_delay_ms=waited,
                last_error=last_error,
                last_result=last_result,
            )
        )
    )
    target = _resolve_target(suggested, waited)

    extra = max(0.0, target - waited)
    if extra == 0:
        return has_budget()

    if not has_budget(extra):
        logger.info(
            "delay_override_exceeds_budget",
            attempt=attempt,
            extra_ms=extra,
            max_elapsed_ms=max_elapsed_ms,
        )
        return False

    logger.debug("delay_override_extra_wait", attempt=attempt, waited_ms=waited, extra_ms=extra)
    await sleep_ms(extra)
    return has_budget()
