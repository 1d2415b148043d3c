"""Retry policy and the small value types shared by the engine."""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, Optional, TypeVar

from .interfaces import (
    DelayFn,
    NextDelayOverride,
    OnGiveUp,
    OnRetry,
    RateLimiterLike,
    RetryIf,
    RetryOnResult,
)

if TYPE_CHECKING:
    from .cancellation import CancellationSignal
    from .config.settings import RetrySettings
    from .monitoring.metrics import RetryMetricsRecorder

T = TypeVar("T")


class JitterMode(str, Enum):
    """How the rate limiter randomizes its waits."""
    NONE = "none"  # exact delay
    FULL = "full"  # uniform in [0, delay)
    EQUAL = "equal"  # uniform in [delay / 2, delay)


class RetryOutcome(Enum):
    """States of one retry invocation."""
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    GAVE_UP = "gave_up"
    ABORTED = "aborted"
    BUDGET_EXCEEDED = "budget_exceeded"

    @property
    def is_terminal(self) -> bool:
        return self is not RetryOutcome.RUNNING


@dataclass(frozen=True)
class RateLimitOptions:
    """Build-time options for a token bucket owned by a single invocation."""
    tokens_per_interval: int
    interval_ms: float
    jitter_mode: JitterMode = JitterMode.NONE


@dataclass(frozen=True)
class DelayContext(Generic[T]):
    """Input handed to ``next_delay_override`` hooks."""
    attempt: int
    suggested_delay_ms: float
    last_error: Optional[BaseException] = None
    last_result: Optional[T] = None


@dataclass
class RetryPolicy(Generic[T]):
    """Everything that controls one retry invocation.

    Attributes:
        max_retries: Retries after the first attempt (0 disables retrying)
        timeout_ms: Per-attempt timeout; a fresh window for every attempt
        signal: External cancellation for the whole invocation
        delay_fn: Base wait before the next attempt, receives the attempt number
        on_retry: Called with ``(error, attempt)`` before each scheduled retry
        rate_limiter: Shared limiter pacing attempts across invocations
        rate_limit: Options for a private limiter; takes precedence over
            ``rate_limiter``
        retry_if: Error filter, return True to retry
        retry_on_result: Result filter, return True to try again
        max_elapsed_ms: Hard cap on total wall time across attempts and waits
        next_delay_override: Hook returning the total intended wait
        on_give_up: Called once with ``(error, attempts)`` when giving up
        metrics: Optional recorder receiving one entry per invocation
    """

    max_retries: int = 3
    timeout_ms: Optional[float] = None
    signal: Optional["CancellationSignal"] = None
    delay_fn: Optional[DelayFn] = None
    on_retry: Optional[OnRetry] = None
    rate_limiter: Optional[RateLimiterLike] = None
    rate_limit: Optional[RateLimitOptions] = None
    retry_if: Optional[RetryIf] = None
    retry_on_result: Optional[RetryOnResult] = None
    max_elapsed_ms: Optional[float] = None
    next_delay_override: Optional[NextDelayOverride] = None
    on_give_up: Optional[OnGiveUp] = None
    metrics: Optional["RetryMetricsRecorder"] = None

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.timeout_ms is not None and self.timeout_ms < 0:
            raise ValueError("timeout_ms must be >= 0")

    def replace(self, **overrides: Any) -> "RetryPolicy[T]":
        """Return a copy with ``overrides`` applied."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        unknown = set(overrides) - set(values)
        if unknown:
            raise TypeError(f"Unknown retry policy fields: {', '.join(sorted(unknown))}")
        values.update(overrides)
        return RetryPolicy(**values)

    @classmethod
    def from_settings(cls, settings: "RetrySettings", **overrides: Any) -> "RetryPolicy[T]":
        """Build a policy from environment driven settings."""
        rate_limit = None
        if settings.rate_limit_tokens_per_interval and settings.rate_limit_interval_ms:
            rate_limit = RateLimitOptions(
                tokens_per_interval=settings.rate_limit_tokens_per_interval,
                interval_ms=settings.rate_limit_interval_ms,
                jitter_mode=JitterMode(settings.rate_limit_jitter_mode),
            )
        policy = cls(
            max_retries=settings.max_retries,
            timeout_ms=settings.timeout_ms,
            max_elapsed_ms=settings.max_elapsed_ms,
            rate_limit=rate_limit,
        )
        return policy.replace(**overrides) if overrides else policy
