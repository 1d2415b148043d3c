"""Retry async operations with budgets, rate limiting and server hints."""

from .backoff import BackoffStrategy, compute_backoff_ms, create_backoff_delay_fn
from .cancellation import CancellationController, CancellationSignal, merge_signals, timeout_signal
from .exceptions import (
    APIError,
    AttemptTimeoutError,
    RateLimitError,
    RetryAbortedError,
    RetryBudgetExceededError,
    RetryConfigurationError,
    RetryError,
    ServiceUnavailableError,
)
from .http_hints import extract_retry_after_ms
from .policy import DelayContext, JitterMode, RateLimitOptions, RetryOutcome, RetryPolicy
from .rate_limiter import RateLimiter
from .retry import RetryEngine, RetryRun, retry, with_retry

__all__ = [
    "BackoffStrategy",
    "compute_backoff_ms",
    "create_backoff_delay_fn",
    "CancellationController",
    "CancellationSignal",
    "merge_signals",
    "timeout_signal",
    "APIError",
    "AttemptTimeoutError",
    "RateLimitError",
    "RetryAbortedError",
    "RetryBudgetExceededError",
    "RetryConfigurationError",
    "RetryError",
    "ServiceUnavailableError",
    "extract_retry_after_ms",
    "DelayContext",
    "JitterMode",
    "RateLimitOptions",
    "RetryOutcome",
    "RetryPolicy",
    "RateLimiter",
    "RetryEngine",
    "RetryRun",
    "retry",
    "with_retry",
]
