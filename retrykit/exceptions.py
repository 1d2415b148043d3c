from __future__ import annotations

from typing import Any, Mapping, Optional


class RetryError(Exception):
    """Base exception for errors raised by the retry engine itself."""


class RetryBudgetExceededError(RetryError):
    """Raised when no attempt or wait fits into ``max_elapsed_ms``."""

    name = "RetryMaxElapsedTimeExceeded"

    def __init__(self, message: str = "Retry maxElapsedTime exceeded") -> None:
        super().__init__(message)


class RetryAbortedError(RetryError):
    """Raised when a cancellation source fires before or during an attempt."""

    def __init__(self, message: str = "Operation aborted", *, reason: Any = None) -> None:
        super().__init__(message)
        self.reason = reason


class AttemptTimeoutError(RetryAbortedError):
    """Raised when the per-attempt timeout cancelled the running attempt."""

    def __init__(self, timeout_ms: float) -> None:
        super().__init__(f"Operation aborted after {timeout_ms:g}ms attempt timeout", reason="timeout")
        self.timeout_ms = timeout_ms


class RetryConfigurationError(RetryError):
    """Raised when the policy asks for something the runtime cannot provide."""


class APIError(Exception):
    """Base exception for API related errors.

    Carries the fields :func:`retrykit.http_hints.extract_retry_after_ms`
    looks for, so operations can surface server hints without wrapping a
    client-specific response object.
    """

    def __init__(
        self,
        message: str = "",
        *,
        status: Optional[int] = None,
        headers: Optional[Mapping[str, Any]] = None,
        retry_after_ms: Optional[float] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.headers = dict(headers) if headers is not None else None
        self.retry_after_ms = retry_after_ms


class RateLimitError(APIError):
    """Raised when the API rate limit is exceeded."""

    def __init__(self, message: str = "Rate limit exceeded", **kwargs: Any) -> None:
        kwargs.setdefault("status", 429)
        super().__init__(message, **kwargs)


class ServiceUnavailableError(APIError):
    """Raised when the upstream service is temporarily unavailable."""

    def __init__(self, message: str = "Service unavailable", **kwargs: Any) -> None:
        kwargs.setdefault("status", 503)
        super().__init__(message, **kwargs)
