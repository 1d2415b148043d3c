from __future__ import annotations

from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Protocol, TypeVar, Union, runtime_checkable

if TYPE_CHECKING:
    from .cancellation import CancellationSignal
    from .policy import DelayContext

T = TypeVar("T")

MaybeAwaitable = Union[T, Awaitable[T]]

Operation = Callable[["CancellationSignal"], Awaitable[T]]
DelayFn = Callable[[int], Awaitable[None]]
RetryIf = Callable[[BaseException, int], MaybeAwaitable[bool]]
RetryOnResult = Callable[[Any, int], MaybeAwaitable[bool]]
NextDelayOverride = Callable[["DelayContext"], MaybeAwaitable[float]]
OnRetry = Callable[[Exception, int], Any]
OnGiveUp = Callable[[BaseException, int], Any]


class RateLimiterLike(Protocol):
    """Interface for anything that paces attempts."""

    async def acquire(self) -> None:
        """Resolve once a permit is available."""


@runtime_checkable
class HeaderLookup(Protocol):
    """Header container exposing a ``get`` accessor (httpx, aiohttp, requests)."""

    def get(self, key: str) -> Optional[Any]:
        """Return the header value or ``None``."""
