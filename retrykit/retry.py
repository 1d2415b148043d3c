"""Retry engine: attempts, filters, delays, budget and cancellation."""

from __future__ import annotations

import asyncio
import functools
import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

import structlog

from . import delay
from .cancellation import CancellationController, CancellationSignal, merge_signals, timeout_signal
from .exceptions import (
    AttemptTimeoutError,
    RetryAbortedError,
    RetryBudgetExceededError,
    RetryConfigurationError,
)
from .http_hints import extract_retry_after_ms
from .interfaces import NextDelayOverride, Operation, RateLimiterLike
from .monitoring.telemetry import get_instruments
from .policy import DelayContext, RetryOutcome, RetryPolicy
from .rate_limiter import RateLimiter
from .utils import maybe_await

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class _SignalFired(Exception):
    """The cancellation signal won a race."""

    def __init__(self, cause: Optional[BaseException] = None) -> None:
        super().__init__("signal fired")
        self.cause = cause


def _discard_outcome(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("abandoned_attempt_failed", error=str(exc), error_type=type(exc).__name__)


async def _race_with_signal(awaitable: Awaitable[T], signal: CancellationSignal) -> T:
    """Await ``awaitable`` unless ``signal`` fires first.

    The losing task is cancelled and its eventual outcome consumed, so an
    operation that ignores its signal never leaks an unretrieved exception.

    Raises:
        _SignalFired: If the signal fired before or together with completion
    """
    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.create_task(signal.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except BaseException:
        task.cancel()
        waiter.cancel()
        raise
    waiter.cancel()

    if signal.cancelled:
        cause = None
        if task.done():
            if not task.cancelled():
                cause = task.exception()
        else:
            task.cancel()
            task.add_done_callback(_discard_outcome)
        raise _SignalFired(cause)

    return task.result()


def _with_http_hints(
    override: Optional[NextDelayOverride], error: BaseException
) -> NextDelayOverride:
    """Use the server hint carried by ``error`` as a floor for the wait."""

    async def hinted(ctx: DelayContext) -> float:
        hint = extract_retry_after_ms(error)
        inner = ctx.suggested_delay_ms
        if override is not None:
            value = await maybe_await(override(ctx))
            if (
                isinstance(value, (int, float))
                and not isinstance(value, bool)
                and math.isfinite(value)
            ):
                inner = value
        if hint is not None:
            return max(hint, inner)
        return inner

    return hinted


@dataclass
class RetryRun:
    """Bookkeeping for one :meth:`RetryEngine.execute` call."""

    start_ms: float
    attempts: int = 0
    invocations: int = 0
    retries_scheduled: int = 0
    outcome: RetryOutcome = RetryOutcome.RUNNING
    error: Optional[BaseException] = None

    @property
    def elapsed_ms(self) -> float:
        return delay.now_ms() - self.start_ms


class RetryEngine(Generic[T]):
    """Execute an async operation with retries.

    Each call to :meth:`execute` owns its own attempt counter and budget, so
    one engine may serve concurrent invocations. When the policy only carries
    ``rate_limit`` options, every invocation gets a private limiter; pass a
    shared :class:`~retrykit.rate_limiter.RateLimiter` as ``rate_limiter`` to
    pace invocations together.

    Example:
        >>> engine = RetryEngine(RetryPolicy(max_retries=5, timeout_ms=2000))
        >>> body = await engine.execute(lambda signal: client.fetch(url))
    """

    def __init__(self, policy: Optional[RetryPolicy[T]] = None) -> None:
        self.policy = policy or RetryPolicy()
        self.last_run: Optional[RetryRun] = None

    @property
    def outcome(self) -> Optional[RetryOutcome]:
        """Outcome of the most recent invocation, ``None`` before the first."""
        return self.last_run.outcome if self.last_run is not None else None

    @property
    def attempts(self) -> int:
        """Failed or rejected attempts of the most recent invocation."""
        return self.last_run.attempts if self.last_run is not None else 0

    async def execute(self, operation: Operation[T]) -> T:
        """Run ``operation`` until it succeeds or the policy gives up.

        Raises:
            RetryBudgetExceededError: No attempt fits into ``max_elapsed_ms``
            RetryAbortedError: A cancellation source fired (``AttemptTimeoutError``
                when it was the per-attempt timeout)
            RetryConfigurationError: The per-attempt timeout cannot be scheduled
            Exception: The operation's own error once retries are exhausted
                or disallowed
        """
        policy = self.policy
        limiter: Optional[RateLimiterLike] = (
            RateLimiter.from_options(policy.rate_limit) if policy.rate_limit else policy.rate_limiter
        )
        run = RetryRun(start_ms=delay.now_ms())
        self.last_run = run

        try:
            return await self._run(operation, run, limiter)
        except Exception as exc:
            # Errors from predicates, hooks and delay functions.
            if not run.outcome.is_terminal:
                self._finish(run, RetryOutcome.GAVE_UP, exc)
            raise

    async def _run(
        self,
        operation: Operation[T],
        run: RetryRun,
        limiter: Optional[RateLimiterLike],
    ) -> T:
        policy = self.policy
        while True:
            if policy.max_elapsed_ms is not None and run.elapsed_ms >= policy.max_elapsed_ms:
                error = RetryBudgetExceededError()
                await self._give_up(run, error, run.attempts, RetryOutcome.BUDGET_EXCEEDED)
                raise error

            failure: Optional[Exception] = None
            controller = CancellationController()
            timer: Optional[CancellationController] = None
            try:
                if policy.timeout_ms is not None:
                    try:
                        timer = timeout_signal(policy.timeout_ms)
                    except RuntimeError as exc:
                        error = RetryConfigurationError("Per-attempt timeout not supported")
                        await self._give_up(run, error, run.attempts, RetryOutcome.GAVE_UP)
                        raise error from exc

                signal = merge_signals([policy.signal, timer.signal if timer else None], controller)
                if signal.cancelled:
                    raise self._abort(run, timer)

                if limiter is not None:
                    await limiter.acquire()
                    if signal.cancelled:
                        raise self._abort(run, timer)

                run.invocations += 1
                get_instruments().record_attempt()
                try:
                    result = await _race_with_signal(self._call(operation, signal), signal)
                except _SignalFired as fired:
                    raise self._abort(run, timer) from fired.cause
                except Exception as exc:
                    if signal.cancelled:
                        raise self._abort(run, timer) from exc
                    failure = exc
            finally:
                controller.close()
                if timer is not None:
                    timer.close()

            if failure is not None:
                if not await self._should_retry(run, failure):
                    await self._give_up(run, failure, run.attempts + 1, RetryOutcome.GAVE_UP)
                    raise failure

                run.attempts += 1
                logger.info(
                    "retry_attempt_failed",
                    attempt=run.attempts,
                    max_retries=policy.max_retries,
                    error=str(failure),
                    error_type=type(failure).__name__,
                )
                await self._notify_retry(failure, run.attempts)

                waited = await self._wait(
                    run,
                    next_delay_override=_with_http_hints(policy.next_delay_override, failure),
                    last_error=failure,
                )
                if not waited:
                    await self._give_up(run, failure, run.attempts, RetryOutcome.GAVE_UP)
                    raise failure
                continue

            if policy.retry_on_result is not None and await maybe_await(
                policy.retry_on_result(result, run.attempts + 1)
            ):
                run.attempts += 1
                if run.attempts > policy.max_retries:
                    logger.info("retry_result_rejected_exhausted", attempts=run.attempts)
                    return self._succeed(run, result)

                logger.info("retry_result_rejected", attempt=run.attempts)
                waited = await self._wait(
                    run,
                    next_delay_override=policy.next_delay_override,
                    last_result=result,
                )
                if not waited:
                    return self._succeed(run, result)
                continue

            return self._succeed(run, result)

    @staticmethod
    async def _call(operation: Operation[T], signal: CancellationSignal) -> T:
        return await operation(signal)

    async def _should_retry(self, run: RetryRun, error: Exception) -> bool:
        if run.attempts >= self.policy.max_retries:
            return False
        if self.policy.retry_if is None:
            return True
        return bool(await maybe_await(self.policy.retry_if(error, run.attempts + 1)))

    async def _wait(
        self,
        run: RetryRun,
        *,
        next_delay_override: Optional[NextDelayOverride],
        last_error: Optional[BaseException] = None,
        last_result: Any = None,
    ) -> bool:
        """Delay before the next attempt; external cancellation ends the wait."""
        policy = self.policy
        reason = "error" if last_error is not None else "result"
        run.retries_scheduled += 1
        logger.debug("retry_scheduled", attempt=run.attempts, reason=reason)
        get_instruments().record_retry(reason)

        waiting = delay.run_delay_with_override(
            attempt=run.attempts,
            start_ms=run.start_ms,
            delay_fn=policy.delay_fn,
            next_delay_override=next_delay_override,
            max_elapsed_ms=policy.max_elapsed_ms,
            last_error=last_error,
            last_result=last_result,
        )
        external = policy.signal
        if external is None:
            return await waiting
        if external.cancelled:
            waiting.close()
            raise self._abort(run, None)
        try:
            return await _race_with_signal(waiting, external)
        except _SignalFired:
            raise self._abort(run, None) from last_error

    async def _notify_retry(self, error: Exception, attempt: int) -> None:
        if self.policy.on_retry is None:
            return
        try:
            await maybe_await(self.policy.on_retry(error, attempt))
        except Exception as exc:
            logger.warning("retry_callback_failed", callback="on_retry", error=str(exc))

    async def _give_up(
        self,
        run: RetryRun,
        error: BaseException,
        attempts: int,
        outcome: RetryOutcome,
    ) -> None:
        self._finish(run, outcome, error)
        if self.policy.on_give_up is None:
            return
        try:
            await maybe_await(self.policy.on_give_up(error, attempts))
        except Exception as exc:
            logger.warning("retry_callback_failed", callback="on_give_up", error=str(exc))

    def _abort(self, run: RetryRun, timer: Optional[CancellationController]) -> RetryAbortedError:
        external = self.policy.signal
        if (
            timer is not None
            and timer.signal.cancelled
            and not (external is not None and external.cancelled)
        ):
            error: RetryAbortedError = AttemptTimeoutError(self.policy.timeout_ms)
        else:
            error = RetryAbortedError(reason=external.reason if external is not None else None)
        self._finish(run, RetryOutcome.ABORTED, error)
        return error

    def _succeed(self, run: RetryRun, result: T) -> T:
        self._finish(run, RetryOutcome.SUCCEEDED, None)
        return result

    def _finish(self, run: RetryRun, outcome: RetryOutcome, error: Optional[BaseException]) -> None:
        run.outcome = outcome
        run.error = error
        elapsed_ms = run.elapsed_ms

        if outcome is RetryOutcome.SUCCEEDED:
            logger.debug("retry_succeeded", invocations=run.invocations, elapsed_ms=elapsed_ms)
        elif outcome is RetryOutcome.ABORTED:
            logger.info("retry_aborted", invocations=run.invocations, error=str(error))
        elif outcome is RetryOutcome.BUDGET_EXCEEDED:
            logger.warning(
                "retry_budget_exceeded",
                invocations=run.invocations,
                elapsed_ms=elapsed_ms,
                max_elapsed_ms=self.policy.max_elapsed_ms,
            )
        else:
            logger.warning(
                "retry_gave_up",
                invocations=run.invocations,
                attempts=run.attempts,
                error=str(error),
                error_type=type(error).__name__,
            )

        get_instruments().record_outcome(outcome.value, elapsed_ms)
        if self.policy.metrics is not None:
            self.policy.metrics.record_run(
                outcome=outcome.value,
                attempts=run.invocations,
                retries_scheduled=run.retries_scheduled,
                elapsed_ms=elapsed_ms,
                error_type=type(error).__name__ if error is not None else None,
            )


async def retry(
    operation: Operation[T],
    policy: Optional[RetryPolicy[T]] = None,
    **overrides: Any,
) -> T:
    """Run ``operation`` with retries.

    Keyword ``overrides`` are applied on top of ``policy`` (or the defaults),
    e.g. ``await retry(fetch, max_retries=5, timeout_ms=1000)``.
    """
    policy = policy or RetryPolicy()
    if overrides:
        policy = policy.replace(**overrides)
    return await RetryEngine(policy).execute(operation)


def with_retry(
    policy: Optional[RetryPolicy] = None,
    *,
    pass_signal: bool = False,
    **overrides: Any,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator factory adding retry logic to an async function.

    With ``pass_signal=True`` the attempt's cancellation signal is passed as
    the ``signal`` keyword argument.

    Example:
        >>> @with_retry(max_retries=3, delay_fn=create_backoff_delay_fn("exponential", 200))
        ... async def fetch_quote(symbol):
        ...     return await client.quote(symbol)
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            async def operation(signal: CancellationSignal) -> T:
                if pass_signal:
                    return await func(*args, signal=signal, **kwargs)
                return await func(*args, **kwargs)

            return await retry(operation, policy, **overrides)

        return wrapper

    return decorator
