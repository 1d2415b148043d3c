"""Latching cancellation signals and their composition."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Iterable, List, Optional

Listener = Callable[[Any], None]


class CancellationSignal:
    """Read side of a cancellation source.

    Once cancelled a signal stays cancelled. Listeners are one-shot: each
    fires at most once and is dropped afterwards.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: Any = None
        self._listeners: List[Listener] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Any:
        return self._reason

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Subscribe ``listener(reason)``; returns an unsubscribe function.

        Listeners added after cancellation are never called; check
        :attr:`cancelled` first.
        """
        if self._cancelled:
            return lambda: None
        self._listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe

    async def wait(self) -> Any:
        """Suspend until the signal fires and return its reason."""
        if self._cancelled:
            return self._reason
        future = asyncio.get_running_loop().create_future()

        def _wake(reason: Any) -> None:
            if not future.done():
                future.set_result(reason)

        unsubscribe = self.add_listener(_wake)
        try:
            return await future
        finally:
            unsubscribe()

    def _fire(self, reason: Any) -> bool:
        if self._cancelled:
            return False
        self._cancelled = True
        self._reason = reason
        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            listener(reason)
        return True


class CancellationController:
    """Write side owning one :class:`CancellationSignal`."""

    def __init__(self) -> None:
        self.signal = CancellationSignal()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._subscriptions: List[Callable[[], None]] = []

    def cancel(self, reason: Any = None) -> None:
        if self.signal._fire(reason):
            self._drop_timer()

    def cancel_after(self, delay_ms: float, reason: Any = "timeout") -> None:
        """Cancel once ``delay_ms`` has passed on the running loop.

        Raises:
            RuntimeError: If no event loop is running to own the timer
        """
        loop = asyncio.get_running_loop()
        self._drop_timer()
        self._timer = loop.call_later(max(0.0, delay_ms) / 1000.0, self.cancel, reason)

    def follow(self, source: CancellationSignal) -> None:
        """Cancel this controller when ``source`` fires."""
        if source.cancelled:
            self.cancel(source.reason)
            return
        self._subscriptions.append(source.add_listener(self.cancel))

    def close(self) -> None:
        """Release the timer and all source subscriptions."""
        self._drop_timer()
        subscriptions, self._subscriptions = self._subscriptions, []
        for unsubscribe in subscriptions:
            unsubscribe()

    def _drop_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


def timeout_signal(timeout_ms: float) -> CancellationController:
    """Create a controller that cancels itself after ``timeout_ms``."""
    controller = CancellationController()
    controller.cancel_after(timeout_ms)
    return controller


def merge_signals(
    signals: Iterable[Optional[CancellationSignal]],
    controller: Optional[CancellationController] = None,
) -> CancellationSignal:
    """Combine ``signals`` into one that fires when any of them fires.

    ``None`` entries are skipped. Pass ``controller`` to be able to release
    the subscriptions with :meth:`CancellationController.close`.
    """
    controller = controller or CancellationController()
    for signal in signals:
        if signal is None:
            continue
        if signal.cancelled:
            controller.cancel(signal.reason)
            break
        controller.follow(signal)
    return controller.signal
