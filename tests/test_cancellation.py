import asyncio

import pytest

from retrykit.cancellation import (
    CancellationController,
    CancellationSignal,
    merge_signals,
    timeout_signal,
)


def test_merge_without_sources_is_live():
    merged = merge_signals([None, None])
    assert isinstance(merged, CancellationSignal)
    assert not merged.cancelled


def test_merge_with_cancelled_source_is_cancelled_immediately():
    live = CancellationController()
    done = CancellationController()
    done.cancel("shutdown")

    merged = merge_signals([live.signal, done.signal])

    assert merged.cancelled
    assert merged.reason == "shutdown"


def test_first_source_wins_and_composite_latches():
    first = CancellationController()
    second = CancellationController()
    merged = merge_signals([first.signal, None, second.signal])
    calls = []
    merged.add_listener(calls.append)

    first.cancel("first")
    second.cancel("second")

    assert merged.cancelled
    assert merged.reason == "first"
    assert calls == ["first"]


def test_listener_added_after_cancel_is_not_called():
    controller = CancellationController()
    controller.cancel()
    calls = []

    unsubscribe = controller.signal.add_listener(calls.append)
    unsubscribe()

    assert calls == []


def test_close_releases_source_subscriptions():
    source = CancellationController()
    composite = CancellationController()
    merged = merge_signals([source.signal], composite)

    composite.close()
    source.cancel()

    assert source.signal.cancelled
    assert not merged.cancelled


def test_cancel_after_requires_running_loop():
    controller = CancellationController()
    with pytest.raises(RuntimeError):
        controller.cancel_after(10)


@pytest.mark.asyncio
async def test_wait_returns_reason():
    controller = CancellationController()
    asyncio.get_running_loop().call_soon(controller.cancel, "stop")

    reason = await asyncio.wait_for(controller.signal.wait(), timeout=1)

    assert reason == "stop"
    assert await controller.signal.wait() == "stop"


@pytest.mark.asyncio
async def test_timeout_signal_fires():
    controller = timeout_signal(10)
    assert not controller.signal.cancelled

    reason = await asyncio.wait_for(controller.signal.wait(), timeout=1)

    assert reason == "timeout"
    assert controller.signal.cancelled


@pytest.mark.asyncio
async def test_closed_timeout_never_fires():
    controller = timeout_signal(10)
    controller.close()

    await asyncio.sleep(0.05)

    assert not controller.signal.cancelled
