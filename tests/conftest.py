from __future__ import annotations

import asyncio
from typing import List

import pytest

from retrykit import delay


class FakeClock:
    """Millisecond clock that only moves when something sleeps."""

    def __init__(self, start: float = 10_000.0) -> None:
        self.now = start
        self.sleeps: List[float] = []

    def now_ms(self) -> float:
        return self.now

    async def sleep_ms(self, ms: float) -> None:
        ms = max(0.0, ms)
        self.sleeps.append(ms)
        self.now += ms
        await asyncio.sleep(0)

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def fake_clock(monkeypatch) -> FakeClock:
    clock = FakeClock()
    monkeypatch.setattr(delay, "now_ms", clock.now_ms)
    monkeypatch.setattr(delay, "sleep_ms", clock.sleep_ms)
    return clock
