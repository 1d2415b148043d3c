import pytest

from retrykit import backoff as backoff_module
from retrykit.backoff import BackoffStrategy, compute_backoff_ms, create_backoff_delay_fn


@pytest.mark.parametrize(
    "strategy,expected",
    [
        (BackoffStrategy.CONSTANT, [100, 100, 100, 100]),
        (BackoffStrategy.LINEAR, [100, 200, 300, 400]),
        ("exponential", [100, 200, 400, 800]),
    ],
)
def test_strategies(strategy, expected):
    assert [compute_backoff_ms(strategy, n, 100) for n in range(1, 5)] == expected


def test_max_delay_caps_growth():
    assert compute_backoff_ms("exponential", 10, 100, max_delay_ms=5000) == 5000


def test_callable_strategy():
    assert compute_backoff_ms(lambda n: n * 7, 3) == 21


def test_jitter_stays_within_a_quarter(monkeypatch):
    monkeypatch.setattr(backoff_module.random, "uniform", lambda a, b: b)
    assert compute_backoff_ms("constant", 1, 400, jitter=True) == 500

    monkeypatch.setattr(backoff_module.random, "uniform", lambda a, b: a)
    assert compute_backoff_ms("constant", 1, 400, jitter=True) == 300


def test_unknown_strategy_rejected_eagerly():
    with pytest.raises(ValueError):
        create_backoff_delay_fn("fibonacci")


@pytest.mark.asyncio
async def test_delay_fn_sleeps_on_the_retry_clock(fake_clock):
    delay_fn = create_backoff_delay_fn(BackoffStrategy.EXPONENTIAL, 250, max_delay_ms=1000)

    for attempt in range(1, 5):
        await delay_fn(attempt)

    assert fake_clock.sleeps == [250.0, 500.0, 1000.0, 1000.0]
