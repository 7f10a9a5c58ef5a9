"""Unit tests for the poll_until primitive."""

from __future__ import annotations

import pytest

from store_platform.app.provisioning.errors import ProvisioningTimeoutError
from store_platform.app.provisioning.polling import poll_until


class FakeClock:
    """Monotonic clock advanced only by the fake sleep."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _counter_predicate(results):
    calls = {'n': 0}

    async def predicate() -> bool:
        calls['n'] += 1
        return results[min(calls['n'], len(results)) - 1]

    return predicate, calls


@pytest.mark.asyncio
async def test_returns_immediately_when_predicate_true():
    clock = FakeClock()
    predicate, calls = _counter_predicate([True])

    await poll_until(
        predicate, timeout_seconds=10, description='thing',
        interval_seconds=5, clock=clock, sleep=clock.sleep,
    )

    assert calls['n'] == 1
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_sleeps_fixed_interval_between_attempts():
    clock = FakeClock()
    predicate, calls = _counter_predicate([False, False, True])

    await poll_until(
        predicate, timeout_seconds=60, description='thing',
        interval_seconds=5, clock=clock, sleep=clock.sleep,
    )

    assert calls['n'] == 3
    assert clock.sleeps == [5, 5]


@pytest.mark.asyncio
async def test_raises_timeout_after_deadline():
    clock = FakeClock()
    predicate, calls = _counter_predicate([False])

    with pytest.raises(ProvisioningTimeoutError) as exc_info:
        await poll_until(
            predicate, timeout_seconds=12, description='deployment web',
            interval_seconds=5, clock=clock, sleep=clock.sleep,
        )

    # Attempts at t=0, 5, 10; the deadline passes during the last sleep.
    assert calls['n'] == 3
    assert exc_info.value.timeout_seconds == 12
    assert 'Timeout waiting for deployment web' in str(exc_info.value)
    assert exc_info.value.code == 'TIMEOUT'


@pytest.mark.asyncio
async def test_predicate_exception_aborts_wait():
    clock = FakeClock()

    async def predicate() -> bool:
        raise RuntimeError('job failed')

    with pytest.raises(RuntimeError, match='job failed'):
        await poll_until(
            predicate, timeout_seconds=60, description='thing',
            clock=clock, sleep=clock.sleep,
        )


@pytest.mark.asyncio
async def test_zero_timeout_never_calls_predicate():
    clock = FakeClock()
    predicate, calls = _counter_predicate([True])

    with pytest.raises(ProvisioningTimeoutError):
        await poll_until(
            predicate, timeout_seconds=0, description='thing',
            clock=clock, sleep=clock.sleep,
        )

    assert calls['n'] == 0


@pytest.mark.asyncio
async def test_rejects_negative_arguments():
    async def predicate() -> bool:
        return True

    with pytest.raises(ValueError):
        await poll_until(predicate, timeout_seconds=-1, description='x')
    with pytest.raises(ValueError):
        await poll_until(
            predicate, timeout_seconds=1, description='x', interval_seconds=-1,
        )
