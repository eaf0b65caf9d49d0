"""Tests for the fixed-interval Poller with an injected clock."""

from __future__ import annotations

import asyncio

import pytest

from kubedeploy.engine.poll import Poller
from kubedeploy.errors import PollTimeoutError


class _Clock:
    def __init__(self) -> None:
        self.now = 100.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _poller(interval: float = 2.0) -> tuple[Poller, _Clock]:
    clock = _Clock()
    return Poller(interval=interval, clock=clock, sleep=clock.sleep), clock


def _counter(ready_at: int):
    calls = {"n": 0}

    async def check() -> int:
        calls["n"] += 1
        return calls["n"]

    return check, (lambda n: n >= ready_at), calls


class TestUntil:
    async def test_returns_first_satisfying_value(self) -> None:
        poller, clock = _poller()
        check, done, calls = _counter(ready_at=3)

        assert await poller.until(check, done, timeout=60) == 3
        assert calls["n"] == 3
        assert clock.sleeps == [2.0, 2.0]

    async def test_immediate_success_never_sleeps(self) -> None:
        poller, clock = _poller()
        check, done, _ = _counter(ready_at=1)
        assert await poller.until(check, done, timeout=5) == 1
        assert clock.sleeps == []

    async def test_times_out_exactly_at_deadline(self) -> None:
        poller, clock = _poller(interval=2.0)
        check, done, calls = _counter(ready_at=1000)

        with pytest.raises(PollTimeoutError) as exc_info:
            await poller.until(check, done, timeout=5, what="wait: readiness of Deployment/default/web")

        assert clock.now == pytest.approx(105.0)
        assert clock.sleeps == [2.0, 2.0, 1.0]
        assert calls["n"] == 4
        assert exc_info.value.timeout == 5
        assert exc_info.value.last == 4
        assert "Deployment/default/web" in str(exc_info.value)

    async def test_condition_met_at_deadline_succeeds(self) -> None:
        poller, _ = _poller(interval=2.0)
        check, done, _ = _counter(ready_at=4)
        assert await poller.until(check, done, timeout=5) == 4

    async def test_zero_timeout_checks_once(self) -> None:
        poller, clock = _poller()
        check, done, calls = _counter(ready_at=2)
        with pytest.raises(PollTimeoutError):
            await poller.until(check, done, timeout=0)
        assert calls["n"] == 1
        assert clock.sleeps == []

    async def test_check_errors_propagate(self) -> None:
        poller, _ = _poller()

        async def broken() -> None:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await poller.until(broken, lambda _: True, timeout=5)

    async def test_cancellable_while_sleeping(self) -> None:
        poller = Poller(interval=60.0)
        check, done, _ = _counter(ready_at=1000)
        task = asyncio.ensure_future(poller.until(check, done, timeout=600))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


def test_elapsed_since() -> None:
    poller, clock = _poller()
    start = clock()
    clock.now += 7.5
    assert poller.elapsed_since(start) == 7.5
