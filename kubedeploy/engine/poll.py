"""Polling primitive shared by the apply and teardown engines.

A poll re-queries the cluster at a fixed interval until a condition holds
or a hard deadline passes. It never blocks indefinitely, and it is
cancellable at every sleep.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from kubedeploy.errors import PollTimeoutError

T = TypeVar("T")


@dataclass
class Poller:
    """Fixed-interval poller with an injectable clock and sleep.

    Args:
        interval: Seconds between checks.
        clock:    Monotonic time source.
        sleep:    Awaitable sleep; swapped out in tests.
    """

    interval: float = 2.0
    clock: Callable[[], float] = field(default=time.monotonic)
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)

    async def until(
        self,
        check: Callable[[], Awaitable[T]],
        done: Callable[[T], bool],
        timeout: float,
        what: str = "condition",
    ) -> T:
        """Call *check* until ``done(value)`` is true; return that value.

        The last check runs at the deadline, so a condition that becomes
        true exactly at expiry still succeeds.

        Raises:
            PollTimeoutError: *timeout* elapsed first. ``last`` holds the
                final observed value.
        """
        deadline = self.clock() + timeout
        while True:
            value = await check()
            if done(value):
                return value
            remaining = deadline - self.clock()
            if remaining <= 0:
                raise PollTimeoutError(what, timeout, value)
            await self.sleep(min(self.interval, remaining))

    def elapsed_since(self, start: float) -> float:
        return self.clock() - start
