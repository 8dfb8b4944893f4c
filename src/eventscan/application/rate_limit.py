from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, TypeVar

from .deadline import Deadline, Sleep

T = TypeVar("T")


class RateLimiter:
    """
    Enforces a minimum spacing between outbound RPC calls.

    One instance is shared by every scan in the process; ``_last`` is the only
    shared mutable state and is read and written under the lock. asyncio.Lock
    wakes waiters in arrival order, so callers are served FIFO.
    """

    def __init__(
        self,
        min_interval_s: float = 0.1,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if min_interval_s < 0:
            raise ValueError("min_interval_s must be >= 0")
        self.min_interval_s = min_interval_s
        self._clock = clock
        self._sleep = sleep
        self._last: float | None = None
        self._lock = asyncio.Lock()
        self.calls = 0

    async def wait(self, deadline: Deadline | None = None) -> None:
        async with self._lock:
            if self._last is not None:
                delay = self._last + self.min_interval_s - self._clock()
                if delay > 0:
                    if deadline is not None:
                        await deadline.sleep(delay, self._sleep)
                    else:
                        await self._sleep(delay)
            self._last = self._clock()
            self.calls += 1

    async def call(
        self,
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        deadline: Deadline | None = None,
        **kwargs: Any,
    ) -> T:
        """Wait for a slot, then await ``fn(*args, **kwargs)``."""
        await self.wait(deadline)
        if deadline is not None:
            return await deadline.wait_for(fn(*args, **kwargs))
        return await fn(*args, **kwargs)


class NoopRateLimiter(RateLimiter):
    """Counts calls without spacing them."""

    def __init__(self) -> None:
        super().__init__(0.0)

    async def wait(self, deadline: Deadline | None = None) -> None:
        if deadline is not None:
            deadline.check()
        self.calls += 1
