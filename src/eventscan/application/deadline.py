from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, TypeVar

from ..domain.errors import DeadlineExceeded

T = TypeVar("T")
Sleep = Callable[[float], Awaitable[None]]


class Deadline:
    """
    Cancellation context threaded through every suspension point of a scan.
    ``timeout_s=None`` never expires on its own; ``cancel()`` always stops it.
    """

    def __init__(self, timeout_s: float | None = None, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._expires_at = None if timeout_s is None else clock() + timeout_s
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        rem = self.remaining()
        return self._cancelled or (rem is not None and rem <= 0)

    def check(self) -> None:
        if self._cancelled:
            raise DeadlineExceeded("scan cancelled")
        if self.expired:
            raise DeadlineExceeded("scan deadline exceeded")

    async def wait_for(self, aw: Awaitable[T]) -> T:
        """Await ``aw`` but give up when the deadline passes."""
        try:
            self.check()
        except DeadlineExceeded:
            if asyncio.iscoroutine(aw):
                aw.close()
            raise
        rem = self.remaining()
        if rem is None:
            result = await aw
        else:
            try:
                result = await asyncio.wait_for(aw, rem)
            except asyncio.TimeoutError as e:
                raise DeadlineExceeded("scan deadline exceeded") from e
        self.check()
        return result

    async def sleep(self, seconds: float, sleep: Sleep = asyncio.sleep) -> None:
        self.check()
        rem = self.remaining()
        if rem is not None and rem < seconds:
            await sleep(rem)
            raise DeadlineExceeded("scan deadline exceeded")
        await sleep(seconds)
        self.check()
