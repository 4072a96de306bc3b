"""
Bounded-parallelism gate for upstream jobs.

At most ``max_concurrency`` tasks run their body at once; the rest wait in a
strict FIFO queue. A released slot is handed directly to the oldest waiter, so
a late arrival can never overtake a queued task.

Single event loop only: the counter and queue are mutated without a lock and
rely on cooperative scheduling.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from typing import TypeVar

__all__ = ["AdmissionLimiter"]

T = TypeVar("T")

log = logging.getLogger("qwenmt_core.limiter")


class AdmissionLimiter:
    """Caps concurrently admitted tasks and admits the rest in submission order."""

    def __init__(self, max_concurrency: int = 2) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._max = max_concurrency
        self._active = 0
        self._waiters: deque[asyncio.Future[None]] = deque()

    @property
    def max_concurrency(self) -> int:
        return self._max

    @property
    def active(self) -> int:
        """Number of slots currently held."""
        return self._active

    @property
    def queued(self) -> int:
        """Number of tasks waiting for a slot."""
        return sum(1 for f in self._waiters if not f.done())

    async def acquire(self) -> None:
        if self._active < self._max and not self._waiters:
            self._active += 1
            return

        fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        log.debug(
            "Admission queued",
            extra={"active": self._active, "queued": len(self._waiters)},
        )
        try:
            await fut
        except asyncio.CancelledError:
            if fut.done() and not fut.cancelled():
                # The slot was already handed over; pass it on.
                self.release()
            else:
                try:
                    self._waiters.remove(fut)
                except ValueError:
                    pass
            raise

    def release(self) -> None:
        # Hand the slot to the oldest live waiter; the active count is unchanged.
        while self._waiters:
            fut = self._waiters.popleft()
            if not fut.done():
                fut.set_result(None)
                return
        self._active -= 1

    async def run(self, task: Callable[[], Awaitable[T]]) -> T:
        """Run ``task`` once a slot is free; the slot is released however it ends."""
        await self.acquire()
        try:
            return await task()
        finally:
            self.release()

    async def __aenter__(self) -> AdmissionLimiter:
        await self.acquire()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.release()
