"""
Bounded-concurrency FIFO task queue.

One limiter exists per provider. Tasks start in submission order, at most
``max_in_flight`` at a time; a finishing task hands its slot straight to the
oldest waiter, so a late submitter can never overtake the queue.
"""

import asyncio
from collections import deque
from typing import Awaitable, Callable, Deque, TypeVar

T = TypeVar('T')


class ConcurrencyLimiter:
    """FIFO limiter for zero-argument async task factories."""

    def __init__(self, name: str, max_in_flight: int):
        if max_in_flight < 1:
            raise ValueError("max_in_flight must be >= 1")
        self.name = name
        self.max_in_flight = max_in_flight
        self._in_flight = 0
        self._waiters: Deque[asyncio.Future] = deque()
        self.started = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def queued(self) -> int:
        return sum(1 for w in self._waiters if not w.done())

    async def _acquire(self) -> None:
        if self._in_flight < self.max_in_flight and not self._waiters:
            self._in_flight += 1
            return
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Slot was already handed over; pass it on
                self._release()
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            raise

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # Slot transfers directly; in-flight count is unchanged
                waiter.set_result(None)
                return
        self._in_flight -= 1

    async def submit(self, factory: Callable[[], Awaitable[T]]) -> T:
        """Run ``factory()`` once a slot is free and return its result."""
        await self._acquire()
        self.started += 1
        try:
            return await factory()
        finally:
            self._release()

    def __repr__(self) -> str:
        return (f"ConcurrencyLimiter({self.name!r}, in_flight={self._in_flight}, "
                f"queued={self.queued}, cap={self.max_in_flight})")
