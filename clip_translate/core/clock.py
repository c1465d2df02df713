"""
Clock abstraction used for every timer the engine arms.

Sweep passes, rush re-checks, rate-limit waits and URL polling all go
through a Clock, so the same engine runs on the asyncio loop in production
and on virtual time in tests.
"""

import asyncio
import heapq
import itertools
from abc import ABC, abstractmethod
from typing import Callable, List, Tuple


class TimerHandle(ABC):
    """Handle returned by Clock.call_later."""

    @abstractmethod
    def cancel(self) -> None:
        pass

    @abstractmethod
    def cancelled(self) -> bool:
        pass


class Clock(ABC):
    """Source of time and delayed callbacks."""

    @abstractmethod
    def now(self) -> float:
        """Current time in seconds."""
        pass

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` after ``delay`` seconds."""
        pass

    @abstractmethod
    async def sleep(self, delay: float) -> None:
        """Suspend the calling coroutine for ``delay`` seconds."""
        pass


class _AsyncioTimer(TimerHandle):

    def __init__(self, handle: asyncio.TimerHandle):
        self._handle = handle

    def cancel(self) -> None:
        self._handle.cancel()

    def cancelled(self) -> bool:
        return self._handle.cancelled()


class AsyncioClock(Clock):
    """Clock backed by the running asyncio event loop."""

    def now(self) -> float:
        return asyncio.get_running_loop().time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        loop = asyncio.get_running_loop()
        return _AsyncioTimer(loop.call_later(max(0.0, delay), callback))

    async def sleep(self, delay: float) -> None:
        await asyncio.sleep(max(0.0, delay))


class _ManualTimer(TimerHandle):

    def __init__(self, due: float, callback: Callable[[], None]):
        self.due = due
        self.callback = callback
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class ManualClock(Clock):
    """Virtual clock: time only moves when ``advance`` is awaited.

    Example:
        clock = ManualClock()
        translator = PageTranslator(document, ..., clock=clock)
        await translator.start("zh-CN")
        await clock.advance(8)   # fires the first sweep pass
    """

    # Loop iterations granted to woken coroutines after each timer fires
    SETTLE_ITERATIONS = 200

    def __init__(self, start: float = 0.0):
        self._now = start
        self._timers: List[Tuple[float, int, _ManualTimer]] = []
        self._sequence = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = _ManualTimer(self._now + max(0.0, delay), callback)
        heapq.heappush(self._timers, (timer.due, next(self._sequence), timer))
        return timer

    async def sleep(self, delay: float) -> None:
        if delay <= 0:
            await asyncio.sleep(0)
            return
        future = asyncio.get_running_loop().create_future()

        def wake():
            if not future.done():
                future.set_result(None)

        self.call_later(delay, wake)
        await future

    @property
    def pending_timers(self) -> int:
        return sum(1 for _, _, timer in self._timers if not timer.cancelled())

    async def settle(self, iterations: int = SETTLE_ITERATIONS) -> None:
        """Let ready coroutines run without moving time."""
        for _ in range(iterations):
            await asyncio.sleep(0)

    async def advance(self, seconds: float) -> None:
        """Move virtual time forward, firing due timers in order."""
        target = self._now + seconds
        await self.settle()
        while self._timers and self._timers[0][0] <= target:
            due, _, timer = heapq.heappop(self._timers)
            if timer.cancelled():
                continue
            self._now = max(self._now, due)
            timer.callback()
            await self.settle()
        self._now = target
        await self.settle()
