"""Unit tests for the FIFO concurrency limiter."""

import asyncio

import pytest

from clip_translate.core.limiter import ConcurrencyLimiter


def gated(name, gates, started, peak, limiter):
    """Task factory that records its start and blocks on its own gate."""
    async def run():
        started.append(name)
        peak[0] = max(peak[0], limiter.in_flight)
        await gates[name].wait()
        return name
    return run


class TestConcurrencyLimiter:

    @pytest.mark.asyncio
    async def test_cap_and_fifo_order(self):
        limiter = ConcurrencyLimiter("test", 2)
        names = ["a", "b", "c", "d", "e"]
        gates = {n: asyncio.Event() for n in names}
        started, peak = [], [0]

        tasks = [asyncio.ensure_future(limiter.submit(gated(n, gates, started, peak, limiter)))
                 for n in names]
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert started == ["a", "b"]
        assert limiter.queued == 3

        # Finishing the second task hands its slot to the oldest waiter
        gates["b"].set()
        for _ in range(5):
            await asyncio.sleep(0)
        assert started == ["a", "b", "c"]

        for gate in gates.values():
            gate.set()
        results = await asyncio.gather(*tasks)

        assert results == names
        assert started == names
        assert peak[0] == 2
        assert limiter.in_flight == 0
        assert limiter.started == 5

    @pytest.mark.asyncio
    async def test_late_submitter_cannot_overtake(self):
        limiter = ConcurrencyLimiter("test", 1)
        gates = {n: asyncio.Event() for n in ["first", "queued", "late"]}
        started, peak = [], [0]

        first = asyncio.ensure_future(limiter.submit(gated("first", gates, started, peak, limiter)))
        queued = asyncio.ensure_future(limiter.submit(gated("queued", gates, started, peak, limiter)))
        await asyncio.sleep(0)

        gates["first"].set()
        await first
        late = asyncio.ensure_future(limiter.submit(gated("late", gates, started, peak, limiter)))
        for _ in range(5):
            await asyncio.sleep(0)

        assert started == ["first", "queued"]

        gates["queued"].set()
        gates["late"].set()
        await asyncio.gather(queued, late)
        assert started == ["first", "queued", "late"]

    @pytest.mark.asyncio
    async def test_cancelled_waiter_releases_queue_position(self):
        limiter = ConcurrencyLimiter("test", 1)
        gates = {n: asyncio.Event() for n in ["a", "b", "c"]}
        started, peak = [], [0]

        a = asyncio.ensure_future(limiter.submit(gated("a", gates, started, peak, limiter)))
        b = asyncio.ensure_future(limiter.submit(gated("b", gates, started, peak, limiter)))
        c = asyncio.ensure_future(limiter.submit(gated("c", gates, started, peak, limiter)))
        await asyncio.sleep(0)

        b.cancel()
        with pytest.raises(asyncio.CancelledError):
            await b

        gates["a"].set()
        gates["c"].set()
        await asyncio.gather(a, c)

        assert started == ["a", "c"]
        assert limiter.in_flight == 0

    @pytest.mark.asyncio
    async def test_exception_frees_slot(self):
        limiter = ConcurrencyLimiter("test", 1)

        async def boom():
            raise RuntimeError("boom")

        async def ok():
            return "ok"

        with pytest.raises(RuntimeError):
            await limiter.submit(boom)
        assert await limiter.submit(ok) == "ok"
        assert limiter.in_flight == 0

    def test_rejects_zero_cap(self):
        with pytest.raises(ValueError):
            ConcurrencyLimiter("test", 0)
