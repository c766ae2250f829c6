import asyncio

import pytest

from chapter_reader.pipeline import ConcurrencyLimiter


def test_limiter_rejects_zero_slots():
    with pytest.raises(ValueError):
        ConcurrencyLimiter(0)


def test_limiter_bounds_in_flight_and_admits_in_order():
    started = []

    async def job(i):
        started.append(i)
        await asyncio.sleep(0.01)
        return i * 10

    async def scenario():
        limiter = ConcurrencyLimiter(2)
        tasks = [limiter.schedule(lambda i=i: job(i)) for i in range(6)]
        results = await asyncio.gather(*tasks)
        return limiter, results

    limiter, results = asyncio.run(scenario())
    assert results == [0, 10, 20, 30, 40, 50]
    assert started == [0, 1, 2, 3, 4, 5]
    assert limiter.peak == 2
    assert limiter.active == 0


def test_limiter_releases_slot_when_task_fails():
    async def boom():
        raise RuntimeError("nope")

    async def ok():
        return "ok"

    async def scenario():
        limiter = ConcurrencyLimiter(1)
        failing = limiter.schedule(boom)
        following = limiter.schedule(ok)
        return await asyncio.gather(failing, following, return_exceptions=True)

    first, second = asyncio.run(scenario())
    assert isinstance(first, RuntimeError)
    assert second == "ok"
