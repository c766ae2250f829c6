from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")


class ConcurrencyLimiter:
    """
    Admission gate bounding how many async operations run at once.

    Tasks wait on an asyncio.Semaphore, whose waiters are woken in FIFO order
    without barging on Python 3.11.1+, so queued work is admitted in the order
    it was scheduled. The slot is released whether the task succeeds or
    raises, so one failure never blocks the tasks queued behind it.
    """

    def __init__(self, max_in_flight: int):
        if max_in_flight < 1:
            raise ValueError("max_in_flight must be at least 1")
        self.max_in_flight = max_in_flight
        self._semaphore = asyncio.Semaphore(max_in_flight)
        self.active = 0
        self.peak = 0

    def schedule(self, task_factory: Callable[[], Awaitable[T]]) -> "asyncio.Task[T]":
        """Queue `task_factory()` for execution and return a handle to its result."""
        return asyncio.ensure_future(self._run(task_factory))

    async def _run(self, task_factory: Callable[[], Awaitable[T]]) -> T:
        async with self._semaphore:
            self.active += 1
            self.peak = max(self.peak, self.active)
            try:
                return await task_factory()
            finally:
                self.active -= 1
