from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import time
from typing import Awaitable, Callable, List, Set, Tuple

logger = logging.getLogger(__name__)

AsyncJob = Callable[[], Awaitable[object]]


class TimerHandle:
    def __init__(self, cancel: Callable[[], None]):
        self._cancel = cancel
        self.cancelled = False

    def cancel(self) -> None:
        if not self.cancelled:
            self.cancelled = True
            self._cancel()


class AsyncioScheduler:
    """Timers and background jobs on the running asyncio loop, wall-clock time."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._tasks: Set[asyncio.Task] = set()

    def now(self) -> float:
        return self._clock()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle = asyncio.get_running_loop().call_later(delay, callback)
        return TimerHandle(handle.cancel)

    def spawn(self, job: AsyncJob) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, background job %s skipped", getattr(job, "__name__", job))
            return
        task = loop.create_task(job())
        self._tasks.add(task)
        task.add_done_callback(self._job_done)

    def _job_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background job failed: %s", exc)

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class ManualScheduler:
    """Deterministic scheduler for tests: time only moves through advance()."""

    def __init__(self, start: float = 1_700_000_000.0):
        self._now = start
        self._timers: List[Tuple[float, int, Callable[[], None], TimerHandle]] = []
        self._counter = itertools.count()
        self.spawned: List[AsyncJob] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(lambda: None)
        heapq.heappush(self._timers, (self._now + delay, next(self._counter), callback, handle))
        return handle

    def spawn(self, job: AsyncJob) -> None:
        self.spawned.append(job)

    @property
    def pending_timers(self) -> int:
        return sum(1 for _, _, _, handle in self._timers if not handle.cancelled)

    def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while self._timers and self._timers[0][0] <= target:
            when, _, callback, handle = heapq.heappop(self._timers)
            self._now = when
            if not handle.cancelled:
                handle.cancelled = True
                callback()
        self._now = target

    async def run_spawned(self) -> None:
        while self.spawned:
            job = self.spawned.pop(0)
            try:
                await job()
            except Exception as exc:
                logger.error("Background job failed: %s", exc)

    async def drain(self) -> None:
        await self.run_spawned()


Scheduler = AsyncioScheduler | ManualScheduler
