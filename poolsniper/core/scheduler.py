"""
Task Scheduler
Runs delayed and periodic fire-and-forget work on the event loop
"""

import asyncio
from typing import Awaitable, Callable, Optional, Set

from poolsniper.core.logger import get_logger


logger = get_logger(__name__)


SleepFunc = Callable[[float], Awaitable[None]]


class TaskScheduler:
    """
    Spawns background tasks after a delay

    The sleep function is injectable so tests can run scheduled work without
    waiting on the wall clock. Scheduled tasks can not be cancelled
    individually; close() cancels whatever is still pending at shutdown.

    Usage:
        scheduler = TaskScheduler()
        scheduler.schedule(20.0, lambda: trader.sell(...), name="sell")
        scheduler.every(30.0, snipe_list.reload, name="snipe_list_refresh")
    """

    def __init__(self, sleep: Optional[SleepFunc] = None):
        self.sleep: SleepFunc = sleep or asyncio.sleep
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Awaitable, name: Optional[str] = None) -> asyncio.Task:
        """Start a coroutine now and keep a reference until it finishes"""
        task = asyncio.ensure_future(coro)
        if name:
            task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def schedule(
        self,
        delay_s: float,
        job: Callable[[], Awaitable[None]],
        name: Optional[str] = None
    ) -> asyncio.Task:
        """
        Run job() once after delay_s seconds

        Args:
            delay_s: Delay before the job starts
            job: Coroutine factory, called when the delay has elapsed
            name: Task name for logging
        """
        async def _delayed():
            await self.sleep(delay_s)
            await job()

        return self.spawn(_delayed(), name=name)

    def every(
        self,
        interval_s: float,
        job: Callable[[], None],
        name: Optional[str] = None
    ) -> asyncio.Task:
        """Run a synchronous job every interval_s seconds until closed"""
        async def _periodic():
            while True:
                await self.sleep(interval_s)
                try:
                    job()
                except Exception as e:
                    logger.error("periodic_job_failed", job=name, error=str(e))

        return self.spawn(_periodic(), name=name)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every scheduled task has finished (never returns while a periodic job runs)"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel all pending tasks"""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "scheduled_task_failed",
                task=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__
            )
