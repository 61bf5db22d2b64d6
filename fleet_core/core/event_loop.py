# fleet_core/core/event_loop.py
import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


class ManagedEventLoop:
    """Single event loop with proper resource management"""

    def __init__(self):
        self.loop = None
        self.shutdown_event = asyncio.Event()
        self.running_tasks = set()

    async def start(self):
        if self.loop is None:
            self.loop = asyncio.get_running_loop()

    async def stop(self):
        """Cancel every tracked task and wait for them to unwind"""
        self.shutdown_event.set()
        current_task = asyncio.current_task()
        tasks_to_cancel = [t for t in list(self.running_tasks) if t is not current_task]
        for task in tasks_to_cancel:
            if not task.done():
                task.cancel()
        if tasks_to_cancel:
            await asyncio.gather(*tasks_to_cancel, return_exceptions=True)
        self.running_tasks.clear()

    def add_task(self, coro, name: str) -> asyncio.Task:
        """Add task with automatic cleanup"""
        if self.loop is None:
            self.loop = asyncio.get_running_loop()
        task = self.loop.create_task(coro, name=name)
        self.running_tasks.add(task)
        task.add_done_callback(self.running_tasks.discard)
        return task


class PeriodicTask:
    """
    Runs an async callback on a fixed interval until stopped.

    The sleep function is injectable so tests can step the schedule without
    waiting on the wall clock. When a ManagedEventLoop is given the task is
    spawned through it, so application shutdown cancels it too. Exceptions
    raised by the callback are logged and the loop carries on with the next
    cadence.
    """

    def __init__(self, name: str, interval_seconds: float,
                 callback: Callable[[], Awaitable[None]],
                 sleep: Optional[SleepFunc] = None,
                 run_immediately: bool = True,
                 event_loop: Optional[ManagedEventLoop] = None):
        if interval_seconds <= 0:
            raise ValueError(f"{name}: interval must be positive, got {interval_seconds}")
        self.name = name
        self.interval_seconds = interval_seconds
        self.callback = callback
        self.sleep = sleep or asyncio.sleep
        self.run_immediately = run_immediately
        self.event_loop = event_loop
        self.iterations = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if self.is_running:
            return self._task
        if self.event_loop is not None:
            self._task = self.event_loop.add_task(self._run(), name=self.name)
        else:
            self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        return self._task

    async def stop(self):
        """Cancel the pending iteration and wait until the task has finished"""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def run_once(self):
        try:
            await self.callback()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Periodic task {self.name} failed: {e}")
        finally:
            self.iterations += 1

    async def _run(self):
        logger.debug(f"Periodic task {self.name} started (interval {self.interval_seconds}s)")
        if not self.run_immediately:
            await self.sleep(self.interval_seconds)
        while True:
            await self.run_once()
            await self.sleep(self.interval_seconds)
