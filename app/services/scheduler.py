"""
Monitor Scheduler component.

A single cooperative asyncio task that invokes a callback every
``interval_minutes``. Starting a running scheduler replaces its timer
rather than stacking a second one; stopping a stopped scheduler is a
no-op. Stopping never interrupts a tick that is already running, it only
prevents future ticks.
"""

import asyncio
from typing import Any, Awaitable, Callable, List, Optional

from app.utils.logging import get_logger, log_error_with_context

logger = get_logger(__name__)


class MonitorScheduler:
    """Periodic runner for the engine tick."""

    def __init__(self, callback: Callable[[], Awaitable[Any]], interval_minutes: float = 15):
        """
        Args:
            callback: Coroutine function invoked on every tick
            interval_minutes: Delay between ticks
        """
        self._callback = callback
        self.interval_minutes = interval_minutes
        self._stop_event: Optional[asyncio.Event] = None
        self._tasks: List[asyncio.Task] = []
        self.tick_count = 0

    @property
    def interval_seconds(self) -> float:
        return self.interval_minutes * 60

    @property
    def running(self) -> bool:
        return self._stop_event is not None and not self._stop_event.is_set()

    def start(self, interval_minutes: Optional[float] = None) -> None:
        """
        Start (or restart) the periodic loop.

        Must be called from within a running event loop.

        Args:
            interval_minutes: Optional new interval
        """
        if interval_minutes is not None:
            self.interval_minutes = interval_minutes

        if self.running:
            logger.info("Scheduler already running, restarting timer")
            self._stop_event.set()

        self._tasks = [task for task in self._tasks if not task.done()]
        self._stop_event = asyncio.Event()
        self._tasks.append(asyncio.create_task(self._run(self._stop_event)))
        logger.info(f"Monitoring started with {self.interval_minutes} minute intervals")

    def stop(self) -> None:
        """Prevent future ticks. No-op when not running."""
        if not self.running:
            return
        self._stop_event.set()
        logger.info("Monitoring stopped")

    async def wait_stopped(self) -> None:
        """Wait for every stopped loop to exit, including a tick in progress."""
        retired = self._tasks[:-1] if self.running else list(self._tasks)
        if retired:
            await asyncio.gather(*retired, return_exceptions=True)

    @property
    def active_loops(self) -> int:
        """Loop tasks that have not exited yet."""
        return sum(1 for task in self._tasks if not task.done())

    async def run_once(self) -> Any:
        """Invoke the callback directly, outside the timer."""
        self.tick_count += 1
        return await self._callback()

    async def _run(self, stop_event: asyncio.Event) -> None:
        """
        Loop until ``stop_event`` is set.

        The event is checked only between ticks, so a tick in progress
        always runs to completion.
        """
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.run_once()
            except Exception as e:
                log_error_with_context(logger, f"Scheduled tick failed: {e}", e)

        logger.debug("Scheduler loop exited")
