"""Invalidation debouncer.

Coalesces bursts of refresh requests into one execution: every request
re-arms a deferred task, and only when the delay elapses without a new
request does the action run.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from scheduling.timers import LoopTimers, TimerHandle, TimerScheduler

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.5


class Debouncer:
    """Explicit arm / reset / fire debouncer around an async action."""

    def __init__(
        self,
        action: Callable[[], Awaitable[None]],
        delay: float = DEFAULT_DEBOUNCE_SECONDS,
        timers: TimerScheduler | None = None,
        name: str = "refresh",
    ):
        """Initialize debouncer.

        Args:
            action: Async callable run when the timer fires
            delay: Quiet period in seconds before the action runs
            timers: Timer scheduler (defaults to the running event loop)
            name: Name used in log messages
        """
        if delay < 0:
            raise ValueError("delay must be non-negative")
        self.action = action
        self.delay = delay
        self.timers = timers or LoopTimers()
        self.name = name

        self.request_count = 0
        self.fire_count = 0
        self._timer: TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def is_armed(self) -> bool:
        """Whether a request is waiting for its quiet period to elapse."""
        return self._timer is not None

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    def request(self) -> None:
        """Arm the timer, or reset it if already armed."""
        self.request_count += 1
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self.timers.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        """Drop a pending request without running the action."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def fire_now(self) -> asyncio.Task:
        """Run the action immediately, superseding any pending request."""
        self.cancel()
        return self._launch()

    def _fire(self) -> None:
        self._timer = None
        self._launch()

    def _launch(self) -> asyncio.Task:
        self.fire_count += 1
        logger.debug(f"Debounced {self.name} firing (#{self.fire_count})")
        task = asyncio.get_running_loop().create_task(self._run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self) -> None:
        try:
            await self.action()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Debounced {self.name} failed: {e}")

    async def wait_idle(self) -> None:
        """Wait until no action execution is in flight."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel the pending request and any in-flight execution."""
        self.cancel()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._tasks.clear()
