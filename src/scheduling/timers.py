"""Timer schedulers for deferred tasks.

The debouncer and the fallback poller never touch the event loop's clock
directly; they go through a ``TimerScheduler`` so that tests can swap in
``ManualTimers`` and advance virtual time deterministically.
"""

import asyncio
import heapq
import itertools
import logging
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class TimerScheduler(Protocol):
    """Schedules callbacks after a delay in seconds."""

    def now(self) -> float:
        ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        ...


class LoopTimers:
    """Timer scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(delay, callback)


class ManualTimer:
    """Handle returned by ``ManualTimers``."""

    def __init__(self, when: float, callback: Callable[[], None]):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualTimers:
    """Virtual-time scheduler: nothing fires until ``advance()`` is called."""

    def __init__(self, start: float = 0.0):
        self._now = start
        self._queue: list[tuple[float, int, ManualTimer]] = []
        self._counter = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self._now + max(0.0, delay), callback)
        heapq.heappush(self._queue, (timer.when, next(self._counter), timer))
        return timer

    @property
    def pending(self) -> int:
        """Number of armed, uncancelled timers."""
        return sum(1 for _, _, timer in self._queue if not timer.cancelled)

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing due timers in order.

        Timers scheduled by a firing callback also fire if they fall inside
        the advanced span. Returns the number of callbacks run.
        """
        target = self._now + seconds
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            when, _, timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now = when
            timer.callback()
            fired += 1
        self._now = target
        return fired
