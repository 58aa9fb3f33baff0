"""Fallback poller: periodic forced refresh as a safety net for missed pushes."""

import logging
from typing import Any, Callable

from scheduling.timers import LoopTimers, TimerHandle, TimerScheduler

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 30.0


class FallbackPoller:
    """Runs ``action`` every ``interval`` seconds while ``should_poll()`` is true.

    The poller keeps ticking while the condition is false so that it resumes
    by itself once the condition holds again.
    """

    def __init__(
        self,
        action: Callable[[], Any],
        interval: float = DEFAULT_POLL_INTERVAL,
        timers: TimerScheduler | None = None,
        should_poll: Callable[[], bool] | None = None,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.action = action
        self.interval = interval
        self.timers = timers or LoopTimers()
        self.should_poll = should_poll or (lambda: True)

        self.poll_count = 0
        self._running = False
        self._timer: TimerHandle | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start polling."""
        if self._running:
            return
        self._running = True
        self._arm()
        logger.info(f"Fallback poller started (interval: {self.interval}s)")

    def stop(self) -> None:
        """Stop polling."""
        if not self._running:
            return
        self._running = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        logger.info("Fallback poller stopped")

    def _arm(self) -> None:
        self._timer = self.timers.call_later(self.interval, self._tick)

    def _tick(self) -> None:
        self._timer = None
        if not self._running:
            return
        try:
            if self.should_poll():
                self.poll_count += 1
                logger.debug(f"Fallback poll #{self.poll_count}")
                self.action()
        except Exception as e:
            logger.error(f"Fallback poll error: {e}")
        finally:
            if self._running:
                self._arm()
