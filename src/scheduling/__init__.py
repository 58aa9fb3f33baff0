"""Deferred and periodic tasks for the calendar engine."""

from scheduling.debounce import Debouncer
from scheduling.poller import FallbackPoller
from scheduling.timers import LoopTimers, ManualTimers, TimerScheduler

__all__ = ["Debouncer", "FallbackPoller", "LoopTimers", "ManualTimers", "TimerScheduler"]
