"""Calendar engine orchestration."""

from engine.manager import RANGE_VIEW, WINDOW_VIEW, CalendarEngine

__all__ = ["CalendarEngine", "RANGE_VIEW", "WINDOW_VIEW"]
