"""View windows: the contiguous date ranges the grid and aggregator work over."""

from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Iterator


class ViewType(Enum):
    """Calendar view layouts."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    TIMELINE = "timeline"


class NavigateDirection(Enum):
    PREV = "prev"
    NEXT = "next"
    TODAY = "today"


# Map week start names to date.weekday() numbers (0=Monday)
WEEKDAYS = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

DEFAULT_TIMELINE_DAYS = 30


@dataclass(frozen=True)
class ViewWindow:
    """An ordered, contiguous sequence of dates."""

    view_type: ViewType
    anchor: date
    dates: tuple[date, ...]

    def __post_init__(self) -> None:
        for prev, cur in zip(self.dates, self.dates[1:]):
            if cur - prev != timedelta(days=1):
                raise ValueError("View window dates must be contiguous and ascending")

    def __iter__(self) -> Iterator[date]:
        return iter(self.dates)

    def __len__(self) -> int:
        return len(self.dates)

    def __contains__(self, day: object) -> bool:
        if not isinstance(day, date) or not self.dates:
            return False
        return self.start <= day <= self.end

    @property
    def start(self) -> date:
        return self.dates[0]

    @property
    def end(self) -> date:
        """Last date in the window (inclusive)."""
        return self.dates[-1]

    @property
    def end_exclusive(self) -> date:
        """Day after the last date, for half-open overlap queries."""
        return self.dates[-1] + timedelta(days=1)

    @classmethod
    def from_range(cls, start: date, end: date, view_type: ViewType = ViewType.TIMELINE) -> "ViewWindow":
        """Window covering ``start`` through ``end`` inclusive."""
        if end < start:
            raise ValueError(f"Window end {end} is before start {start}")
        days = (end - start).days + 1
        return cls(view_type, start, tuple(start + timedelta(days=i) for i in range(days)))


def start_of_week(day: date, week_starts_on: str = "sunday") -> date:
    first = WEEKDAYS[week_starts_on.lower()]
    return day - timedelta(days=(day.weekday() - first) % 7)


def _month_bounds(day: date) -> tuple[date, date]:
    first = day.replace(day=1)
    if first.month == 12:
        next_first = first.replace(year=first.year + 1, month=1)
    else:
        next_first = first.replace(month=first.month + 1)
    return first, next_first - timedelta(days=1)


def build_window(
    view_type: ViewType,
    anchor: date,
    week_starts_on: str = "sunday",
    timeline_days: int = DEFAULT_TIMELINE_DAYS,
) -> ViewWindow:
    """Build the window a view shows around ``anchor``.

    - day: the anchor date
    - week: the week containing the anchor
    - month: the calendar month containing the anchor
    - timeline: ``timeline_days`` days starting at the anchor
    """
    if view_type == ViewType.DAY:
        start, end = anchor, anchor
    elif view_type == ViewType.WEEK:
        start = start_of_week(anchor, week_starts_on)
        end = start + timedelta(days=6)
    elif view_type == ViewType.MONTH:
        start, end = _month_bounds(anchor)
    elif view_type == ViewType.TIMELINE:
        if timeline_days < 1:
            raise ValueError("timeline_days must be at least 1")
        start = anchor
        end = anchor + timedelta(days=timeline_days - 1)
    else:
        raise ValueError(f"Unknown view type: {view_type}")

    window = ViewWindow.from_range(start, end, view_type)
    return ViewWindow(view_type, anchor, window.dates)


def navigate(
    window: ViewWindow,
    direction: NavigateDirection,
    today: date | None = None,
    week_starts_on: str = "sunday",
    timeline_days: int = DEFAULT_TIMELINE_DAYS,
) -> ViewWindow:
    """Move a window one view-length backwards or forwards, or back to today."""
    if direction == NavigateDirection.TODAY:
        anchor = today or date.today()
    else:
        step = 1 if direction == NavigateDirection.NEXT else -1
        view_type = window.view_type
        if view_type == ViewType.DAY:
            anchor = window.anchor + timedelta(days=step)
        elif view_type == ViewType.WEEK:
            anchor = window.anchor + timedelta(days=7 * step)
        elif view_type == ViewType.MONTH:
            first = window.anchor.replace(day=1)
            if step > 0:
                anchor = _month_bounds(first)[1] + timedelta(days=1)
            else:
                anchor = (first - timedelta(days=1)).replace(day=1)
        else:
            anchor = window.anchor + timedelta(days=len(window) * step)

    return build_window(window.view_type, anchor, week_starts_on, timeline_days)
