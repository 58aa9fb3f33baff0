"""Availability and statistics over a date window.

Both are pure functions of the room and stay sets. Occupancy overlap uses the
half-open rule ``check_in < end and check_out > start``; check-in and
check-out counters treat the boundary as a point event and count it when it
falls in ``[start, end]`` inclusive.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Iterable

from grid.builder import Grid
from models.room import Room
from models.stay import Stay, StayStatus


@dataclass
class RoomAvailability:
    """Free/busy result for one room."""

    room: Room
    conflicts: list[Stay] = field(default_factory=list)

    @property
    def is_available(self) -> bool:
        return not self.conflicts

    @property
    def reservation_count(self) -> int:
        return len(self.conflicts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "room_id": self.room.id,
            "room_number": self.room.number,
            "is_available": self.is_available,
            "reservation_count": self.reservation_count,
            "conflicting_stays": [stay.id for stay in self.conflicts],
        }


@dataclass
class CalendarStats:
    """Period-level statistics."""

    status_counts: dict[StayStatus, int] = field(default_factory=dict)
    total_revenue: Decimal = Decimal("0")
    total_guests: int = 0
    check_ins: int = 0
    check_outs: int = 0
    total_stays: int = 0

    def count(self, status: StayStatus) -> int:
        return self.status_counts.get(status, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status_counts": {status.value: n for status, n in self.status_counts.items()},
            "total_revenue": str(self.total_revenue),
            "total_guests": self.total_guests,
            "check_ins_in_period": self.check_ins,
            "check_outs_in_period": self.check_outs,
            "total_stays": self.total_stays,
        }


def _check_window(start: date, end: date) -> None:
    if end < start:
        raise ValueError(f"Window end {end} is before start {start}")


def availability(
    rooms: Iterable[Room],
    stays: Iterable[Stay],
    start: date,
    end: date,
) -> list[RoomAvailability]:
    """Per-room free/busy for ``[start, end)``.

    Cancelled stays never conflict. Results follow the order of ``rooms``.
    """
    _check_window(start, end)
    results = {room.id: RoomAvailability(room) for room in rooms}

    for stay in stays:
        if stay.is_cancelled or stay.room_id not in results:
            continue
        if stay.overlaps(start, end):
            results[stay.room_id].conflicts.append(stay)

    return list(results.values())


def stats(stays: Iterable[Stay], start: date, end: date) -> CalendarStats:
    """Aggregate statistics for stays overlapping ``[start, end)``.

    A stay that spans the whole window still counts toward status, revenue and
    guest totals, but only toward check-ins/check-outs when its boundary date
    is inside ``[start, end]``.
    """
    _check_window(start, end)
    result = CalendarStats()

    for stay in stays:
        if not stay.overlaps(start, end):
            continue

        result.total_stays += 1
        result.status_counts[stay.status] = result.status_counts.get(stay.status, 0) + 1

        if not stay.is_cancelled:
            result.total_revenue += stay.total_amount

        result.total_guests += stay.guests

        if start <= stay.check_in <= end:
            result.check_ins += 1
        if start <= stay.check_out <= end:
            result.check_outs += 1

    return result


def occupancy_rate(grid: Grid) -> float:
    """Occupied room-nights over available room-nights for a grid's window."""
    total = len(grid.room_ids) * len(grid.dates)
    if total == 0:
        return 0.0
    occupied = sum(
        1
        for placements in grid.cells.values()
        if any(not p.stay.is_cancelled for p in placements)
    )
    return occupied / total
