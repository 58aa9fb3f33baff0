"""Grid builder: projects stays onto a room x date occupancy matrix."""

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Iterable

from models.room import Room
from models.stay import Stay, StayStatus
from models.window import ViewWindow

logger = logging.getLogger(__name__)

CellKey = tuple[str, date]


class CellMark(Enum):
    """How a stay sits in an occupied cell."""

    CHECK_IN = "check_in"
    STAYOVER = "stayover"


class IssueKind(Enum):
    """Data-integrity problems found while building a grid."""

    MISSING_ROOM = "missing_room"
    UNKNOWN_ROOM = "unknown_room"
    INVALID_DATES = "invalid_dates"


@dataclass(frozen=True)
class Placement:
    """A stay placed in one grid cell."""

    stay: Stay
    mark: CellMark

    @property
    def is_check_in(self) -> bool:
        return self.mark == CellMark.CHECK_IN


@dataclass(frozen=True)
class IntegrityIssue:
    """A stay excluded from the grid and why."""

    stay_id: str
    kind: IssueKind
    detail: str

    def to_dict(self) -> dict[str, Any]:
        return {"stay_id": self.stay_id, "kind": self.kind.value, "detail": self.detail}


@dataclass
class Grid:
    """Occupancy for every (room, date) pair of a window.

    ``cells`` holds occupancy only. ``changeovers`` is a separate annotation
    of checkout days inside the window, for drawing half-day markers; a stay
    listed there does not occupy that cell.
    """

    room_ids: list[str] = field(default_factory=list)
    dates: list[date] = field(default_factory=list)
    cells: dict[CellKey, list[Placement]] = field(default_factory=dict)
    changeovers: dict[CellKey, list[Stay]] = field(default_factory=dict)
    issues: list[IntegrityIssue] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """True when no cell holds a stay."""
        return not any(self.cells.values())

    def cell(self, room_id: str, day: date) -> list[Placement]:
        """Placements for a cell; empty for cells outside the grid."""
        return self.cells.get((room_id, day), [])

    def occupants(self, room_id: str, day: date) -> list[Stay]:
        return [p.stay for p in self.cell(room_id, day)]

    def checkouts(self, room_id: str, day: date) -> list[Stay]:
        return self.changeovers.get((room_id, day), [])

    def row(self, room_id: str) -> list[list[Placement]]:
        """Cells of one room in date order."""
        return [self.cell(room_id, day) for day in self.dates]

    def occupied_cell_count(self) -> int:
        return sum(1 for placements in self.cells.values() if placements)

    def to_dict(self) -> dict[str, Any]:
        """Nested ``{room_id: {date: [stay ids]}}`` view for serialization."""
        return {
            room_id: {
                day.isoformat(): [p.stay.id for p in self.cell(room_id, day)]
                for day in self.dates
            }
            for room_id in self.room_ids
        }


class GridBuilder:
    """Builds occupancy grids from rooms, stays and a view window.

    Stays whose room is missing or unknown, or whose dates are missing or
    malformed, are excluded and recorded as integrity issues; a bad record
    never aborts the build.
    """

    def __init__(self, hidden_statuses: Iterable[StayStatus] = ()):
        self.hidden_statuses = frozenset(hidden_statuses)

    def build(
        self,
        rooms: Iterable[Room],
        stays: Iterable[Stay],
        window: ViewWindow | Iterable[date],
    ) -> Grid:
        dates = list(window)
        room_ids = [room.id for room in rooms]
        grid = Grid(room_ids=room_ids, dates=dates)

        if not room_ids or not dates:
            return grid

        for room_id in room_ids:
            for day in dates:
                grid.cells[(room_id, day)] = []

        known_rooms = set(room_ids)
        first_day, last_day = dates[0], dates[-1]

        for stay in stays:
            if stay.status in self.hidden_statuses:
                continue

            issue = self._check(stay, known_rooms)
            if issue:
                grid.issues.append(issue)
                logger.warning(f"Excluding stay {stay.id} from grid: {issue.detail}")
                continue

            # Stays entirely outside the window need no per-date scan
            if stay.check_in > last_day or stay.check_out < first_day:
                continue

            for day in dates:
                if stay.check_in <= day < stay.check_out:
                    mark = CellMark.CHECK_IN if day == stay.check_in else CellMark.STAYOVER
                    grid.cells[(stay.room_id, day)].append(Placement(stay, mark))
                elif day == stay.check_out:
                    grid.changeovers.setdefault((stay.room_id, day), []).append(stay)

        return grid

    @staticmethod
    def _check(stay: Stay, known_rooms: set[str]) -> IntegrityIssue | None:
        if not stay.room_id:
            return IntegrityIssue(stay.id, IssueKind.MISSING_ROOM, "stay has no room reference")
        if stay.room_id not in known_rooms:
            return IntegrityIssue(
                stay.id, IssueKind.UNKNOWN_ROOM, f"room {stay.room_id} is not in the room set"
            )
        if not stay.has_valid_dates:
            return IntegrityIssue(
                stay.id,
                IssueKind.INVALID_DATES,
                f"invalid dates check_in={stay.check_in} check_out={stay.check_out}",
            )
        return None


def build_grid(
    rooms: Iterable[Room],
    stays: Iterable[Stay],
    window: ViewWindow | Iterable[date],
) -> Grid:
    """Build a grid with the default builder."""
    return GridBuilder().build(rooms, stays, window)
