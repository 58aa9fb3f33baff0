"""Tests for the grid builder."""

import logging
from datetime import date

from conftest import make_stay
from grid.builder import CellMark, GridBuilder, IssueKind, build_grid
from models.stay import StayStatus
from models.window import ViewType, ViewWindow, build_window


def week_of_aug_17() -> ViewWindow:
    return build_window(ViewType.WEEK, date(2025, 8, 18))  # Sun 17 .. Sat 23


class TestGridBuilder:
    """Tests for GridBuilder.build."""

    def test_every_cell_initialized(self, rooms):
        grid = build_grid(rooms, [], week_of_aug_17())

        assert len(grid.cells) == 3 * 7
        assert all(placements == [] for placements in grid.cells.values())
        assert grid.is_empty

    def test_half_open_placement(self, rooms, stay_a):
        grid = build_grid(rooms, [stay_a], week_of_aug_17())

        assert grid.occupants("R101", date(2025, 8, 18)) == [stay_a]
        assert grid.occupants("R101", date(2025, 8, 19)) == [stay_a]
        assert grid.occupants("R101", date(2025, 8, 20)) == []
        assert grid.occupants("R101", date(2025, 8, 17)) == []
        assert grid.occupied_cell_count() == 2

    def test_check_in_and_stayover_marks(self, rooms, stay_a):
        grid = build_grid(rooms, [stay_a], week_of_aug_17())

        assert grid.cell("R101", date(2025, 8, 18))[0].mark == CellMark.CHECK_IN
        assert grid.cell("R101", date(2025, 8, 19))[0].mark == CellMark.STAYOVER

    def test_checkout_day_is_changeover_not_occupancy(self, rooms, stay_a):
        grid = build_grid(rooms, [stay_a], week_of_aug_17())

        assert grid.checkouts("R101", date(2025, 8, 20)) == [stay_a]
        assert grid.cell("R101", date(2025, 8, 20)) == []

    def test_back_to_back_stays_share_no_cell(self, rooms, stay_a):
        stay_b = make_stay("B", check_in=date(2025, 8, 20), check_out=date(2025, 8, 22))
        grid = build_grid(rooms, [stay_a, stay_b], week_of_aug_17())

        assert grid.occupants("R101", date(2025, 8, 20)) == [stay_b]
        assert grid.checkouts("R101", date(2025, 8, 20)) == [stay_a]

    def test_single_night_occupies_one_cell(self, rooms):
        stay = make_stay("S", check_in=date(2025, 8, 21), check_out=date(2025, 8, 22))
        grid = build_grid(rooms, [stay], week_of_aug_17())

        assert grid.occupied_cell_count() == 1
        assert grid.cell("R101", date(2025, 8, 21))[0].is_check_in

    def test_stay_spanning_window_has_no_check_in_mark(self, rooms):
        stay = make_stay("L", check_in=date(2025, 8, 10), check_out=date(2025, 8, 30))
        grid = build_grid(rooms, [stay], week_of_aug_17())

        marks = {p.mark for cell in grid.row("R101") for p in cell}
        assert marks == {CellMark.STAYOVER}
        assert grid.occupied_cell_count() == 7

    def test_stay_outside_window_ignored(self, rooms):
        stay = make_stay("X", check_in=date(2025, 9, 1), check_out=date(2025, 9, 3))
        grid = build_grid(rooms, [stay], week_of_aug_17())

        assert grid.is_empty
        assert grid.issues == []

    def test_empty_rooms_yield_empty_grid(self, stay_a):
        grid = build_grid([], [stay_a], week_of_aug_17())

        assert grid.cells == {}
        assert grid.is_empty

    def test_unknown_room_flagged(self, rooms, caplog):
        stay = make_stay("U", room_id="R999")
        with caplog.at_level(logging.WARNING):
            grid = build_grid(rooms, [stay], week_of_aug_17())

        assert grid.is_empty
        assert [issue.kind for issue in grid.issues] == [IssueKind.UNKNOWN_ROOM]
        assert "U" in caplog.text

    def test_missing_room_flagged(self, rooms):
        grid = build_grid(rooms, [make_stay("M", room_id=None)], week_of_aug_17())
        assert grid.issues[0].kind == IssueKind.MISSING_ROOM

    def test_invalid_dates_flagged(self, rooms):
        reversed_stay = make_stay("R", check_in=date(2025, 8, 20), check_out=date(2025, 8, 18))
        missing = make_stay("N", check_out=None)
        grid = build_grid(rooms, [reversed_stay, missing], week_of_aug_17())

        assert [issue.stay_id for issue in grid.issues] == ["R", "N"]
        assert all(issue.kind == IssueKind.INVALID_DATES for issue in grid.issues)

    def test_bad_record_does_not_abort_build(self, rooms, stay_a):
        grid = build_grid(rooms, [make_stay("U", room_id="R999"), stay_a], week_of_aug_17())

        assert grid.occupants("R101", date(2025, 8, 18)) == [stay_a]
        assert len(grid.issues) == 1

    def test_hidden_statuses(self, rooms, stay_a):
        cancelled = make_stay("C", room_id="R102", status=StayStatus.CANCELLED)
        builder = GridBuilder(hidden_statuses=[StayStatus.CANCELLED])
        grid = builder.build(rooms, [stay_a, cancelled], week_of_aug_17())

        assert grid.occupants("R102", date(2025, 8, 18)) == []
        assert grid.occupants("R101", date(2025, 8, 18)) == [stay_a]

    def test_to_dict(self, rooms, stay_a):
        grid = build_grid(rooms, [stay_a], week_of_aug_17())
        data = grid.to_dict()

        assert data["R101"]["2025-08-18"] == ["A"]
        assert data["R101"]["2025-08-20"] == []
        assert set(data) == {"R101", "R102", "R103"}
