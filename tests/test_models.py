"""Tests for calendar models."""

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from conftest import make_stay
from models.base import parse_date, parse_decimal, parse_int
from models.notification import Notification, NotificationCategory
from models.room import HousekeepingStatus, Room
from models.stay import Stay, StayStatus, StayUpdate
from models.window import (
    NavigateDirection,
    ViewType,
    ViewWindow,
    build_window,
    navigate,
    start_of_week,
)


class TestParsing:
    """Tests for record parsing helpers."""

    def test_parse_date_from_string(self):
        assert parse_date("2025-08-18") == date(2025, 8, 18)

    def test_parse_date_truncates_timestamps(self):
        assert parse_date("2025-08-18T23:30:00+07:00") == date(2025, 8, 18)

    def test_parse_date_accepts_datetime(self):
        assert parse_date(datetime(2025, 8, 18, 12, 0)) == date(2025, 8, 18)

    def test_parse_date_invalid(self):
        assert parse_date("not a date") is None
        assert parse_date(None) is None
        assert parse_date(12345) is None

    def test_parse_decimal(self):
        assert parse_decimal("150.50") == Decimal("150.50")
        assert parse_decimal(0.1) == Decimal("0.1")
        assert parse_decimal(None) == Decimal("0")
        assert parse_decimal("abc") == Decimal("0")

    def test_parse_int(self):
        assert parse_int("3") == 3
        assert parse_int(None, default=1) == 1
        assert parse_int(-2) == 0
        assert parse_int("x", default=2) == 2


class TestStay:
    """Tests for the Stay model."""

    def test_half_open_occupancy(self, stay_a):
        assert stay_a.occupies(date(2025, 8, 18))
        assert stay_a.occupies(date(2025, 8, 19))
        assert not stay_a.occupies(date(2025, 8, 20))
        assert not stay_a.occupies(date(2025, 8, 17))

    def test_nights_and_duration(self, stay_a):
        assert stay_a.nights == 2
        assert stay_a.duration == timedelta(days=2)

    def test_invalid_dates(self):
        stay = make_stay(check_in=date(2025, 8, 20), check_out=date(2025, 8, 20))
        assert not stay.has_valid_dates
        assert stay.nights == 0
        assert not stay.occupies(date(2025, 8, 20))
        assert not stay.overlaps(date(2025, 8, 1), date(2025, 9, 1))

    def test_overlaps(self, stay_a):
        assert stay_a.overlaps(date(2025, 8, 19), date(2025, 8, 21))
        assert not stay_a.overlaps(date(2025, 8, 20), date(2025, 8, 22))
        assert not stay_a.overlaps(date(2025, 8, 15), date(2025, 8, 18))

    def test_guests(self):
        assert make_stay(adults=2, children=1).guests == 3

    def test_from_record_reservation_columns(self):
        record = {
            "id": 7,
            "room_id": "R101",
            "check_in_date": "2025-08-18",
            "check_out_date": "2025-08-20T00:00:00Z",
            "status": "checked_in",
            "adults": "2",
            "children": None,
            "total_amount": 350.5,
            "special_requests": "Late arrival",
            "guests": {"first_name": "Ana", "last_name": "Putri"},
            "updated_at": "2025-08-01T10:00:00Z",
        }
        stay = Stay.from_record(record)

        assert stay.id == "7"
        assert stay.check_in == date(2025, 8, 18)
        assert stay.check_out == date(2025, 8, 20)
        assert stay.status == StayStatus.CHECKED_IN
        assert stay.adults == 2
        assert stay.children == 0
        assert stay.total_amount == Decimal("350.5")
        assert stay.notes == "Late arrival"
        assert stay.guest_name == "Ana Putri"
        assert stay.updated_at is not None

    def test_from_record_unknown_status_is_pending(self, caplog):
        stay = Stay.from_record({"id": "x", "room_id": "R1", "status": "weird"})
        assert stay.status == StayStatus.PENDING
        assert stay.check_in is None
        assert "Stay x has unknown status 'weird'" in caplog.text

    def test_from_record_missing_status_is_confirmed(self, caplog):
        stay = Stay.from_record({"id": "x", "room_id": "R1"})
        assert stay.status == StayStatus.CONFIRMED
        assert "unknown status" not in caplog.text

    def test_to_dict_round_trips_through_from_record(self, stay_a):
        assert Stay.from_record(stay_a.to_dict()) == stay_a

    def test_status_label(self):
        assert StayStatus.CHECKED_IN.label == "checked in"


class TestStayUpdate:
    def test_empty(self):
        assert StayUpdate().is_empty
        assert not StayUpdate(room_id="R102").is_empty

    def test_apply_returns_new_object(self, stay_a):
        update = StayUpdate(room_id="R102", check_in=date(2025, 8, 20), check_out=date(2025, 8, 22))
        moved = update.apply(stay_a)

        assert moved is not stay_a
        assert moved.room_id == "R102"
        assert moved.check_in == date(2025, 8, 20)
        assert stay_a.room_id == "R101"

    def test_apply_empty_is_identity(self, stay_a):
        assert StayUpdate().apply(stay_a) is stay_a

    def test_to_record(self):
        update = StayUpdate(check_in=date(2025, 8, 20), status=StayStatus.CANCELLED)
        assert update.to_record() == {"check_in_date": "2025-08-20", "status": "cancelled"}


class TestRoom:
    def test_from_record(self):
        room = Room.from_record(
            {"id": "R1", "room_number": "101", "status": "out_of_order", "base_rate": "80"}
        )
        assert room.number == "101"
        assert room.status == HousekeepingStatus.OUT_OF_ORDER
        assert room.base_rate == Decimal("80")
        assert room.status.label == "out of order"

    def test_unknown_status_defaults_to_clean(self):
        room = Room.from_record({"id": "R1", "number": "1", "status": "sparkling"})
        assert room.status == HousekeepingStatus.CLEAN


class TestNotification:
    def test_defaults(self):
        n = Notification(NotificationCategory.CREATED, "New reservation", "msg")
        assert not n.read
        assert n.id
        assert n.to_dict()["category"] == "created"


class TestViewWindow:
    """Tests for view windows and navigation."""

    def test_day_window(self):
        window = build_window(ViewType.DAY, date(2025, 8, 18))
        assert list(window) == [date(2025, 8, 18)]

    def test_week_window_sunday_start(self):
        # 2025-08-20 is a Wednesday
        window = build_window(ViewType.WEEK, date(2025, 8, 20))
        assert window.start == date(2025, 8, 17)
        assert window.end == date(2025, 8, 23)
        assert len(window) == 7

    def test_week_window_monday_start(self):
        window = build_window(ViewType.WEEK, date(2025, 8, 20), week_starts_on="monday")
        assert window.start == date(2025, 8, 18)

    def test_start_of_week_on_boundary(self):
        assert start_of_week(date(2025, 8, 17)) == date(2025, 8, 17)

    def test_month_window(self):
        window = build_window(ViewType.MONTH, date(2024, 2, 10))
        assert window.start == date(2024, 2, 1)
        assert window.end == date(2024, 2, 29)

    def test_timeline_window(self):
        window = build_window(ViewType.TIMELINE, date(2025, 8, 18), timeline_days=14)
        assert len(window) == 14
        assert window.end_exclusive == date(2025, 9, 1)

    def test_contains(self):
        window = build_window(ViewType.WEEK, date(2025, 8, 20))
        assert date(2025, 8, 23) in window
        assert date(2025, 8, 24) not in window

    def test_non_contiguous_dates_rejected(self):
        with pytest.raises(ValueError):
            ViewWindow(ViewType.DAY, date(2025, 8, 1), (date(2025, 8, 1), date(2025, 8, 3)))

    def test_from_range_rejects_reversed(self):
        with pytest.raises(ValueError):
            ViewWindow.from_range(date(2025, 8, 5), date(2025, 8, 1))

    def test_navigate_week(self):
        window = build_window(ViewType.WEEK, date(2025, 8, 20))
        nxt = navigate(window, NavigateDirection.NEXT)
        prev = navigate(window, NavigateDirection.PREV)
        assert nxt.start == date(2025, 8, 24)
        assert prev.start == date(2025, 8, 10)

    def test_navigate_month_across_year(self):
        window = build_window(ViewType.MONTH, date(2025, 12, 31))
        nxt = navigate(window, NavigateDirection.NEXT)
        assert nxt.start == date(2026, 1, 1)
        assert nxt.end == date(2026, 1, 31)

        prev = navigate(build_window(ViewType.MONTH, date(2025, 1, 15)), NavigateDirection.PREV)
        assert prev.start == date(2024, 12, 1)

    def test_navigate_today(self):
        window = build_window(ViewType.DAY, date(2025, 8, 20))
        today = navigate(window, NavigateDirection.TODAY, today=date(2025, 1, 2))
        assert list(today) == [date(2025, 1, 2)]
