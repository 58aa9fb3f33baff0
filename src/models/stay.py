"""Stay (reservation) model.

A stay occupies every date of the half-open interval ``[check_in, check_out)``;
the checkout date itself is a changeover day and is not occupied.
"""

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any

from models.base import parse_date, parse_decimal, parse_int

logger = logging.getLogger(__name__)


class StayStatus(Enum):
    """Lifecycle status of a stay."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


@dataclass(frozen=True)
class Stay:
    """A guest's booked occupancy of one room.

    Dates may be None when the source record was malformed; such stays are
    kept so the grid builder can flag them instead of dropping them silently.
    """

    id: str
    room_id: str | None
    check_in: date | None
    check_out: date | None
    status: StayStatus = StayStatus.CONFIRMED
    guest_id: str | None = None
    adults: int = 1
    children: int = 0
    total_amount: Decimal = Decimal("0")
    notes: str | None = None
    confirmation_number: str | None = None
    guest_name: str | None = None
    property_id: str | None = None
    updated_at: datetime | None = None

    @property
    def has_valid_dates(self) -> bool:
        """Whether the stay covers at least one night."""
        return (
            self.check_in is not None
            and self.check_out is not None
            and self.check_out > self.check_in
        )

    @property
    def nights(self) -> int:
        if not self.has_valid_dates:
            return 0
        return (self.check_out - self.check_in).days

    @property
    def duration(self) -> timedelta:
        if not self.has_valid_dates:
            return timedelta(0)
        return self.check_out - self.check_in

    @property
    def guests(self) -> int:
        return self.adults + self.children

    @property
    def is_cancelled(self) -> bool:
        return self.status == StayStatus.CANCELLED

    def occupies(self, day: date) -> bool:
        """Whether the stay occupies the room on ``day``."""
        if not self.has_valid_dates:
            return False
        return self.check_in <= day < self.check_out

    def overlaps(self, start: date, end: date) -> bool:
        """Half-open overlap with ``[start, end)``."""
        if not self.has_valid_dates:
            return False
        return self.check_in < end and self.check_out > start

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Stay":
        """Build a stay from a store record.

        Accepts both the reservation column names (``check_in_date``) and the
        short names used internally (``check_in``).
        """
        raw_status = record.get("status") or StayStatus.CONFIRMED.value
        try:
            status = StayStatus(raw_status)
        except ValueError:
            logger.warning(f"Stay {record.get('id')} has unknown status {raw_status!r}, treating as pending")
            status = StayStatus.PENDING

        guest_name = record.get("guest_name")
        guest = record.get("guests")
        if not guest_name and isinstance(guest, dict):
            guest_name = f"{guest.get('first_name', '')} {guest.get('last_name', '')}".strip() or None

        updated_at = record.get("updated_at")
        if isinstance(updated_at, str):
            try:
                updated_at = datetime.fromisoformat(updated_at.replace("Z", "+00:00"))
            except ValueError:
                updated_at = None

        room_id = record.get("room_id")
        return cls(
            id=str(record["id"]),
            room_id=str(room_id) if room_id is not None else None,
            check_in=parse_date(record.get("check_in_date", record.get("check_in"))),
            check_out=parse_date(record.get("check_out_date", record.get("check_out"))),
            status=status,
            guest_id=record.get("guest_id"),
            adults=parse_int(record.get("adults"), default=1),
            children=parse_int(record.get("children")),
            total_amount=parse_decimal(record.get("total_amount")),
            notes=record.get("notes") or record.get("special_requests"),
            confirmation_number=record.get("confirmation_number"),
            guest_name=guest_name,
            property_id=record.get("property_id"),
            updated_at=updated_at if isinstance(updated_at, datetime) else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "room_id": self.room_id,
            "guest_id": self.guest_id,
            "check_in_date": self.check_in.isoformat() if self.check_in else None,
            "check_out_date": self.check_out.isoformat() if self.check_out else None,
            "status": self.status.value,
            "adults": self.adults,
            "children": self.children,
            "total_amount": str(self.total_amount),
            "notes": self.notes,
            "confirmation_number": self.confirmation_number,
            "guest_name": self.guest_name,
            "property_id": self.property_id,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class StayUpdate:
    """Partial set of stay fields accepted by the store's update-by-id."""

    room_id: str | None = None
    check_in: date | None = None
    check_out: date | None = None
    status: StayStatus | None = None

    @property
    def is_empty(self) -> bool:
        return (
            self.room_id is None
            and self.check_in is None
            and self.check_out is None
            and self.status is None
        )

    def apply(self, stay: Stay) -> Stay:
        """Return ``stay`` with these changes applied."""
        changes: dict[str, Any] = {}
        if self.room_id is not None:
            changes["room_id"] = self.room_id
        if self.check_in is not None:
            changes["check_in"] = self.check_in
        if self.check_out is not None:
            changes["check_out"] = self.check_out
        if self.status is not None:
            changes["status"] = self.status
        return replace(stay, **changes) if changes else stay

    def to_record(self) -> dict[str, Any]:
        """Column/value pairs for the store."""
        record: dict[str, Any] = {}
        if self.room_id is not None:
            record["room_id"] = self.room_id
        if self.check_in is not None:
            record["check_in_date"] = self.check_in.isoformat()
        if self.check_out is not None:
            record["check_out_date"] = self.check_out.isoformat()
        if self.status is not None:
            record["status"] = self.status.value
        return record
