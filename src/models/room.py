"""Room model for the calendar engine."""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from models.base import parse_decimal, parse_int


class HousekeepingStatus(Enum):
    """Housekeeping state of a room."""

    CLEAN = "clean"
    DIRTY = "dirty"
    INSPECTED = "inspected"
    OUT_OF_ORDER = "out_of_order"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


@dataclass(frozen=True)
class Room:
    """A bookable room. Owned by the stay record store."""

    id: str
    number: str  # "101", "A-12"
    room_type: str = "standard"
    capacity: int = 2
    base_rate: Decimal = Decimal("0")
    status: HousekeepingStatus = HousekeepingStatus.CLEAN
    property_id: str | None = None

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Room":
        """Build a room from a store record (column names as stored)."""
        try:
            status = HousekeepingStatus(record.get("status") or "clean")
        except ValueError:
            status = HousekeepingStatus.CLEAN
        return cls(
            id=str(record["id"]),
            number=str(record.get("room_number") or record.get("number") or record["id"]),
            room_type=record.get("room_type") or "standard",
            capacity=parse_int(record.get("capacity"), default=2),
            base_rate=parse_decimal(record.get("base_rate")),
            status=status,
            property_id=record.get("property_id"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "room_number": self.number,
            "room_type": self.room_type,
            "capacity": self.capacity,
            "base_rate": str(self.base_rate),
            "status": self.status.value,
            "property_id": self.property_id,
        }
