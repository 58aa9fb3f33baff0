"""Stay record store contract.

The store is the authoritative owner of rooms and stays. The engine only reads
from it and sends partial updates; persistence itself lives behind this
protocol (see ``persistence.SqliteStayStore`` and
``services.rest_store.RestStayStore``).
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Protocol

from models.room import Room
from models.stay import Stay, StayStatus, StayUpdate


@dataclass(frozen=True)
class RoomFilter:
    """Filter for fetching rooms."""

    property_id: str | None = None
    room_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class StayFilter:
    """Filter for fetching stays.

    ``start``/``end`` select stays whose ``[check_in, check_out)`` overlaps the
    half-open range ``[start, end)``.
    """

    property_id: str | None = None
    start: date | None = None
    end: date | None = None
    room_ids: tuple[str, ...] = ()
    statuses: tuple[StayStatus, ...] = field(default_factory=tuple)

    def matches(self, stay: Stay) -> bool:
        """Apply the filter in memory, with the same semantics as the stores."""
        if self.property_id and stay.property_id and stay.property_id != self.property_id:
            return False
        if self.room_ids and stay.room_id not in self.room_ids:
            return False
        if self.statuses and stay.status not in self.statuses:
            return False
        if self.start is not None and self.end is not None:
            if stay.check_in is None or stay.check_out is None:
                # Malformed records are passed through so the grid can flag them
                return True
            return stay.check_in < self.end and stay.check_out > self.start
        return True


class StayStore(Protocol):
    """Read and update-by-id access to rooms and stays."""

    async def fetch_rooms(self, filters: RoomFilter | None = None) -> list[Room]:
        ...

    async def fetch_stays(self, filters: StayFilter | None = None) -> list[Stay]:
        ...

    async def update_stay(self, stay_id: str, update: StayUpdate) -> Stay:
        """Apply a partial update and return the updated record.

        Raises:
            MutationRejectedError: If the store refuses the change
            StoreError: On any other store failure
        """
        ...
