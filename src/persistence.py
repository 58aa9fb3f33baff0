"""SQLite-backed stay record store."""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite

from models.base import EntityKind
from models.room import HousekeepingStatus, Room
from models.stay import Stay, StayStatus, StayUpdate
from realtime.channel import ChangeEvent, ChangeOperation, LocalChangeChannel
from stores.base import RoomFilter, StayFilter
from utils.errors import MutationRejectedError, StayNotFoundError, StoreError

logger = logging.getLogger(__name__)

# Default database path
DEFAULT_DB_PATH = Path.home() / ".local" / "share" / "innsync" / "calendar.db"

ROOM_COLUMNS = ("id", "room_number", "room_type", "capacity", "base_rate", "status", "property_id")

STAY_COLUMNS = (
    "id",
    "room_id",
    "guest_id",
    "guest_name",
    "confirmation_number",
    "check_in_date",
    "check_out_date",
    "status",
    "adults",
    "children",
    "total_amount",
    "notes",
    "property_id",
    "updated_at",
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SqliteStayStore:
    """Persistent rooms and stays in SQLite.

    Every write publishes a ``ChangeEvent`` to the attached channel, which is
    how the engine's change feed learns about mutations made through this
    store (by this process or by the CLI).
    """

    def __init__(
        self,
        db_path: Path | str | None = None,
        channel: LocalChangeChannel | None = None,
        enforce_no_overlap: bool = False,
    ):
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self.channel = channel
        self.enforce_no_overlap = enforce_no_overlap
        self._db: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Initialize the database and create tables."""
        # Ensure directory exists
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(str(self.db_path))
        self._db.row_factory = aiosqlite.Row

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS rooms (
                id TEXT PRIMARY KEY,
                room_number TEXT NOT NULL,
                room_type TEXT NOT NULL DEFAULT 'standard',
                capacity INTEGER NOT NULL DEFAULT 2,
                base_rate TEXT NOT NULL DEFAULT '0',
                status TEXT NOT NULL DEFAULT 'clean',
                property_id TEXT
            )
        """)

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS stays (
                id TEXT PRIMARY KEY,
                room_id TEXT,
                guest_id TEXT,
                guest_name TEXT,
                confirmation_number TEXT,
                check_in_date TEXT,
                check_out_date TEXT,
                status TEXT NOT NULL DEFAULT 'confirmed',
                adults INTEGER NOT NULL DEFAULT 1,
                children INTEGER NOT NULL DEFAULT 0,
                total_amount TEXT NOT NULL DEFAULT '0',
                notes TEXT,
                property_id TEXT,
                updated_at TEXT
            )
        """)

        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_stays_room_dates
            ON stays(room_id, check_in_date, check_out_date)
        """)

        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_stays_property
            ON stays(property_id, check_in_date)
        """)

        await self._db.commit()
        logger.info(f"Initialized calendar database at {self.db_path}")

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StoreError("Calendar database is not initialized")
        return self._db

    def _publish(
        self,
        kind: EntityKind,
        operation: ChangeOperation,
        new: dict[str, Any] | None = None,
        old: dict[str, Any] | None = None,
    ) -> None:
        if self.channel is None:
            return
        delivered = self.channel.publish(ChangeEvent(kind, operation, new=new, old=old))
        logger.debug(f"Published {kind.value} {operation.value} to {delivered} subscriber(s)")

    # Rooms

    async def add_room(self, room: Room) -> Room:
        """Insert or replace a room."""
        db = self._conn()
        record = room.to_dict()
        async with self._lock:
            await db.execute(
                f"""
                INSERT OR REPLACE INTO rooms ({", ".join(ROOM_COLUMNS)})
                VALUES ({", ".join("?" for _ in ROOM_COLUMNS)})
                """,
                tuple(record[col] for col in ROOM_COLUMNS),
            )
            await db.commit()
        self._publish(EntityKind.ROOM, ChangeOperation.INSERT, new=record)
        return room

    async def get_room(self, room_id: str) -> Room | None:
        db = self._conn()
        async with self._lock:
            async with db.execute("SELECT * FROM rooms WHERE id = ?", (room_id,)) as cursor:
                row = await cursor.fetchone()
        return Room.from_record(dict(row)) if row else None

    async def fetch_rooms(self, filters: RoomFilter | None = None) -> list[Room]:
        """Fetch rooms ordered by room number."""
        db = self._conn()
        filters = filters or RoomFilter()

        clauses: list[str] = []
        params: list[Any] = []
        if filters.property_id:
            clauses.append("property_id = ?")
            params.append(filters.property_id)
        if filters.room_ids:
            clauses.append(f"id IN ({', '.join('?' for _ in filters.room_ids)})")
            params.extend(filters.room_ids)

        query = "SELECT * FROM rooms"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY room_number"

        rooms = []
        async with self._lock:
            async with db.execute(query, params) as cursor:
                async for row in cursor:
                    rooms.append(Room.from_record(dict(row)))
        return rooms

    async def set_room_status(self, room_id: str, status: HousekeepingStatus) -> Room:
        """Change a room's housekeeping status."""
        db = self._conn()
        async with self._lock:
            async with db.execute("SELECT * FROM rooms WHERE id = ?", (room_id,)) as cursor:
                row = await cursor.fetchone()
            if not row:
                raise StoreError(f"Room {room_id} not found", status_code=404)
            old = dict(row)
            await db.execute("UPDATE rooms SET status = ? WHERE id = ?", (status.value, room_id))
            await db.commit()

        new = {**old, "status": status.value}
        self._publish(EntityKind.ROOM, ChangeOperation.UPDATE, new=new, old=old)
        logger.info(f"Room {old['room_number']} status: {old['status']} -> {status.value}")
        return Room.from_record(new)

    # Stays

    async def add_stay(self, stay: Stay) -> Stay:
        """Insert or replace a stay."""
        db = self._conn()
        record = stay.to_dict()
        record["updated_at"] = record["updated_at"] or _now()
        async with self._lock:
            await db.execute(
                f"""
                INSERT OR REPLACE INTO stays ({", ".join(STAY_COLUMNS)})
                VALUES ({", ".join("?" for _ in STAY_COLUMNS)})
                """,
                tuple(record[col] for col in STAY_COLUMNS),
            )
            await db.commit()
        self._publish(EntityKind.STAY, ChangeOperation.INSERT, new=record)
        return Stay.from_record(record)

    async def get_stay(self, stay_id: str) -> Stay | None:
        db = self._conn()
        async with self._lock:
            async with db.execute("SELECT * FROM stays WHERE id = ?", (stay_id,)) as cursor:
                row = await cursor.fetchone()
        return Stay.from_record(dict(row)) if row else None

    async def fetch_stays(self, filters: StayFilter | None = None) -> list[Stay]:
        """Fetch stays matching the filter, ordered by check-in date.

        Rows with a missing date are returned regardless of the date range so
        that the grid builder can report them.
        """
        db = self._conn()
        filters = filters or StayFilter()

        clauses: list[str] = []
        params: list[Any] = []
        if filters.property_id:
            clauses.append("(property_id = ? OR property_id IS NULL)")
            params.append(filters.property_id)
        if filters.start is not None and filters.end is not None:
            clauses.append(
                "(check_in_date IS NULL OR check_out_date IS NULL"
                " OR (check_in_date < ? AND check_out_date > ?))"
            )
            params.extend([filters.end.isoformat(), filters.start.isoformat()])
        if filters.room_ids:
            clauses.append(f"room_id IN ({', '.join('?' for _ in filters.room_ids)})")
            params.extend(filters.room_ids)
        if filters.statuses:
            clauses.append(f"status IN ({', '.join('?' for _ in filters.statuses)})")
            params.extend(s.value for s in filters.statuses)

        query = "SELECT * FROM stays"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY check_in_date, id"

        stays = []
        async with self._lock:
            async with db.execute(query, params) as cursor:
                async for row in cursor:
                    stays.append(Stay.from_record(dict(row)))
        return stays

    async def update_stay(self, stay_id: str, update: StayUpdate) -> Stay:
        """Apply a partial update and return the stored record.

        Raises:
            StayNotFoundError: If no stay has this id
            MutationRejectedError: If the result would be invalid, or would
                overlap another stay in the same room while overlap checking
                is enabled
        """
        db = self._conn()
        async with self._lock:
            async with db.execute("SELECT * FROM stays WHERE id = ?", (stay_id,)) as cursor:
                row = await cursor.fetchone()
            if not row:
                raise StayNotFoundError(stay_id)

            old_record = dict(row)
            updated = update.apply(Stay.from_record(old_record))
            if not updated.has_valid_dates:
                raise MutationRejectedError(stay_id, "check-out must be after check-in", 400)

            if self.enforce_no_overlap and updated.status != StayStatus.CANCELLED:
                conflict = await self._find_conflict(db, updated)
                if conflict:
                    raise MutationRejectedError(
                        stay_id, f"overlaps stay {conflict} in room {updated.room_id}", 409
                    )

            changes = update.to_record()
            changes["updated_at"] = _now()
            assignments = ", ".join(f"{col} = ?" for col in changes)
            await db.execute(
                f"UPDATE stays SET {assignments} WHERE id = ?",
                (*changes.values(), stay_id),
            )
            await db.commit()

        new_record = {**old_record, **changes}
        self._publish(EntityKind.STAY, ChangeOperation.UPDATE, new=new_record, old=old_record)
        logger.info(f"Updated stay {stay_id}: {update.to_record()}")
        return Stay.from_record(new_record)

    async def _find_conflict(self, db: aiosqlite.Connection, stay: Stay) -> str | None:
        async with db.execute(
            """
            SELECT id FROM stays
            WHERE room_id = ? AND id != ? AND status != ?
              AND check_in_date < ? AND check_out_date > ?
            LIMIT 1
            """,
            (
                stay.room_id,
                stay.id,
                StayStatus.CANCELLED.value,
                stay.check_out.isoformat(),
                stay.check_in.isoformat(),
            ),
        ) as cursor:
            row = await cursor.fetchone()
        return row["id"] if row else None

    async def delete_stay(self, stay_id: str) -> bool:
        """Delete a stay. Returns False if it did not exist."""
        db = self._conn()
        async with self._lock:
            async with db.execute("SELECT * FROM stays WHERE id = ?", (stay_id,)) as cursor:
                row = await cursor.fetchone()
            if not row:
                return False
            await db.execute("DELETE FROM stays WHERE id = ?", (stay_id,))
            await db.commit()

        self._publish(EntityKind.STAY, ChangeOperation.DELETE, old=dict(row))
        return True
