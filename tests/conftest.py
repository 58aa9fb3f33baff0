"""Pytest configuration and fixtures for calendar engine tests."""

import asyncio
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from config import CalendarConfig, EngineConfig
from models.room import Room
from models.stay import Stay, StayStatus, StayUpdate
from scheduling.timers import ManualTimers
from stores.base import RoomFilter, StayFilter


def make_stay(
    stay_id: str = "A",
    room_id: str | None = "R101",
    check_in: date | None = date(2025, 8, 18),
    check_out: date | None = date(2025, 8, 20),
    status: StayStatus = StayStatus.CONFIRMED,
    **kwargs: Any,
) -> Stay:
    """Build a stay with sensible defaults."""
    kwargs.setdefault("total_amount", Decimal("200.00"))
    kwargs.setdefault("adults", 2)
    return Stay(
        id=stay_id,
        room_id=room_id,
        check_in=check_in,
        check_out=check_out,
        status=status,
        **kwargs,
    )


class MemoryStayStore:
    """In-memory stay record store with hooks for failure injection."""

    def __init__(self, rooms: list[Room], stays: list[Stay]):
        self.rooms = list(rooms)
        self.stays = {stay.id: stay for stay in stays}
        self.fetch_calls = 0
        self.update_calls: list[tuple[str, StayUpdate]] = []
        self.fail_update: Exception | None = None
        self.fail_fetch: Exception | None = None
        self.gate: asyncio.Event | None = None

    async def fetch_rooms(self, filters: RoomFilter | None = None) -> list[Room]:
        if self.fail_fetch:
            raise self.fail_fetch
        return list(self.rooms)

    async def fetch_stays(self, filters: StayFilter | None = None) -> list[Stay]:
        self.fetch_calls += 1
        if self.fail_fetch:
            raise self.fail_fetch
        filters = filters or StayFilter()
        return [stay for stay in self.stays.values() if filters.matches(stay)]

    async def update_stay(self, stay_id: str, update: StayUpdate) -> Stay:
        self.update_calls.append((stay_id, update))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_update:
            raise self.fail_update
        updated = update.apply(self.stays[stay_id])
        self.stays[stay_id] = updated
        return updated


@pytest.fixture
def rooms() -> list[Room]:
    """Three rooms on one property."""
    return [
        Room(id="R101", number="101", property_id="p1"),
        Room(id="R102", number="102", property_id="p1"),
        Room(id="R103", number="103", room_type="suite", capacity=4, property_id="p1"),
    ]


@pytest.fixture
def stay_a() -> Stay:
    """Stay A: room R101, 2025-08-18 to 2025-08-20."""
    return make_stay()


@pytest.fixture
def memory_store(rooms: list[Room], stay_a: Stay) -> MemoryStayStore:
    return MemoryStayStore(rooms, [stay_a])


@pytest.fixture
def timers() -> ManualTimers:
    return ManualTimers()


@pytest.fixture
def engine_config() -> EngineConfig:
    """Engine config with a week view starting on Monday and no fetch retries."""
    return EngineConfig(
        property_id="p1",
        fetch_retries=1,
        calendar=CalendarConfig(week_starts_on="monday"),
    )
