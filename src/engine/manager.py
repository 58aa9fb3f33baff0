"""Calendar engine: wires the store, cache, grid, reschedule protocol and change feed.

The engine holds one cached view for the visible window (plus one for the
most recent ad-hoc availability/stats range, dropped on every refresh).
The grid and window stats are derived lazily from the cache, so an
optimistic patch is visible to the very next read without waiting for a
refresh.
"""

import asyncio
import logging
from datetime import date
from typing import Any, Callable

from availability.aggregator import CalendarStats, RoomAvailability, availability, stats
from config import EngineConfig
from grid.builder import Grid, GridBuilder
from models.notification import ConnectionState
from models.room import Room
from models.stay import Stay, StayStatus
from models.window import NavigateDirection, ViewType, ViewWindow, build_window, navigate
from realtime.channel import ChangeChannel
from realtime.listener import ChangeFeedListener
from realtime.notifications import NotificationCenter
from reschedule.cache import StayCache
from reschedule.protocol import CellRef, MoveOutcome, RescheduleProtocol
from scheduling.debounce import Debouncer
from scheduling.timers import LoopTimers, TimerScheduler
from stores.base import RoomFilter, StayFilter, StayStore
from utils.errors import (
    EngineError,
    FetchError,
    classify_exception,
    execute_with_timeout,
)
from utils.retry import RetryExhausted, retry_async

logger = logging.getLogger(__name__)

WINDOW_VIEW = "window"
RANGE_VIEW = "range"

Observer = Callable[["CalendarEngine"], Any]


class CalendarEngine:
    """Reservation calendar state for one property."""

    def __init__(
        self,
        store: StayStore,
        channel: ChangeChannel | None = None,
        config: EngineConfig | None = None,
        timers: TimerScheduler | None = None,
        today: date | None = None,
    ):
        """Initialize the engine.

        Args:
            store: Stay record store
            channel: Change channel; without one the engine only refreshes on demand
            config: Engine configuration
            timers: Timer scheduler for the debouncer and fallback poll
            today: Anchor for the initial window (defaults to the current date)
        """
        self.config = config or EngineConfig()
        self.store = store
        self.channel = channel
        self.timers = timers or LoopTimers()
        self.retry_delay = 0.5

        calendar = self.config.calendar
        self.cache = StayCache()
        self.builder = GridBuilder(calendar.hidden_statuses)
        self.notifications = NotificationCenter(self.config.notification_limit)
        self.debouncer = Debouncer(self.refresh, self.config.debounce_seconds, self.timers)
        self.protocol = RescheduleProtocol(
            store,
            self.cache,
            on_committed=self.debouncer.request,
            room_exists=self._room_exists,
            timeout=self.config.fetch_timeout,
        )
        self.listener: ChangeFeedListener | None = None
        if channel is not None:
            self.listener = ChangeFeedListener(
                channel,
                self.debouncer,
                self.notifications,
                property_id=self.config.property_id,
                poll_interval=self.config.poll_interval_seconds,
                timers=self.timers,
                on_state_change=self._on_state_change,
            )

        self._window = build_window(
            calendar.default_view,
            today or date.today(),
            calendar.week_starts_on,
            calendar.timeline_days,
        )
        self._rooms: list[Room] = []
        self._grid: Grid | None = None
        self._stats: CalendarStats | None = None
        self._derived_version = -1
        self._observers: list[Observer] = []
        self._refresh_lock = asyncio.Lock()

        self.generation = 0
        self.last_error: EngineError | None = None
        self._started = False

    # Lifecycle

    async def start(self) -> None:
        """Load the initial window and start listening for changes."""
        if self._started:
            return
        self._started = True
        try:
            await self.refresh()
        except FetchError as e:
            logger.error(f"Initial calendar load failed: {e}")
        if self.listener is not None:
            await self.listener.start()
        logger.info(f"Calendar engine started ({self._window.view_type.value} view from {self._window.start})")

    async def stop(self) -> None:
        """Release subscriptions and cancel pending refreshes."""
        if self.listener is not None:
            await self.listener.stop()
        await self.debouncer.close()
        self._started = False
        logger.info("Calendar engine stopped")

    async def reconnect(self) -> None:
        """Re-establish the change feed after a channel error."""
        if self.listener is None:
            return
        await self.listener.reconnect()
        self.debouncer.request()

    async def __aenter__(self) -> "CalendarEngine":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.stop()

    # Observers

    def add_observer(self, callback: Observer) -> Callable[[], None]:
        """Register a callback run after each refresh and each stay change.

        Returns a function that removes the callback.
        """
        self._observers.append(callback)

        def remove() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return remove

    def _notify(self) -> None:
        for callback in list(self._observers):
            try:
                callback(self)
            except Exception as e:
                logger.error(f"Calendar observer failed: {e}")

    def _on_state_change(self, state: ConnectionState) -> None:
        self._notify()

    # Window

    @property
    def window(self) -> ViewWindow:
        return self._window

    async def set_window(self, window: ViewWindow) -> None:
        """Show a different date range and reload it."""
        self._window = window
        self._derived_version = -1
        await self.refresh()

    async def set_view(self, view_type: ViewType, anchor: date | None = None) -> None:
        calendar = self.config.calendar
        window = build_window(
            view_type,
            anchor or self._window.anchor,
            calendar.week_starts_on,
            calendar.timeline_days,
        )
        await self.set_window(window)

    async def navigate(self, direction: NavigateDirection, today: date | None = None) -> ViewWindow:
        """Move to the previous/next window, or back to today."""
        calendar = self.config.calendar
        window = navigate(
            self._window,
            direction,
            today=today,
            week_starts_on=calendar.week_starts_on,
            timeline_days=calendar.timeline_days,
        )
        await self.set_window(window)
        return window

    # Refresh

    async def refresh(self) -> None:
        """Reload rooms and stays for the current window in one batch.

        On failure the previously cached data is left untouched.

        Raises:
            FetchError: If the data cannot be fetched after retries
        """
        async with self._refresh_lock:
            window = self._window
            try:
                rooms, stays = await self._fetch(window.start, window.end_exclusive)
            except FetchError as e:
                self.last_error = classify_exception(e)
                logger.error(f"Calendar refresh failed: {e}")
                raise

            if window != self._window:
                logger.debug("Window changed during refresh, discarding result")
                return

            self._rooms = rooms
            self.cache.load(WINDOW_VIEW, stays)
            # Ad-hoc range results are reloaded on their next query
            if RANGE_VIEW in self.cache.view_keys():
                self.cache.drop(RANGE_VIEW)
            self.generation += 1
            self.last_error = None
            logger.debug(
                f"Refreshed calendar (generation {self.generation}): "
                f"{len(rooms)} rooms, {len(stays)} stays"
            )

        self._notify()

    async def _fetch_once(self, start: date, end: date) -> tuple[list[Room], list[Stay]]:
        property_id = self.config.property_id
        timeout = self.config.fetch_timeout
        rooms, stays = await asyncio.gather(
            execute_with_timeout(
                self.store.fetch_rooms(RoomFilter(property_id=property_id)),
                timeout=timeout,
                operation="fetch_rooms",
            ),
            execute_with_timeout(
                self.store.fetch_stays(StayFilter(property_id=property_id, start=start, end=end)),
                timeout=timeout,
                operation="fetch_stays",
            ),
        )
        return rooms, stays

    async def _fetch(self, start: date, end: date) -> tuple[list[Room], list[Stay]]:
        try:
            return await retry_async(
                self._fetch_once,
                start,
                end,
                max_attempts=self.config.fetch_retries,
                initial_delay=self.retry_delay,
                operation="calendar fetch",
            )
        except RetryExhausted as e:
            raise FetchError("calendar data", e.last_exception)
        except Exception as e:
            raise FetchError("calendar data", e) from e

    # Derived state

    @property
    def rooms(self) -> list[Room]:
        return list(self._rooms)

    @property
    def stays(self) -> list[Stay]:
        """Stays of the current window, including optimistic changes."""
        return self.cache.view(WINDOW_VIEW)

    def get_stay(self, stay_id: str) -> Stay | None:
        return self.cache.get(stay_id)

    def _room_exists(self, room_id: str) -> bool:
        return any(room.id == room_id for room in self._rooms)

    def _ensure_derived(self) -> None:
        if self._grid is not None and self._derived_version == self.cache.version:
            return
        stays = self.cache.view(WINDOW_VIEW)
        self._grid = self.builder.build(self._rooms, stays, self._window)
        self._stats = stats(stays, self._window.start, self._window.end_exclusive)
        self._derived_version = self.cache.version

    @property
    def grid(self) -> Grid:
        self._ensure_derived()
        assert self._grid is not None
        return self._grid

    @property
    def stats(self) -> CalendarStats:
        """Statistics for the current window."""
        self._ensure_derived()
        assert self._stats is not None
        return self._stats

    async def _load_range(self, start: date, end: date) -> list[Stay]:
        """Stays overlapping ``[start, end)``, from the window view when it covers the range."""
        if self.generation and self._window.start <= start and end <= self._window.end_exclusive:
            return [s for s in self.cache.view(WINDOW_VIEW) if s.overlaps(start, end) or not s.has_valid_dates]

        rooms, stays = await self._fetch(start, end)
        if not self._rooms:
            self._rooms = rooms
        self.cache.load(RANGE_VIEW, stays)
        return self.cache.view(RANGE_VIEW)

    async def availability(self, start: date, end: date) -> list[RoomAvailability]:
        """Per-room availability for ``[start, end)``."""
        if end <= start:
            raise ValueError("End date must be after start date")
        stays = await self._load_range(start, end)
        return availability(self._rooms, stays, start, end)

    async def stats_for(self, start: date, end: date) -> CalendarStats:
        """Statistics for an arbitrary ``[start, end)`` range."""
        if end < start:
            raise ValueError("End date must not be before start date")
        stays = await self._load_range(start, end)
        return stats(stays, start, end)

    # Changes

    @property
    def pending_moves(self) -> dict[str, Any]:
        return self.protocol.pending_moves

    async def propose_move(
        self,
        stay_id: str,
        source: CellRef | str,
        destination: CellRef | str,
        check_out_override: date | None = None,
    ) -> MoveOutcome:
        """Move a stay between grid cells (cell objects or ``cell|room|date`` ids)."""
        if isinstance(source, str):
            source = CellRef.parse(source)
        if isinstance(destination, str):
            destination = CellRef.parse(destination)

        task = asyncio.ensure_future(
            self.protocol.propose_move(stay_id, source, destination, check_out_override)
        )
        # Let observers see the optimistic patch before the store answers
        await asyncio.sleep(0)
        if self.protocol.is_pending(stay_id):
            self._notify()
        outcome = await task
        self._notify()
        return outcome

    async def change_status(self, stay_id: str, status: StayStatus | str) -> MoveOutcome:
        """Change a stay's status optimistically."""
        if isinstance(status, str):
            status = StayStatus(status)
        outcome = await self.protocol.change_status(stay_id, status)
        self._notify()
        return outcome

    # Notifications and connection

    @property
    def connection_state(self) -> ConnectionState:
        if self.listener is None:
            return ConnectionState.DISCONNECTED
        return self.listener.state

    def to_dict(self) -> dict[str, Any]:
        """Snapshot of the engine state for presentation layers."""
        return {
            "generation": self.generation,
            "view": self._window.view_type.value,
            "start": self._window.start.isoformat(),
            "end": self._window.end.isoformat(),
            "connection_state": self.connection_state.value,
            "grid": self.grid.to_dict(),
            "stats": self.stats.to_dict(),
            "notifications": self.notifications.to_dict(),
            "pending_moves": sorted(self.protocol.pending_moves),
            "error": self.last_error.to_dict() if self.last_error else None,
        }
