"""Reschedule protocol: drag-and-drop moves with optimistic concurrency.

A move is derived from the source and destination cells reported by the
interaction surface, applied to the cached views immediately, then sent to
the store. On success the store's record replaces the optimistic one and a
reconciling refresh is requested; on failure every patched view is restored
from the snapshot.

At most one change per stay is in flight at a time. A second attempt while
one is outstanding is rejected rather than interleaved.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Callable

from models.stay import Stay, StayStatus, StayUpdate
from reschedule.cache import Snapshot, StayCache
from stores.base import StayStore
from utils.errors import (
    DEFAULT_STORE_TIMEOUT,
    EngineError,
    MoveInProgressError,
    StayNotFoundError,
    classify_exception,
    execute_with_timeout,
    generate_request_id,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CellRef:
    """A (room, date) grid cell as reported by the interaction surface."""

    room_id: str
    day: date

    @classmethod
    def parse(cls, droppable_id: str) -> "CellRef":
        """Parse a ``cell|<room_id>|<YYYY-MM-DD>`` identifier."""
        parts = droppable_id.split("|")
        if len(parts) != 3 or parts[0] != "cell":
            raise ValueError(f"Not a cell identifier: {droppable_id!r}")
        return cls(parts[1], date.fromisoformat(parts[2]))

    def to_id(self) -> str:
        return f"cell|{self.room_id}|{self.day.isoformat()}"


class MoveStatus(Enum):
    """How a proposed change ended."""

    NOOP = "noop"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    REJECTED = "rejected"


@dataclass
class PendingMove:
    """An in-flight change and the snapshot needed to undo it."""

    stay_id: str
    update: StayUpdate
    snapshot: Snapshot
    request_id: str
    started_at: float

    @property
    def room_id(self) -> str | None:
        return self.update.room_id

    @property
    def check_in(self) -> date | None:
        return self.update.check_in

    @property
    def check_out(self) -> date | None:
        return self.update.check_out


@dataclass
class MoveOutcome:
    """Result of a proposed move or status change."""

    status: MoveStatus
    stay_id: str
    stay: Stay | None = None
    update: StayUpdate | None = None
    error: EngineError | None = None

    @property
    def ok(self) -> bool:
        return self.status in (MoveStatus.NOOP, MoveStatus.COMMITTED)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"status": self.status.value, "stay_id": self.stay_id}
        if self.stay is not None:
            result["stay"] = self.stay.to_dict()
        if self.update is not None:
            result["changes"] = self.update.to_record()
        if self.error is not None:
            result.update(self.error.to_dict())
        return result


def derive_update(
    stay: Stay,
    source: CellRef,
    destination: CellRef,
    check_out_override: date | None = None,
) -> StayUpdate:
    """Work out the field changes for dragging ``stay`` between two cells.

    A room change only changes the room. A date change moves check-in to the
    destination date and shifts check-out so the number of nights is exactly
    the stay's original duration. The two may combine.

    Raises:
        ValueError: If the dates need to move but the stay's dates are invalid,
            or the override would leave no nights
    """
    room_id = destination.room_id if destination.room_id != source.room_id else None

    check_in: date | None = None
    check_out: date | None = None
    if destination.day != source.day:
        if not stay.has_valid_dates:
            raise ValueError(f"Stay {stay.id} has invalid dates and cannot be moved")
        check_in = destination.day
        check_out = destination.day + stay.duration

    if check_out_override is not None:
        effective_check_in = check_in or stay.check_in
        if effective_check_in is None or check_out_override <= effective_check_in:
            raise ValueError("Check-out must be after check-in")
        check_out = check_out_override

    return StayUpdate(room_id=room_id, check_in=check_in, check_out=check_out)


class RescheduleProtocol:
    """Applies stay changes optimistically and reconciles them with the store."""

    def __init__(
        self,
        store: StayStore,
        cache: StayCache,
        on_committed: Callable[[], Any] | None = None,
        room_exists: Callable[[str], bool] | None = None,
        timeout: float = DEFAULT_STORE_TIMEOUT,
    ):
        """Initialize the protocol.

        Args:
            store: Stay record store receiving the mutations
            cache: Cached views to patch optimistically
            on_committed: Called after a successful mutation (refresh request)
            room_exists: Optional check that a destination room is known
            timeout: Seconds to wait for the store's answer
        """
        self.store = store
        self.cache = cache
        self.on_committed = on_committed
        self.room_exists = room_exists
        self.timeout = timeout
        self._pending: dict[str, PendingMove] = {}

    @property
    def pending_moves(self) -> dict[str, PendingMove]:
        return dict(self._pending)

    def is_pending(self, stay_id: str) -> bool:
        return stay_id in self._pending

    async def propose_move(
        self,
        stay_id: str,
        source: CellRef,
        destination: CellRef,
        check_out_override: date | None = None,
    ) -> MoveOutcome:
        """Move a stay from one grid cell to another."""
        if source == destination and check_out_override is None:
            return MoveOutcome(MoveStatus.NOOP, stay_id, stay=self.cache.get(stay_id))

        rejection = self._precheck(stay_id)
        if rejection:
            return rejection

        stay = self.cache.get(stay_id)
        assert stay is not None

        try:
            if self.room_exists and destination.room_id != source.room_id:
                if not self.room_exists(destination.room_id):
                    raise ValueError(f"Unknown destination room {destination.room_id}")
            update = derive_update(stay, source, destination, check_out_override)
        except ValueError as e:
            return MoveOutcome(
                MoveStatus.REJECTED, stay_id, stay=stay, error=classify_exception(e, stay_id)
            )

        if update.is_empty:
            return MoveOutcome(MoveStatus.NOOP, stay_id, stay=stay)

        return await self._apply(stay_id, update)

    async def change_status(self, stay_id: str, status: StayStatus) -> MoveOutcome:
        """Change a stay's lifecycle status through the same optimistic path."""
        rejection = self._precheck(stay_id)
        if rejection:
            return rejection

        stay = self.cache.get(stay_id)
        assert stay is not None
        if stay.status == status:
            return MoveOutcome(MoveStatus.NOOP, stay_id, stay=stay)

        return await self._apply(stay_id, StayUpdate(status=status))

    def _precheck(self, stay_id: str) -> MoveOutcome | None:
        if stay_id in self._pending:
            logger.warning(f"Rejecting change to stay {stay_id}: another change is in flight")
            return MoveOutcome(
                MoveStatus.REJECTED,
                stay_id,
                stay=self.cache.get(stay_id),
                error=classify_exception(MoveInProgressError(stay_id)),
            )
        if stay_id not in self.cache:
            return MoveOutcome(
                MoveStatus.REJECTED,
                stay_id,
                error=classify_exception(StayNotFoundError(stay_id)),
            )
        return None

    async def _apply(self, stay_id: str, update: StayUpdate) -> MoveOutcome:
        # Snapshot and patch with no await in between
        snapshot = self.cache.patch(stay_id, update)
        pending = PendingMove(
            stay_id=stay_id,
            update=update,
            snapshot=snapshot,
            request_id=generate_request_id(),
            started_at=time.monotonic(),
        )
        self._pending[stay_id] = pending
        logger.info(f"[{pending.request_id}] Applying change to stay {stay_id}: {update.to_record()}")

        try:
            confirmed = await execute_with_timeout(
                self.store.update_stay(stay_id, update),
                timeout=self.timeout,
                operation="update_stay",
            )
        except asyncio.CancelledError:
            self.cache.rollback(stay_id)
            self._pending.pop(stay_id, None)
            raise
        except Exception as e:
            self.cache.rollback(stay_id)
            self._pending.pop(stay_id, None)
            error = classify_exception(e, stay_id)
            error.request_id = pending.request_id
            logger.warning(f"[{pending.request_id}] Change to stay {stay_id} rolled back: {e}")
            return MoveOutcome(
                MoveStatus.ROLLED_BACK,
                stay_id,
                stay=self.cache.get(stay_id),
                update=update,
                error=error,
            )

        self.cache.commit(stay_id, confirmed)
        self._pending.pop(stay_id, None)
        elapsed = time.monotonic() - pending.started_at
        logger.info(f"[{pending.request_id}] Stay {stay_id} change committed in {elapsed:.2f}s")

        if self.on_committed is not None:
            self.on_committed()

        return MoveOutcome(MoveStatus.COMMITTED, stay_id, stay=confirmed, update=update)
