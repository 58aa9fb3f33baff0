"""Optimistic rescheduling of stays."""

from reschedule.cache import Snapshot, StayCache
from reschedule.protocol import (
    CellRef,
    MoveOutcome,
    MoveStatus,
    PendingMove,
    RescheduleProtocol,
    derive_update,
)

__all__ = [
    "CellRef",
    "MoveOutcome",
    "MoveStatus",
    "PendingMove",
    "RescheduleProtocol",
    "Snapshot",
    "StayCache",
    "derive_update",
]
