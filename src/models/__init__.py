"""Data models for the calendar engine."""

from models.base import EntityKind
from models.notification import ConnectionState, Notification, NotificationCategory
from models.room import HousekeepingStatus, Room
from models.stay import Stay, StayStatus, StayUpdate
from models.window import NavigateDirection, ViewType, ViewWindow, build_window, navigate

__all__ = [
    "ConnectionState",
    "EntityKind",
    "HousekeepingStatus",
    "NavigateDirection",
    "Notification",
    "NotificationCategory",
    "Room",
    "Stay",
    "StayStatus",
    "StayUpdate",
    "ViewType",
    "ViewWindow",
    "build_window",
    "navigate",
]
