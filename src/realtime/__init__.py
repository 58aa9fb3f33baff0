"""Push change feed, notifications and connection state."""

from realtime.channel import (
    ChangeChannel,
    ChangeEvent,
    ChangeOperation,
    LocalChangeChannel,
    LocalSubscription,
)
from realtime.listener import ChangeFeedListener, describe_event
from realtime.notifications import NotificationCenter

__all__ = [
    "ChangeChannel",
    "ChangeEvent",
    "ChangeFeedListener",
    "ChangeOperation",
    "LocalChangeChannel",
    "LocalSubscription",
    "NotificationCenter",
    "describe_event",
]
