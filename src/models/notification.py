"""Notification and connection state models for the change feed."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class NotificationCategory(Enum):
    """What kind of remote change a notification describes."""

    CREATED = "created"
    UPDATED = "updated"
    CANCELLED = "cancelled"
    STATUS_CHANGED = "status_changed"


class ConnectionState(Enum):
    """Push channel connection state."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


def generate_notification_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Notification:
    """A user-facing description of a remote change."""

    category: NotificationCategory
    title: str
    message: str
    payload: dict[str, Any] | None = None
    id: str = field(default_factory=generate_notification_id)
    created_at: datetime = field(default_factory=datetime.now)
    read: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category.value,
            "title": self.title,
            "message": self.message,
            "payload": self.payload,
            "created_at": self.created_at.isoformat(),
            "read": self.read,
        }
