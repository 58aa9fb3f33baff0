"""Notification list exposed to presentation layers."""

import logging
from typing import Any

from models.notification import Notification, NotificationCategory

logger = logging.getLogger(__name__)

DEFAULT_NOTIFICATION_LIMIT = 50


class NotificationCenter:
    """Most-recent-first list of notifications, capped at ``limit`` entries."""

    def __init__(self, limit: int = DEFAULT_NOTIFICATION_LIMIT):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.limit = limit
        self._items: list[Notification] = []

    def __len__(self) -> int:
        return len(self._items)

    @property
    def notifications(self) -> list[Notification]:
        """Notifications, newest first."""
        return list(self._items)

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self._items if not n.read)

    def add(
        self,
        category: NotificationCategory,
        title: str,
        message: str,
        payload: dict[str, Any] | None = None,
    ) -> Notification:
        """Prepend a notification, dropping the oldest beyond the limit."""
        notification = Notification(category=category, title=title, message=message, payload=payload)
        self.push(notification)
        return notification

    def push(self, notification: Notification) -> None:
        self._items.insert(0, notification)
        del self._items[self.limit:]
        logger.debug(f"Notification {notification.category.value}: {notification.message}")

    def get(self, notification_id: str) -> Notification | None:
        for notification in self._items:
            if notification.id == notification_id:
                return notification
        return None

    def mark_read(self, notification_id: str) -> bool:
        """Mark one notification read. Returns False if it is not in the list."""
        notification = self.get(notification_id)
        if notification is None:
            return False
        notification.read = True
        return True

    def mark_all_read(self) -> None:
        for notification in self._items:
            notification.read = True

    def clear(self) -> None:
        self._items.clear()

    def to_dict(self) -> dict[str, Any]:
        return {
            "unread_count": self.unread_count,
            "notifications": [n.to_dict() for n in self._items],
        }
