"""Transient user-facing notifications."""
import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import Optional

from .schemas import Notification, NotificationType

logger = logging.getLogger("ideaflow-core.notifications")

# Display duration per notification type, in milliseconds
DEFAULT_DURATIONS_MS: dict[NotificationType, int] = {
    NotificationType.SUCCESS: 4000,
    NotificationType.INFO: 4000,
    NotificationType.WARNING: 5000,
    NotificationType.ERROR: 6000,
}

LOG_LEVELS: dict[NotificationType, int] = {
    NotificationType.SUCCESS: logging.INFO,
    NotificationType.INFO: logging.INFO,
    NotificationType.WARNING: logging.WARNING,
    NotificationType.ERROR: logging.ERROR,
}


def make_notification(type: NotificationType, title: str, message: str) -> Notification:
    """Build a notification with the default duration for its type."""
    return Notification(type=type, title=title, message=message, duration_ms=DEFAULT_DURATIONS_MS[type])


class NotificationSink(ABC):
    @abstractmethod
    def emit(self, notification: Notification) -> None:
        """Deliver one notification."""


class LoggingNotificationSink(NotificationSink):
    """Writes notifications to the application log."""

    def emit(self, notification: Notification) -> None:
        logger.log(
            LOG_LEVELS[notification.type],
            f"[{notification.type.value}] {notification.title}: {notification.message}",
        )


class NotificationBuffer(NotificationSink):
    """Keeps the most recent notifications for clients to poll, and logs them."""

    def __init__(self, maxlen: int = 50, forward_to: Optional[NotificationSink] = None):
        self._items: deque[Notification] = deque(maxlen=maxlen)
        self._forward_to = forward_to if forward_to is not None else LoggingNotificationSink()

    def emit(self, notification: Notification) -> None:
        self._items.append(notification)
        self._forward_to.emit(notification)

    def recent(self, limit: Optional[int] = None) -> list[Notification]:
        """Most recent first."""
        items = list(reversed(self._items))
        return items[:limit] if limit is not None else items

    def drain(self) -> list[Notification]:
        """Return every buffered notification (oldest first) and empty the buffer."""
        items = list(self._items)
        self._items.clear()
        return items

    def __len__(self) -> int:
        return len(self._items)
