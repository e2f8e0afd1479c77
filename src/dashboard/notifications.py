"""User-facing notifications for degraded fetch cycles.

The session is handed a sink explicitly instead of reaching for a global
toast channel, so "exactly one warning per degraded cycle" can be
asserted in tests.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol

import structlog

logger = structlog.get_logger(__name__)


class NotificationLevel(Enum):
    """Severity of a user-facing notification."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    """A single user-facing message.

    Attributes:
        level: Severity.
        message: Text shown to the user.
        details: Structured context (failed sources, window).
        timestamp: When the notification was raised.
    """

    level: NotificationLevel
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "level": self.level.value,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class NotificationSink(Protocol):
    """Fire-and-forget receiver of user-facing notifications."""

    def notify(self, notification: Notification) -> None: ...


class LoggingNotificationSink:
    """Sink that writes notifications to the structured log."""

    def notify(self, notification: Notification) -> None:
        """Log the notification at a matching level."""
        log = logger.warning if notification.level is not NotificationLevel.INFO else logger.info
        log("user_notification", message=notification.message, **notification.details)


class MemoryNotificationSink:
    """Sink that keeps notifications in memory, newest last."""

    def __init__(self, max_items: int = 100) -> None:
        """Initialize the sink.

        Args:
            max_items: Number of notifications retained.
        """
        self.max_items = max_items
        self._items: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        """Store the notification, dropping the oldest beyond ``max_items``."""
        self._items.append(notification)
        if len(self._items) > self.max_items:
            del self._items[: len(self._items) - self.max_items]

    @property
    def notifications(self) -> list[Notification]:
        """Stored notifications, oldest first."""
        return list(self._items)

    @property
    def latest(self) -> Notification | None:
        """Most recent notification, if any."""
        return self._items[-1] if self._items else None

    def clear(self) -> None:
        """Remove all stored notifications."""
        self._items.clear()
