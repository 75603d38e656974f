"""Reminder notifications for synced activities.

Delivery is platform-specific and out of scope here; the sync service
talks to a Notifier. LogNotifier keeps pending reminders in memory and
logs them, which is what the CLI uses.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class NotificationRequest:
    """A reminder to deliver at a given instant.

    Attributes:
        id: Stable positive 31-bit id; rescheduling the same id replaces it.
        title: Notification title.
        body: Notification body.
        at: When to deliver (timezone-aware).
        extra: Payload handed back on delivery (activityId, category).
    """

    id: int
    title: str
    body: str
    at: datetime
    extra: dict[str, Any] = field(default_factory=dict)


class Notifier(ABC):
    """Schedules reminder notifications."""

    @abstractmethod
    async def schedule(self, request: NotificationRequest) -> None:
        """Schedule (or replace) a notification."""

    @abstractmethod
    async def cancel(self, notification_id: int) -> None:
        """Cancel a pending notification. Unknown ids are ignored."""

    @abstractmethod
    async def list_pending(self) -> list[NotificationRequest]:
        """Pending notifications, soonest first."""

    @abstractmethod
    async def request_permission(self) -> bool:
        """Ask for permission to display notifications."""


class LogNotifier(Notifier):
    """In-memory notifier that logs instead of displaying."""

    def __init__(self) -> None:
        self._pending: dict[int, NotificationRequest] = {}

    async def schedule(self, request: NotificationRequest) -> None:
        self._pending[request.id] = request
        logger.info(f"Reminder {request.id} at {request.at.isoformat()}: {request.title}")

    async def cancel(self, notification_id: int) -> None:
        if self._pending.pop(notification_id, None) is not None:
            logger.info(f"Reminder {notification_id} cancelled")

    async def list_pending(self) -> list[NotificationRequest]:
        return sorted(self._pending.values(), key=lambda r: r.at)

    async def request_permission(self) -> bool:
        return True
