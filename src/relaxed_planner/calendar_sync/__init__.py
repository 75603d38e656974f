"""Google Calendar sync for relaxed-planner.

- client: httpx-based API and token endpoint client
- models: pydantic wire models (credentials, events)
- notifications: reminder Notifier interface and LogNotifier
- service: CalendarSyncService coordinator
"""

from relaxed_planner.calendar_sync.client import GoogleCalendarClient
from relaxed_planner.calendar_sync.models import (
    CalendarEvent,
    ConnectionTestResult,
    GoogleCalendarCredentials,
)
from relaxed_planner.calendar_sync.notifications import (
    LogNotifier,
    NotificationRequest,
    Notifier,
)
from relaxed_planner.calendar_sync.service import CalendarSyncService, SyncResult

__all__ = [
    "CalendarEvent",
    "CalendarSyncService",
    "ConnectionTestResult",
    "GoogleCalendarClient",
    "GoogleCalendarCredentials",
    "LogNotifier",
    "NotificationRequest",
    "Notifier",
    "SyncResult",
]
