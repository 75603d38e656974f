"""Remote sync coordinator for Google Calendar.

CalendarSyncService owns the calendar credentials and pushes activities to
the remote calendar one event at a time. State it keeps across sessions
lives in the key-value store:

- ``google_calendar_credentials``: the OAuth credentials JSON
- ``calendar_sync_status``: SyncStatus of the last sync

Authenticated requests get exactly one refresh-and-retry on 401.
"""

import asyncio
import json
import logging
import zlib
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from typing import Any
from zoneinfo import ZoneInfo

import httpx
from pydantic import ValidationError as PydanticValidationError

from relaxed_planner.calendar_sync.client import GoogleCalendarClient, error_message
from relaxed_planner.calendar_sync.models import (
    CalendarEvent,
    ConnectionTestResult,
    EventDateTime,
    GoogleCalendarCredentials,
)
from relaxed_planner.calendar_sync.notifications import Notifier, NotificationRequest
from relaxed_planner.constants import (
    DEFAULT_CALENDAR_ID,
    DEFAULT_EVENT_DURATION_MINUTES,
    EVENT_CREATED_BY_FOOTER,
    GOOGLE_CALENDAR_LIST_PATH,
    GOOGLE_EVENTS_PATH_TEMPLATE,
    KV_KEY_CALENDAR_SYNC_STATUS,
    KV_KEY_GOOGLE_CREDENTIALS,
    NOTIFICATION_BODY_TEMPLATE,
    NOTIFICATION_ID_MASK,
    NOTIFICATION_TITLE_TEMPLATE,
    REMINDER_LEAD_MINUTES,
)
from relaxed_planner.exceptions import (
    AuthExpiredError,
    CalendarNotConnectedError,
    CredentialPersistenceError,
    NetworkError,
    PlannerError,
    SyncError,
)
from relaxed_planner.models.schedule import Activity, parse_hhmm
from relaxed_planner.models.sync import SyncStatus
from relaxed_planner.storage.kv import KeyValueStore
from relaxed_planner.utils.logging_setup import mask_token

logger = logging.getLogger(__name__)

_KV_ERRORS = (PlannerError, OSError)


def notification_id(activity_id: str, day: date) -> int:
    """Stable positive 31-bit id for an activity's reminder on a day."""
    return zlib.crc32(f"{activity_id}:{day.isoformat()}".encode()) & NOTIFICATION_ID_MASK


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class SyncResult:
    """Outcome of one sync batch.

    Attributes:
        day: Target day.
        attempted: Number of activities passed in.
        succeeded: Ids whose event was created.
        errors: Human-readable failure per skipped activity.
    """

    day: date
    attempted: int = 0
    succeeded: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.succeeded)

    def summary(self) -> str:
        synced = f"{len(self.succeeded)}/{self.attempted}"
        return f"{synced} activities synced for {self.day.isoformat()}"


class CalendarSyncService:
    """Pushes activities to Google Calendar and schedules reminders."""

    def __init__(
        self,
        kv: KeyValueStore,
        client: GoogleCalendarClient,
        notifier: Notifier,
        calendar_id: str = DEFAULT_CALENDAR_ID,
        timezone: str | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            kv: Key-value store for credentials and sync status.
            client: Calendar API client.
            notifier: Reminder scheduler.
            calendar_id: Target calendar.
            timezone: IANA zone for event times; None uses the local zone.
            now: Clock returning an aware datetime (tests inject a fixed one).
        """
        self.kv = kv
        self.client = client
        self.notifier = notifier
        self.calendar_id = calendar_id
        self.timezone = timezone
        self._now = now or _utc_now
        self._credentials: GoogleCalendarCredentials | None = None
        self._connected = False
        self.last_result: SyncResult | None = None

    # ------------------------------------------------------------------
    # Connection state
    # ------------------------------------------------------------------

    @property
    def credentials(self) -> GoogleCalendarCredentials | None:
        return self._credentials

    def is_connected(self) -> bool:
        return self._connected and self._credentials is not None

    async def initialize(self, validate: bool = True) -> None:
        """Restore stored credentials and optionally check them.

        Credentials are cleared when the API says they are no longer valid.
        A check that cannot reach the API keeps them.
        """
        credentials = await self._load_stored_credentials()
        if credentials is None:
            logger.debug("No stored calendar credentials")
            return
        self._credentials = credentials
        self._connected = True
        logger.info(f"Loaded calendar credentials ({mask_token(credentials.access_token)})")

        if not validate:
            return
        try:
            response = await self._authorized_request("GET", GOOGLE_CALENDAR_LIST_PATH)
        except NetworkError as e:
            logger.warning(f"Could not validate calendar credentials, keeping them: {e}")
            return
        except CalendarNotConnectedError:
            # Refresh was rejected and already cleared the credentials
            return
        if not response.is_success:
            logger.info(f"Stored calendar credentials rejected ({response.status_code}); clearing")
            await self._clear_credentials()

    async def set_credentials(self, credentials: GoogleCalendarCredentials) -> None:
        """Adopt credentials from the OAuth flow and persist them.

        Raises:
            CredentialPersistenceError: If they could not be stored. The
                session stays connected.
        """
        self._credentials = credentials
        self._connected = True
        logger.info(f"Calendar credentials set ({mask_token(credentials.access_token)})")
        try:
            await self._save_credentials(credentials)
        except _KV_ERRORS as e:
            logger.error(f"Failed to save calendar credentials: {e}")
            raise CredentialPersistenceError(f"Failed to save credentials: {e}", cause=e) from e

    async def disconnect(self) -> None:
        """Forget the credentials and the last sync status."""
        logger.info("Disconnecting from Google Calendar")
        await self._clear_credentials()

    async def _clear_credentials(self) -> None:
        self._credentials = None
        self._connected = False
        results = await asyncio.gather(
            self.kv.remove(KV_KEY_GOOGLE_CREDENTIALS),
            self.kv.remove(KV_KEY_CALENDAR_SYNC_STATUS),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                logger.error(f"Error clearing calendar state: {result}")

    async def _load_stored_credentials(self) -> GoogleCalendarCredentials | None:
        try:
            raw = await self.kv.get(KV_KEY_GOOGLE_CREDENTIALS)
            return GoogleCalendarCredentials.model_validate_json(raw) if raw else None
        except (PlannerError, OSError, PydanticValidationError) as e:
            logger.error(f"Error loading stored calendar credentials: {e}")
            return None

    async def _save_credentials(self, credentials: GoogleCalendarCredentials) -> None:
        await self.kv.set(KV_KEY_GOOGLE_CREDENTIALS, credentials.model_dump_json(exclude_none=True))

    # ------------------------------------------------------------------
    # Authenticated requests
    # ------------------------------------------------------------------

    async def _authorized_request(
        self, method: str, path: str, body: dict[str, Any] | None = None
    ) -> httpx.Response:
        """Send a request, refreshing the token once on 401.

        Returns:
            The final response. If the refresh failed this is the original 401.

        Raises:
            CalendarNotConnectedError: If there are no credentials.
            NetworkError: If the API could not be reached.
        """
        if self._credentials is None:
            raise CalendarNotConnectedError("Not connected to Google Calendar")
        response = await self.client.request(method, path, self._credentials.access_token, body)
        if response.status_code != httpx.codes.UNAUTHORIZED:
            return response

        logger.info("Access token rejected, attempting refresh")
        refreshed = await self._refresh_token()
        if refreshed is None:
            return response
        retry = await self.client.request(method, path, refreshed.access_token, body)
        logger.info(f"Retried {method} {path} after refresh -> {retry.status_code}")
        return retry

    async def _refresh_token(self) -> GoogleCalendarCredentials | None:
        """Refresh the access token and return the updated credentials.

        A rejected refresh (or a missing refresh token) clears the stored
        credentials and sync status. A transport failure keeps them.
        """
        credentials = self._credentials
        if credentials is None:
            return None
        if not credentials.refresh_token:
            logger.error("No refresh token available; clearing calendar credentials")
            await self._clear_credentials()
            return None

        try:
            token = await self.client.refresh_access_token(credentials.refresh_token)
        except NetworkError as e:
            logger.error(f"Error refreshing token: {e}")
            return None
        if token is None:
            await self._clear_credentials()
            return None

        update: dict[str, Any] = {"access_token": token.access_token}
        if token.refresh_token:
            update["refresh_token"] = token.refresh_token
        if token.expires_in is not None:
            update["expires_in"] = token.expires_in
        refreshed = credentials.model_copy(update=update)
        self._credentials = refreshed
        logger.info(f"Token refreshed ({mask_token(token.access_token)})")
        try:
            await self._save_credentials(refreshed)
        except _KV_ERRORS as e:
            logger.error(f"Refreshed token could not be saved: {e}")
        return refreshed

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def test_connection(self) -> ConnectionTestResult:
        """Check the calendar list endpoint. Never raises."""
        if not self.is_connected():
            return ConnectionTestResult(
                is_valid=False,
                error="Not connected to Google Calendar",
                details={
                    "hasCredentials": self._credentials is not None,
                    "isConnected": self._connected,
                },
            )
        try:
            response = await self._authorized_request("GET", GOOGLE_CALENDAR_LIST_PATH)
            if response.is_success:
                items = response.json().get("items") or []
                primary = next((c.get("summary") for c in items if c.get("primary")), None)
                return ConnectionTestResult(
                    is_valid=True,
                    details={
                        "calendarsCount": len(items),
                        "primaryCalendar": primary or "Not found",
                    },
                )
            return ConnectionTestResult(
                is_valid=False,
                error=f"API error: {response.status_code} - {error_message(response)}",
                details={"status": response.status_code},
            )
        except (PlannerError, ValueError, AttributeError) as e:
            logger.error(f"Connection test failed: {e}")
            return ConnectionTestResult(
                is_valid=False,
                error=f"Connection test failed: {e}",
                details={"errorType": type(e).__name__},
            )

    def _zone(self) -> tzinfo:
        if self.timezone:
            return ZoneInfo(self.timezone)
        return datetime.now().astimezone().tzinfo or UTC

    def event_times(self, activity: Activity, day: date) -> tuple[datetime, datetime]:
        """Start and end instants of an activity on a day.

        An end at or before the start becomes start + 60 minutes.

        Raises:
            ValidationError: If either time is not ``HH:MM``.
        """
        zone = self._zone()
        start_h, start_m = parse_hhmm(activity.start_time, "startTime")
        end_h, end_m = parse_hhmm(activity.end_time, "endTime")
        start = datetime.combine(day, time(start_h, start_m), tzinfo=zone)
        end = datetime.combine(day, time(end_h, end_m), tzinfo=zone)
        if end <= start:
            logger.warning(f"End time is not after start time for {activity.title}, adjusting")
            end = start + timedelta(minutes=DEFAULT_EVENT_DURATION_MINUTES)
        return start, end

    def build_event(self, activity: Activity, day: date) -> CalendarEvent:
        """Build the calendar event for an activity on a day."""
        start, end = self.event_times(activity, day)
        zone_name = getattr(start.tzinfo, "key", None)
        description = (
            f"{activity.description or ''}\n\n"
            f"Points: {activity.points}\n"
            f"Category: {activity.category.value}\n\n"
            f"{EVENT_CREATED_BY_FOOTER}"
        )
        return CalendarEvent(
            summary=activity.title,
            description=description,
            start=EventDateTime(date_time=start.isoformat(), time_zone=zone_name),
            end=EventDateTime(date_time=end.isoformat(), time_zone=zone_name),
        )

    async def _create_event(self, event: CalendarEvent) -> None:
        path = GOOGLE_EVENTS_PATH_TEMPLATE.format(calendar_id=self.calendar_id)
        response = await self._authorized_request("POST", path, event.to_payload())
        if response.status_code == httpx.codes.UNAUTHORIZED:
            raise AuthExpiredError(
                "Calendar authorization expired", status_code=response.status_code
            )
        if not response.is_success:
            raise SyncError(
                f"API error: {response.status_code} - {error_message(response)}",
                {"status_code": response.status_code},
            )

    async def _schedule_reminder(self, activity: Activity, day: date, start: datetime) -> None:
        at = start - timedelta(minutes=REMINDER_LEAD_MINUTES)
        if at <= self._now():
            return
        request = NotificationRequest(
            id=notification_id(activity.id, day),
            title=NOTIFICATION_TITLE_TEMPLATE.format(title=activity.title),
            body=NOTIFICATION_BODY_TEMPLATE.format(
                minutes=REMINDER_LEAD_MINUTES, points=activity.points
            ),
            at=at,
            extra={"activityId": activity.id, "category": activity.category.value},
        )
        try:
            await self.notifier.schedule(request)
        except Exception as e:
            logger.warning(f"Error scheduling reminder for {activity.title}: {e}")

    async def sync_activities_to_calendar(self, activities: list[Activity], day: date) -> bool:
        """Create one calendar event per activity on ``day``.

        Failed activities are skipped. The sync status is recorded whatever
        the outcome; the per-activity result is kept in ``last_result``.

        Returns:
            True if at least one event was created.

        Raises:
            CalendarNotConnectedError: If called while disconnected.
        """
        if not self.is_connected():
            raise CalendarNotConnectedError("Not connected to Google Calendar")

        logger.info(f"Syncing {len(activities)} activities to calendar for {day.isoformat()}")
        result = SyncResult(day=day, attempted=len(activities))
        for activity in activities:
            try:
                event = self.build_event(activity, day)
                await self._create_event(event)
            except PlannerError as e:
                logger.error(f"Error syncing activity {activity.title}: {e}")
                result.errors.append(f"{activity.title}: {e.message}")
                continue
            result.succeeded.append(activity.id)
            logger.debug(f"Created event: {event.summary}")
            start, _ = self.event_times(activity, day)
            await self._schedule_reminder(activity, day, start)

        status = SyncStatus(
            last_sync_date=self._now().isoformat(),
            synced_activity_ids=[a.id for a in activities],
        )
        try:
            await self.kv.set(KV_KEY_CALENDAR_SYNC_STATUS, json.dumps(status.to_dict()))
        except _KV_ERRORS as e:
            logger.error(f"Could not record calendar sync status: {e}")

        self.last_result = result
        logger.info(f"Sync completed: {result.summary()}")
        if result.errors:
            logger.warning(f"Some activities failed to sync: {result.errors}")
        return result.success

    async def get_sync_status(self) -> SyncStatus:
        """Last recorded sync status, or an empty one."""
        try:
            raw = await self.kv.get(KV_KEY_CALENDAR_SYNC_STATUS)
            if raw:
                return SyncStatus.from_dict(json.loads(raw))
        except (PlannerError, OSError, ValueError) as e:
            logger.error(f"Error loading sync status: {e}")
        return SyncStatus()

    async def request_notification_permission(self) -> bool:
        try:
            return await self.notifier.request_permission()
        except Exception as e:
            logger.error(f"Error requesting notification permission: {e}")
            return False

    async def close(self) -> None:
        await self.client.aclose()
