"""Wire models for the Google Calendar integration.

Credentials are stored in the key-value store as the JSON the OAuth token
endpoint returned (snake_case). Event payloads use the camelCase field
names of the Calendar v3 API; dump them with ``to_payload``.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from relaxed_planner.constants import (
    APP_DISPLAY_NAME,
    APP_URL,
    AUTH_SCHEME_BEARER,
    REMINDER_LEAD_MINUTES,
    REMINDER_METHOD_POPUP,
)


class GoogleCalendarCredentials(BaseModel):
    """OAuth credentials for the calendar API.

    Opaque beyond storage; ``access_token`` (and possibly the others) is
    replaced when a refresh succeeds.
    """

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(..., min_length=1)
    refresh_token: str | None = None
    expires_in: int = 0
    token_type: str = AUTH_SCHEME_BEARER
    scope: str = ""


class TokenResponse(BaseModel):
    """Successful response from the OAuth token endpoint."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(..., min_length=1)
    expires_in: int | None = None
    refresh_token: str | None = None
    token_type: str | None = None
    scope: str | None = None


class EventDateTime(BaseModel):
    """Start or end of an event."""

    model_config = ConfigDict(populate_by_name=True)

    date_time: str = Field(..., alias="dateTime")
    # Omitted when the local zone has no IANA name; the offset in
    # date_time is then authoritative
    time_zone: str | None = Field(default=None, alias="timeZone")


class EventSource(BaseModel):
    title: str = APP_DISPLAY_NAME
    url: str = APP_URL


class ReminderOverride(BaseModel):
    method: str = REMINDER_METHOD_POPUP
    minutes: int = REMINDER_LEAD_MINUTES


class EventReminders(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    use_default: bool = Field(default=False, alias="useDefault")
    overrides: list[ReminderOverride] = Field(default_factory=lambda: [ReminderOverride()])


class CalendarEvent(BaseModel):
    """Event body posted to ``/calendars/{calendar_id}/events``."""

    summary: str
    description: str
    start: EventDateTime
    end: EventDateTime
    source: EventSource = Field(default_factory=EventSource)
    reminders: EventReminders = Field(default_factory=EventReminders)

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the API's JSON shape."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ConnectionTestResult(BaseModel):
    """Outcome of probing the calendar API with the stored credentials."""

    is_valid: bool
    error: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
