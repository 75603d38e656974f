"""Fixtures for calendar sync tests: a fake Google API behind httpx.MockTransport."""

import json
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from urllib.parse import parse_qs

import httpx
import pytest

from relaxed_planner.calendar_sync import (
    CalendarSyncService,
    GoogleCalendarClient,
    LogNotifier,
)
from relaxed_planner.storage.kv import MemoryKeyValueStore

# 08:00 in New York on the test day
FIXED_NOW = datetime(2026, 10, 17, 12, 0, tzinfo=UTC)


@dataclass
class FakeGoogle:
    """Minimal stand-in for the calendar API and the OAuth token endpoint.

    Attributes:
        valid_tokens: Access tokens the API accepts.
        refresh_status: Status the token endpoint answers with.
        issued_token: Access token handed out on a successful refresh.
        offline: When True every request fails at the transport level.
        failing_summaries: Event summaries the API rejects with a 500.
    """

    valid_tokens: set[str] = field(default_factory=lambda: {"good"})
    refresh_status: int = 200
    issued_token: str = "fresh"
    offline: bool = False
    token_offline: bool = False
    failing_summaries: set[str] = field(default_factory=set)
    requests: list[httpx.Request] = field(default_factory=list)
    events: list[dict] = field(default_factory=list)

    def token_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host == "oauth2.googleapis.com"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.offline:
            raise httpx.ConnectError("network unreachable", request=request)
        if request.url.host == "oauth2.googleapis.com":
            return self._token(request)

        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        if token not in self.valid_tokens:
            return httpx.Response(
                401, json={"error": {"code": 401, "message": "Invalid Credentials"}}
            )
        if request.url.path.endswith("/users/me/calendarList"):
            return httpx.Response(
                200,
                json={
                    "items": [
                        {"id": "work", "summary": "Work"},
                        {"id": "me", "summary": "Me", "primary": True},
                    ]
                },
            )
        if request.url.path.endswith("/events") and request.method == "POST":
            body = json.loads(request.content)
            if body["summary"] in self.failing_summaries:
                return httpx.Response(500, json={"error": {"message": "Backend Error"}})
            self.events.append(body)
            return httpx.Response(200, json={"id": f"evt-{len(self.events)}", **body})
        return httpx.Response(404, json={"error": {"message": "Not Found"}})

    def _token(self, request: httpx.Request) -> httpx.Response:
        if self.token_offline:
            raise httpx.ConnectError("token endpoint unreachable", request=request)
        form = parse_qs(request.content.decode())
        if self.refresh_status != 200:
            return httpx.Response(
                self.refresh_status,
                json={"error": "invalid_grant", "error_description": "Token has been revoked."},
            )
        self.valid_tokens.add(self.issued_token)
        return httpx.Response(
            200,
            json={
                "access_token": self.issued_token,
                "expires_in": 3599,
                "token_type": "Bearer",
                "scope": form.get("scope", [""])[0],
            },
        )


@pytest.fixture
def google() -> FakeGoogle:
    return FakeGoogle()


@pytest.fixture
async def client(google: FakeGoogle, anyio_backend: str) -> AsyncIterator[GoogleCalendarClient]:
    api = GoogleCalendarClient(
        client_id="client-id",
        client_secret="client-secret",
        transport=httpx.MockTransport(google.handler),
    )
    yield api
    await api.aclose()


@pytest.fixture
def notifier() -> LogNotifier:
    return LogNotifier()


@pytest.fixture
def calendar(
    kv: MemoryKeyValueStore, client: GoogleCalendarClient, notifier: LogNotifier
) -> CalendarSyncService:
    """Sync service pinned to New York time and a fixed clock."""
    return CalendarSyncService(
        kv, client, notifier, timezone="America/New_York", now=lambda: FIXED_NOW
    )
