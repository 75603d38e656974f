"""Tests for GoogleCalendarClient and API error parsing."""

import json

import httpx
import pytest

from relaxed_planner.calendar_sync import GoogleCalendarClient
from relaxed_planner.calendar_sync.client import error_message
from relaxed_planner.exceptions import NetworkError


class TestRequest:
    """Authenticated calendar requests."""

    @pytest.mark.anyio
    async def test_sends_bearer_token_and_json(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": "evt-1"})

        client = GoogleCalendarClient(
            base_url="https://calendar.test/v3/", transport=httpx.MockTransport(handler)
        )
        try:
            response = await client.request(
                "POST", "/calendars/primary/events", "tok-123", json={"summary": "Run"}
            )
        finally:
            await client.aclose()

        assert response.json() == {"id": "evt-1"}
        assert str(seen[0].url) == "https://calendar.test/v3/calendars/primary/events"
        assert seen[0].headers["Authorization"] == "Bearer tok-123"
        assert json.loads(seen[0].content) == {"summary": "Run"}

    @pytest.mark.anyio
    async def test_error_status_is_returned_not_raised(self) -> None:
        client = GoogleCalendarClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(403, json={}))
        )
        try:
            response = await client.request("GET", "/users/me/calendarList", "tok")
        finally:
            await client.aclose()

        assert response.status_code == 403

    @pytest.mark.anyio
    async def test_transport_failure_raises_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = GoogleCalendarClient(transport=httpx.MockTransport(handler))
        try:
            with pytest.raises(NetworkError) as exc_info:
                await client.request("GET", "/users/me/calendarList", "tok")
        finally:
            await client.aclose()

        assert exc_info.value.url == "https://www.googleapis.com/calendar/v3/users/me/calendarList"


class TestRefresh:
    """Token endpoint exchanges."""

    @pytest.mark.anyio
    async def test_successful_refresh(self, client: GoogleCalendarClient, google) -> None:
        token = await client.refresh_access_token("refresh-1")

        assert token is not None
        assert token.access_token == "fresh"
        assert token.expires_in == 3599
        form = google.token_requests()[0].content.decode()
        assert "client_id=client-id" in form
        assert "client_secret=client-secret" in form

    @pytest.mark.anyio
    async def test_rejected_refresh_returns_none(
        self, client: GoogleCalendarClient, google
    ) -> None:
        google.refresh_status = 400

        assert await client.refresh_access_token("refresh-1") is None

    @pytest.mark.anyio
    async def test_unusable_body_returns_none(self) -> None:
        client = GoogleCalendarClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))
        )
        try:
            assert await client.refresh_access_token("refresh-1") is None
        finally:
            await client.aclose()

    @pytest.mark.anyio
    async def test_unreachable_endpoint_raises(
        self, client: GoogleCalendarClient, google
    ) -> None:
        google.token_offline = True

        with pytest.raises(NetworkError):
            await client.refresh_access_token("refresh-1")


class TestErrorMessage:
    """Extracting messages from API error bodies."""

    def test_calendar_api_error(self) -> None:
        response = httpx.Response(404, json={"error": {"code": 404, "message": "Not Found"}})
        assert error_message(response) == "Not Found"

    def test_oauth_error(self) -> None:
        response = httpx.Response(
            400, json={"error": "invalid_grant", "error_description": "Bad Request"}
        )
        assert error_message(response) == "Bad Request"

    def test_oauth_error_without_description(self) -> None:
        response = httpx.Response(400, json={"error": "invalid_client"})
        assert error_message(response) == "invalid_client"

    def test_non_json_body(self) -> None:
        response = httpx.Response(502, text="<html>bad gateway</html>")
        assert error_message(response) == "Bad Gateway"
