"""HTTP client for the Google Calendar v3 API and the OAuth token endpoint.

The client is stateless with respect to credentials: callers pass the
access token per request. Token refresh policy (when to refresh, what to do
when it is rejected) lives in CalendarSyncService.
"""

import logging
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from relaxed_planner.calendar_sync.models import TokenResponse
from relaxed_planner.constants import (
    AUTH_SCHEME_BEARER,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    GOOGLE_CALENDAR_BASE_URL,
    GOOGLE_GRANT_TYPE_REFRESH,
    GOOGLE_TOKEN_URL,
)
from relaxed_planner.exceptions import NetworkError

logger = logging.getLogger(__name__)


class GoogleCalendarClient:
    """Thin async wrapper over httpx for calendar and token requests."""

    def __init__(
        self,
        client_id: str = "",
        client_secret: str = "",
        base_url: str = GOOGLE_CALENDAR_BASE_URL,
        token_url: str = GOOGLE_TOKEN_URL,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            client_id: OAuth client id used for token refresh.
            client_secret: OAuth client secret used for token refresh.
            base_url: Calendar API base URL.
            token_url: OAuth token endpoint.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (tests pass a MockTransport).
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = base_url.rstrip("/")
        self.token_url = token_url
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def request(
        self,
        method: str,
        path: str,
        access_token: str,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send an authenticated calendar API request.

        Args:
            method: HTTP method.
            path: Path below the API base URL (e.g. ``/users/me/calendarList``).
            access_token: Bearer token.
            json: Optional JSON body.

        Returns:
            The response, whatever its status.

        Raises:
            NetworkError: If no response was received.
        """
        url = f"{self.base_url}{path}"
        headers = {"Authorization": f"{AUTH_SCHEME_BEARER} {access_token}"}
        logger.debug(f"{method} {path}")
        try:
            response = await self._http.request(method, url, headers=headers, json=json)
        except httpx.HTTPError as e:
            raise NetworkError(f"{method} {path} failed: {e}", url=url) from e
        logger.debug(f"{method} {path} -> {response.status_code}")
        return response

    async def refresh_access_token(self, refresh_token: str) -> TokenResponse | None:
        """Exchange a refresh token for a new access token.

        Returns:
            The token response, or None if the endpoint rejected the refresh.

        Raises:
            NetworkError: If the token endpoint could not be reached.
        """
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": refresh_token,
            "grant_type": GOOGLE_GRANT_TYPE_REFRESH,
        }
        try:
            response = await self._http.post(self.token_url, data=data)
        except httpx.HTTPError as e:
            raise NetworkError(f"Token refresh failed: {e}", url=self.token_url) from e

        if not response.is_success:
            reason = error_message(response)
            logger.error(f"Token refresh rejected: {response.status_code} {reason}")
            return None
        try:
            return TokenResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            logger.error(f"Token endpoint returned an unusable body: {e}")
            return None

    async def aclose(self) -> None:
        await self._http.aclose()


def error_message(response: httpx.Response) -> str:
    """Best-effort human-readable error from an API error response."""
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or response.text
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or response.reason_phrase)
    if isinstance(error, str):
        return str(body.get("error_description") or error)
    return response.reason_phrase
