"""
Access tokens for the coach's Google Calendar.

The service runs unattended, so it holds one long-lived refresh token and
exchanges it for short-lived access tokens as needed.
"""

import asyncio
from datetime import UTC, datetime, timedelta

import httpx

from coachdesk.config import settings
from coachdesk.errors import GatewayTimeout
from coachdesk.infrastructure.observability.logging import get_logger
from coachdesk.services.calendar.errors import GoogleCalendarError

logger = get_logger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar"

REQUEST_TIMEOUT = 10  # seconds
EXPIRY_MARGIN = timedelta(seconds=60)


class GoogleTokenProvider:
    """Refresh-token grant with an in-process access token cache."""

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        refresh_token: str | None = None,
    ):
        self.client_id = client_id or settings.GOOGLE_CLIENT_ID
        self.client_secret = client_secret or settings.GOOGLE_CLIENT_SECRET
        self.refresh_token = refresh_token or settings.GOOGLE_REFRESH_TOKEN
        self._access_token: str | None = None
        self._expires_at: datetime | None = None
        self._lock = asyncio.Lock()

    def _validate_config(self) -> None:
        missing = [
            name
            for name, value in (
                ("GOOGLE_CLIENT_ID", self.client_id),
                ("GOOGLE_CLIENT_SECRET", self.client_secret),
                ("GOOGLE_REFRESH_TOKEN", self.refresh_token),
            )
            if not value
        ]
        if missing:
            raise GoogleCalendarError(
                f"Missing Google Calendar credentials: {', '.join(missing)}",
                retryable=False,
            )

    def _token_is_fresh(self) -> bool:
        return bool(
            self._access_token
            and self._expires_at
            and datetime.now(UTC) + EXPIRY_MARGIN < self._expires_at
        )

    async def get_access_token(self) -> str:
        if self._token_is_fresh():
            return self._access_token

        async with self._lock:
            if self._token_is_fresh():
                return self._access_token
            await self._refresh()
            return self._access_token

    def invalidate(self) -> None:
        """Forget the cached token, e.g. after a 401 from the Calendar API."""
        self._access_token = None
        self._expires_at = None

    async def _refresh(self) -> None:
        self._validate_config()

        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": self.refresh_token,
            "grant_type": "refresh_token",
        }

        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
                response = await client.post(
                    GOOGLE_TOKEN_URL,
                    data=data,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.TimeoutException as e:
            raise GatewayTimeout(
                f"Google token refresh timed out: {e}", service="google_calendar"
            ) from e
        except httpx.RequestError as e:
            raise GoogleCalendarError(f"Network error during token refresh: {e}") from e

        if not response.is_success:
            try:
                error_data = response.json()
            except ValueError:
                error_data = {}
            error_code = error_data.get("error", "unknown_error")
            logger.error(
                "Google token refresh failed",
                status_code=response.status_code,
                error_code=error_code,
            )
            raise GoogleCalendarError(
                f"Google token refresh failed: {error_code}",
                error_code=error_code,
                status_code=response.status_code,
                retryable=response.status_code >= 500,
            )

        payload = response.json()
        access_token = payload.get("access_token")
        if not access_token:
            raise GoogleCalendarError("Token response did not include an access token")

        expires_in = int(payload.get("expires_in", 3600))
        self._access_token = access_token
        self._expires_at = datetime.now(UTC) + timedelta(seconds=expires_in)
        logger.info("Google access token refreshed", expires_in=expires_in)
