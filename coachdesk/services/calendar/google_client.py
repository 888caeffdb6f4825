"""
Google Calendar API client for the coach's class calendar.
Read, create and delete of events only; the calendar is the source of truth
for which classes are scheduled.
"""

import asyncio
from datetime import datetime

import httpx

from coachdesk.config import settings
from coachdesk.errors import GatewayTimeout
from coachdesk.infrastructure.observability.logging import get_logger
from coachdesk.models.domain.calendar_domain import CalendarEvent
from coachdesk.services.calendar.errors import GoogleCalendarError
from coachdesk.services.calendar.google_auth import GoogleTokenProvider

logger = get_logger(__name__)

CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3"

MAX_RESULTS = 500
MAX_RETRIES = 3
BACKOFF_FACTOR = 2
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}

# Reminder overrides written on every class event
EVENT_REMINDERS = {
    "useDefault": False,
    "overrides": [
        {"method": "popup", "minutes": 60},
        {"method": "email", "minutes": 24 * 60},
    ],
}


class GoogleCalendarService:
    """
    Service for Google Calendar API operations.

    Handles event listing, creation and deletion with retry, backoff and
    error mapping. Timeouts surface as GatewayTimeout so callers can treat
    them as retryable rather than as a definite failure.
    """

    def __init__(
        self,
        token_provider: GoogleTokenProvider | None = None,
        calendar_id: str | None = None,
        timezone: str | None = None,
        timeout: float | None = None,
    ):
        self.token_provider = token_provider or GoogleTokenProvider()
        self.calendar_id = calendar_id or settings.GOOGLE_CALENDAR_ID
        self.timezone = timezone or settings.COACH_TIMEZONE
        self._timeout = timeout or settings.GATEWAY_TIMEOUT_SECONDS
        self._client = self._create_client()

    def _create_client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(self._timeout)
        limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)
        return httpx.AsyncClient(timeout=timeout, limits=limits)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def _events_url(self, event_id: str | None = None) -> str:
        url = f"{CALENDAR_API_BASE_URL}/calendars/{self.calendar_id}/events"
        return f"{url}/{event_id}" if event_id else url

    async def _request_with_retry(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Execute an authorized request with retry and backoff."""
        # A POST that timed out or hit a 5xx may already have created the event
        can_replay = method in ("GET", "DELETE")
        reauthorized = False
        attempt = 1
        while True:
            access_token = await self.token_provider.get_access_token()
            headers = {
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            }
            try:
                response = await self._client.request(method, url, headers=headers, **kwargs)
            except httpx.TimeoutException as e:
                if not can_replay or attempt >= MAX_RETRIES:
                    raise GatewayTimeout(
                        f"Calendar API timed out after {attempt} attempts",
                        service="google_calendar",
                    ) from e
                await self._backoff(attempt, error=str(e))
                attempt += 1
                continue
            except httpx.RequestError as e:
                if not can_replay or attempt >= MAX_RETRIES:
                    raise GoogleCalendarError(f"Calendar API unreachable: {e}") from e
                await self._backoff(attempt, error=str(e))
                attempt += 1
                continue

            if response.status_code == 401 and not reauthorized:
                # Cached token was revoked or expired early
                self.token_provider.invalidate()
                reauthorized = True
                continue

            replayable = can_replay or response.status_code == 429
            if response.status_code in RETRY_STATUS_CODES and replayable and attempt < MAX_RETRIES:
                await self._backoff(attempt, status_code=response.status_code)
                attempt += 1
                continue

            return response

    async def _backoff(self, attempt: int, **context) -> None:
        delay = BACKOFF_FACTOR * (2 ** (attempt - 1))
        logger.debug("Calendar API retrying request", attempt=attempt, backoff_seconds=delay, **context)
        await asyncio.sleep(delay)

    def _handle_api_response(self, response: httpx.Response, operation: str) -> dict:
        """
        Validate a Calendar API response.

        Returns:
            dict: Parsed response data

        Raises:
            GoogleCalendarError: If response contains errors
        """
        if response.is_success:
            try:
                return response.json() if response.text else {}
            except ValueError as e:
                logger.error(f"Failed to parse Calendar API {operation} response", error=str(e))
                raise GoogleCalendarError(f"Invalid response format: {e}") from e

        try:
            error_data = response.json() if response.text else {}
        except ValueError:
            logger.error(
                f"Calendar API {operation} failed with non-JSON response",
                status_code=response.status_code,
                response_text=response.text[:200] if response.text else "",
            )
            raise GoogleCalendarError(
                f"Calendar API error (HTTP {response.status_code})",
                status_code=response.status_code,
                retryable=response.status_code in RETRY_STATUS_CODES,
            ) from None

        error_info = error_data.get("error", {})
        error_code = str(error_info.get("code", response.status_code))
        error_message = error_info.get("message", "Unknown Calendar API error")

        logger.error(
            f"Calendar API {operation} failed",
            status_code=response.status_code,
            error_code=error_code,
            error_message=error_message,
        )

        raise GoogleCalendarError(
            self._map_calendar_error(error_code, error_message),
            error_code=error_code,
            status_code=response.status_code,
            response_data=error_data,
            retryable=response.status_code in RETRY_STATUS_CODES,
        )

    def _map_calendar_error(self, error_code: str, error_message: str) -> str:
        """Map Calendar API error codes to operator-facing messages."""
        error_mappings = {
            "403": "Calendar access denied. Please check permissions.",
            "404": "Calendar or event not found.",
            "400": "Invalid calendar request format.",
            "401": "Calendar authorization expired. Please reconnect.",
            "410": "Calendar event already deleted.",
            "429": "Too many calendar requests. Please try again later.",
            "500": "Google Calendar service temporarily unavailable.",
        }
        return error_mappings.get(error_code, f"Calendar error: {error_message}")

    async def list_events(self, time_min: datetime, time_max: datetime) -> list[CalendarEvent]:
        """
        List single (expanded) events between time_min and time_max.

        Raises:
            GoogleCalendarError: If listing events fails
            GatewayTimeout: If the API did not answer in time
        """
        params = {
            "timeMin": time_min.isoformat(),
            "timeMax": time_max.isoformat(),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": MAX_RESULTS,
        }

        logger.info(
            "Listing calendar events",
            calendar_id=self.calendar_id,
            time_min=params["timeMin"],
            time_max=params["timeMax"],
        )

        items: list[dict] = []
        while True:
            response = await self._request_with_retry("GET", self._events_url(), params=params)
            data = self._handle_api_response(response, "list_events")
            items.extend(data.get("items", []))

            page_token = data.get("nextPageToken")
            if not page_token:
                break
            params = {**params, "pageToken": page_token}

        events = [CalendarEvent(item) for item in items]
        events = [event for event in events if not event.is_cancelled()]

        logger.info("Events listed successfully", event_count=len(events))
        return events

    async def create_event(
        self,
        summary: str,
        start_time: datetime,
        end_time: datetime,
        description: str | None = None,
    ) -> CalendarEvent:
        """
        Create a class event. The summary is the student's name.

        Raises:
            GoogleCalendarError: If creating event fails
            GatewayTimeout: If the API did not answer; the event may still exist
        """
        event_data = {
            "summary": summary,
            "description": description or f"Class: {summary}",
            "start": {"dateTime": start_time.isoformat(), "timeZone": self.timezone},
            "end": {"dateTime": end_time.isoformat(), "timeZone": self.timezone},
            "reminders": EVENT_REMINDERS,
        }

        logger.info(
            "Creating calendar event",
            summary=summary,
            start_time=start_time.isoformat(),
            calendar_id=self.calendar_id,
        )

        response = await self._request_with_retry("POST", self._events_url(), json=event_data)
        data = self._handle_api_response(response, "create_event")

        event = CalendarEvent(data)
        logger.info("Event created successfully", event_id=event.id, summary=summary)
        return event

    async def delete_event(self, event_id: str) -> bool:
        """
        Delete a calendar event.

        Raises:
            GoogleCalendarError: If deleting event fails
        """
        logger.info("Deleting calendar event", event_id=event_id, calendar_id=self.calendar_id)

        response = await self._request_with_retry("DELETE", self._events_url(event_id))
        if response.status_code != 204:
            self._handle_api_response(response, "delete_event")

        logger.info("Event deleted successfully", event_id=event_id)
        return True


# Singleton instance for application use
google_calendar_service = GoogleCalendarService()
