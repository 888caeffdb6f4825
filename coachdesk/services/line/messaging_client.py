"""
LINE Messaging API client.

Push, broadcast, profile lookup and bot info over the REST API. Pushes
carry an X-Line-Retry-Key so a request retried after a timeout is
delivered at most once; LINE answers a repeated key with 409.
"""

import asyncio
import uuid
from dataclasses import dataclass

import httpx

from coachdesk.config import settings
from coachdesk.errors import GatewayError, GatewayTimeout
from coachdesk.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

LINE_API_BASE_URL = "https://api.line.me/v2/bot"

MAX_RETRIES = 3
BACKOFF_FACTOR = 1
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}

# Namespace for retry keys derived from calendar event ids
RETRY_KEY_NAMESPACE = uuid.UUID("6f1c7c52-2a53-4c0e-9a7e-3f1b5e0d9c21")


class LineMessagingError(GatewayError):
    """Custom exception for LINE Messaging API errors."""

    def __init__(self, message: str, status_code: int | None = None, retryable: bool = True):
        super().__init__(
            message, service="line_messaging", retryable=retryable, status_code=status_code
        )


@dataclass(slots=True)
class LineProfile:
    user_id: str
    display_name: str
    picture_url: str | None = None
    status_message: str | None = None


def retry_key_for(event_id: str) -> str:
    """Stable retry key so every send for the same event shares one key."""
    return str(uuid.uuid5(RETRY_KEY_NAMESPACE, event_id))


class LineMessagingService:
    """Thin async wrapper over the LINE Messaging API."""

    def __init__(self, channel_access_token: str | None = None, timeout: float | None = None):
        self.channel_access_token = channel_access_token or settings.LINE_CHANNEL_ACCESS_TOKEN
        self._timeout = timeout or settings.GATEWAY_TIMEOUT_SECONDS
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout))

    async def close(self) -> None:
        await self._client.aclose()

    def _headers(self, retry_key: str | None = None) -> dict:
        if not self.channel_access_token:
            raise LineMessagingError("LINE_CHANNEL_ACCESS_TOKEN not configured", retryable=False)
        headers = {
            "Authorization": f"Bearer {self.channel_access_token}",
            "Content-Type": "application/json",
        }
        if retry_key:
            headers["X-Line-Retry-Key"] = retry_key
        return headers

    async def _request(
        self, method: str, path: str, *, operation: str, retry_key: str | None = None, **kwargs
    ) -> httpx.Response:
        url = f"{LINE_API_BASE_URL}{path}"
        headers = self._headers(retry_key)
        # Without a retry key a replayed POST could deliver twice
        can_replay = method == "GET" or retry_key is not None

        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = await self._client.request(method, url, headers=headers, **kwargs)
            except httpx.TimeoutException as e:
                if not can_replay or attempt >= MAX_RETRIES:
                    logger.warning("LINE API timed out", operation=operation, attempt=attempt)
                    raise GatewayTimeout(
                        f"LINE {operation} timed out", service="line_messaging"
                    ) from e
                await asyncio.sleep(BACKOFF_FACTOR * attempt)
                continue
            except httpx.RequestError as e:
                if not can_replay or attempt >= MAX_RETRIES:
                    raise LineMessagingError(f"LINE {operation} request failed: {e}") from e
                await asyncio.sleep(BACKOFF_FACTOR * attempt)
                continue

            if response.status_code in RETRY_STATUS_CODES and can_replay and attempt < MAX_RETRIES:
                logger.debug(
                    "LINE API retrying request",
                    operation=operation,
                    status_code=response.status_code,
                    attempt=attempt,
                )
                await asyncio.sleep(BACKOFF_FACTOR * attempt)
                continue

            return response

        raise RuntimeError("LINE API retry loop exhausted")

    def _raise_for_status(self, response: httpx.Response, operation: str) -> None:
        if response.is_success:
            return

        try:
            message = response.json().get("message", "Unknown LINE API error")
        except ValueError:
            message = response.text[:200] if response.text else "Unknown LINE API error"

        logger.error(
            f"LINE {operation} failed", status_code=response.status_code, error_message=message
        )
        raise LineMessagingError(
            f"LINE {operation} failed: {message}",
            status_code=response.status_code,
            retryable=response.status_code in RETRY_STATUS_CODES,
        )

    async def push_message(self, user_id: str, text: str, *, retry_key: str | None = None) -> None:
        """
        Send a text message to one user.

        Raises:
            GatewayTimeout: delivery outcome unknown
            LineMessagingError: LINE rejected the message
        """
        body = {"to": user_id, "messages": [{"type": "text", "text": text}]}
        response = await self._request(
            "POST", "/message/push", operation="push_message", retry_key=retry_key, json=body
        )

        if response.status_code == 409 and retry_key:
            # Same retry key was already accepted: the message went out earlier
            logger.info("LINE push already accepted", retry_key=retry_key)
            return

        self._raise_for_status(response, "push_message")

    async def broadcast(self, text: str) -> None:
        body = {"messages": [{"type": "text", "text": text}]}
        response = await self._request(
            "POST",
            "/message/broadcast",
            operation="broadcast",
            retry_key=str(uuid.uuid4()),
            json=body,
        )
        if response.status_code == 409:
            return
        self._raise_for_status(response, "broadcast")

    async def get_profile(self, user_id: str) -> LineProfile:
        response = await self._request("GET", f"/profile/{user_id}", operation="get_profile")
        self._raise_for_status(response, "get_profile")
        data = response.json()
        return LineProfile(
            user_id=data.get("userId", user_id),
            display_name=data.get("displayName", ""),
            picture_url=data.get("pictureUrl"),
            status_message=data.get("statusMessage"),
        )

    async def get_bot_info(self) -> dict:
        response = await self._request("GET", "/info", operation="get_bot_info")
        self._raise_for_status(response, "get_bot_info")
        return response.json()


# Singleton instance for application use
line_messaging_service = LineMessagingService()
