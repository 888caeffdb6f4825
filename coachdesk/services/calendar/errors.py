from coachdesk.errors import GatewayError


class GoogleCalendarError(GatewayError):
    """Custom exception for Google Calendar API errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
        response_data: dict | None = None,
        retryable: bool = True,
    ):
        super().__init__(
            message,
            service="google_calendar",
            retryable=retryable,
            status_code=status_code,
            details=response_data,
        )
        self.error_code = error_code
        self.response_data = response_data or {}
