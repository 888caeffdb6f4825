"""
FastAPI dependencies for the shared gateways and the clock.

Routes never reach for the module singletons directly, so tests can swap
each of them through app.dependency_overrides.
"""

from datetime import UTC, datetime
from zoneinfo import ZoneInfo

from coachdesk.config import settings
from coachdesk.repositories.record_store import record_store
from coachdesk.services.calendar.google_client import google_calendar_service
from coachdesk.services.line.messaging_client import line_messaging_service


def get_record_store():
    return record_store


def get_calendar():
    return google_calendar_service


def get_messaging():
    return line_messaging_service


def get_now() -> datetime:
    return datetime.now(UTC)


def get_coach_tz() -> ZoneInfo:
    return settings.coach_tz()


def get_line_channel_secret() -> str | None:
    return settings.LINE_CHANNEL_SECRET


def get_welcome_back_enabled() -> bool:
    return settings.LINE_WELCOME_BACK_ENABLED
