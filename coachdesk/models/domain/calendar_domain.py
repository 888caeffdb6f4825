# coachdesk/models/domain/calendar_domain.py
"""
Calendar Domain Models
Wraps raw Google Calendar event payloads for the reconciliation engine.
"""

from datetime import UTC, datetime

from coachdesk.models.domain.reconciliation_domain import ScheduledEvent


class CalendarEvent:
    """Domain model for a scheduled class on the coach's calendar."""

    def __init__(self, data: dict):
        self.id = data.get("id")
        self.summary = data.get("summary", "")
        self.description = data.get("description", "")
        self.start_time = self._parse_datetime(data.get("start", {}))
        self.end_time = self._parse_datetime(data.get("end", {}))
        self.timezone = data.get("start", {}).get("timeZone", "UTC")
        self.status = data.get("status", "confirmed")
        self.raw_data = data

    def _parse_datetime(self, dt_data: dict) -> datetime | None:
        """Parse datetime from Google Calendar format."""
        if not dt_data:
            return None

        # All-day events carry a bare date
        if "date" in dt_data:
            return datetime.strptime(dt_data["date"], "%Y-%m-%d").replace(tzinfo=UTC)

        if "dateTime" in dt_data:
            try:
                return datetime.fromisoformat(dt_data["dateTime"].replace("Z", "+00:00"))
            except ValueError:
                return None

        return None

    def is_all_day(self) -> bool:
        return "date" in self.raw_data.get("start", {})

    def is_cancelled(self) -> bool:
        return self.status == "cancelled"

    def to_scheduled_event(self) -> ScheduledEvent:
        """Shape consumed by record creation and reminder dispatch."""
        return ScheduledEvent(
            event_id=self.id,
            summary=self.summary,
            start=self.start_time,
            end=self.end_time,
        )

    def __repr__(self) -> str:
        return f"CalendarEvent(id={self.id!r}, summary={self.summary!r}, start={self.start_time})"
