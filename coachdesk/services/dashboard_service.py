"""
Dashboard aggregation over the calendar and the record store.

This is where "which of tomorrow's events still need a record / a reminder"
is decided; the reconciliation engine only processes what it is handed.
"""

from datetime import date, datetime, tzinfo

from coachdesk.errors import GatewayError, ValidationError
from coachdesk.infrastructure.observability.logging import get_logger
from coachdesk.models.domain.reconciliation_domain import (
    AttendanceStatus,
    DispatchSummary,
    RecordCreationSummary,
)
from coachdesk.services.reconciliation import create_class_records, dispatch_class_reminders
from coachdesk.utils.time_windows import (
    end_of_day,
    local_date,
    start_of_day,
    tomorrow_window,
    trailing_window,
)

logger = get_logger(__name__)


def progress(total: int, completed: int) -> dict:
    percentage = round(completed / total * 100) if total > 0 else 0
    return {"total": total, "completed": completed, "percentage": percentage}


async def _tomorrow_events(calendar, now: datetime, tz: tzinfo) -> list:
    start, end = tomorrow_window(now, tz)
    events = await calendar.list_events(start, end)
    return [event.to_scheduled_event() for event in events if event.id]


async def complete_tomorrow_class_records(
    store, calendar, *, now: datetime, tz: tzinfo
) -> tuple[str, int, RecordCreationSummary | None]:
    """
    Create records for tomorrow's events that do not have one yet.

    Returns (message, total_events, summary). summary is None when there was
    nothing to do. A calendar failure propagates: without the event list the
    sweep cannot start.
    """
    events = await _tomorrow_events(calendar, now, tz)
    if not events:
        return "No classes tomorrow that need records created", 0, None

    existing = await store.existing_record_event_ids(e.event_id for e in events)
    pending = [e for e in events if e.event_id not in existing]
    if not pending:
        return "All tomorrow's class records have been created", len(events), None

    summary = await create_class_records(store, pending)
    message = f"Completed tomorrow's class record creation: created {summary.created} records"
    return message, len(events), summary


async def complete_tomorrow_notifications(
    store, calendar, messaging, *, now: datetime, tz: tzinfo
) -> tuple[str, int, DispatchSummary | None]:
    """Send reminders for tomorrow's events that have not been notified yet."""
    events = await _tomorrow_events(calendar, now, tz)
    if not events:
        return "No classes tomorrow that need notifications", 0, None

    notified = await store.notified_event_ids(e.event_id for e in events)
    pending = [e for e in events if e.event_id not in notified]
    if not pending:
        return "All tomorrow's notifications have been sent", len(events), None

    summary = await dispatch_class_reminders(store, messaging, pending, now=now, tz=tz)
    message = f"Completed tomorrow's notifications: sent {summary.sent} notifications"
    return message, len(events), summary


async def dashboard_stats(
    store, calendar, *, now: datetime, tz: tzinfo, days_back: int = 2
) -> dict:
    """
    Progress counters for the dashboard.

    The attendance counter needs only the store. The two counters built on
    tomorrow's calendar fall back to zero, flagged as degraded, when the
    calendar cannot be read.
    """
    window_start, window_end = trailing_window(now, tz, days_back)
    recent = await store.list_class_records(window_start, window_end)
    decided = sum(1 for r in recent if r.attendance is not AttendanceStatus.UNSET)

    calendar_available = True
    total_tomorrow = notified = with_records = 0
    try:
        events = await _tomorrow_events(calendar, now, tz)
    except GatewayError as e:
        calendar_available = False
        logger.warning("Dashboard stats without calendar data", error=str(e), service=e.service)
    else:
        event_ids = [e.event_id for e in events]
        total_tomorrow = len(events)
        if event_ids:
            notified = len(await store.notified_event_ids(event_ids))
            with_records = len(await store.existing_record_event_ids(event_ids))

    return {
        "notifications": progress(total_tomorrow, notified),
        "attendance": progress(len(recent), decided),
        "class_records": progress(total_tomorrow, with_records),
        "calendar_available": calendar_available,
    }


async def count_records_by_date(
    store, start_date: date, end_date: date, *, tz: tzinfo
) -> dict[str, dict[str, int]]:
    """Per-day {total, completed, pending, absent} counts, keyed by ISO date."""
    if end_date < start_date:
        raise ValidationError("end_date must not be before start_date")

    records = await store.list_class_records(start_of_day(start_date, tz), end_of_day(end_date, tz))

    counts: dict[str, dict[str, int]] = {}
    for record in records:
        day = local_date(record.class_date, tz).isoformat()
        stats = counts.setdefault(day, {"total": 0, "completed": 0, "pending": 0, "absent": 0})
        stats["total"] += 1
        if record.attendance is AttendanceStatus.ATTENDED:
            stats["completed"] += 1
        elif record.attendance is AttendanceStatus.ABSENT:
            stats["absent"] += 1
        else:
            stats["pending"] += 1
    return counts
