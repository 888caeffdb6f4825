"""
Class reminder dispatch.

Sends exactly what it is given: deciding which events still need a reminder
is the caller's job (see dashboard_service.complete_tomorrow_notifications).
Within one call each event id is sent at most once.
"""

from collections.abc import Sequence
from datetime import datetime, tzinfo

from coachdesk.errors import GatewayError, GatewayTimeout, ReconciliationError
from coachdesk.infrastructure.observability.logging import get_logger, log_batch_summary
from coachdesk.models.domain.reconciliation_domain import (
    DispatchItem,
    DispatchOutcome,
    DispatchSummary,
    ScheduledEvent,
)
from coachdesk.services.line.messaging_client import retry_key_for
from coachdesk.services.reconciliation.record_creation import match_student
from coachdesk.utils.time_windows import format_class_date, format_class_time

logger = get_logger(__name__)

NO_MESSAGING_ID = "no messaging id"


def reminder_text(start: datetime, tz: tzinfo) -> str:
    return (
        "🏃‍♂️ Class Reminder\n\n"
        f"📅 Date: {format_class_date(start, tz)}\n"
        f"⏰ Time: {format_class_time(start, tz)}\n\n"
        "Please attend class on time!"
    )


async def _dispatch_one(
    store, messaging, event: ScheduledEvent, *, now: datetime, tz: tzinfo
) -> DispatchItem:
    name = event.student_name

    try:
        student = await match_student(store, event)
    except ReconciliationError as e:
        return DispatchItem(
            event_id=event.event_id, student_name=name, outcome=DispatchOutcome.FAILED, error=str(e)
        )

    if not student.line_user_id:
        logger.warning("Student has no LINE id", event_id=event.event_id, student_id=student.id)
        return DispatchItem(
            event_id=event.event_id,
            student_name=name,
            outcome=DispatchOutcome.FAILED,
            error=NO_MESSAGING_ID,
        )

    try:
        await messaging.push_message(
            student.line_user_id,
            reminder_text(event.start, tz),
            retry_key=retry_key_for(event.event_id),
        )
    except GatewayTimeout as e:
        # Delivery may have happened; leave the status unwritten so the next
        # sweep retries with the same retry key
        logger.warning("Reminder delivery unconfirmed", event_id=event.event_id, error=str(e))
        return DispatchItem(
            event_id=event.event_id,
            student_name=name,
            outcome=DispatchOutcome.UNCONFIRMED,
            error=f"Notification unconfirmed: {e}",
        )
    except GatewayError as e:
        logger.error("Reminder delivery failed", event_id=event.event_id, error=str(e))
        return DispatchItem(
            event_id=event.event_id,
            student_name=name,
            outcome=DispatchOutcome.FAILED,
            error=f"Notification failed: {e}",
        )

    recorded = True
    try:
        await store.upsert_notification_status(event.event_id, notified=True, notified_at=now)
    except GatewayError as e:
        # The message went out; only the bookkeeping is missing
        recorded = False
        logger.error(
            "Reminder sent but status not recorded", event_id=event.event_id, error=str(e)
        )

    return DispatchItem(
        event_id=event.event_id,
        student_name=name,
        outcome=DispatchOutcome.SENT,
        status_recorded=recorded,
    )


async def dispatch_class_reminders(
    store,
    messaging,
    events: Sequence[ScheduledEvent],
    *,
    now: datetime,
    tz: tzinfo,
) -> DispatchSummary:
    """
    Push a reminder to the student behind each event and record delivery.

    Per-event failures (unknown student, no LINE id, gateway error) are
    reported in the summary and never stop the rest of the batch.
    """
    summary = DispatchSummary()
    seen: set[str] = set()

    for event in events:
        if event.event_id and event.event_id in seen:
            summary.items.append(
                DispatchItem(
                    event_id=event.event_id,
                    student_name=event.student_name,
                    outcome=DispatchOutcome.DUPLICATE,
                )
            )
            continue
        if event.event_id:
            seen.add(event.event_id)

        try:
            item = await _dispatch_one(store, messaging, event, now=now, tz=tz)
        except Exception as e:
            logger.exception("Unexpected error dispatching reminder", event_id=event.event_id)
            item = DispatchItem(
                event_id=event.event_id,
                student_name=event.student_name,
                outcome=DispatchOutcome.FAILED,
                error=f"Error processing event: {e}",
            )
        summary.items.append(item)

    log_batch_summary(
        "dispatch_class_reminders",
        total_events=len(events),
        notifications_sent=summary.sent,
        notifications_failed=summary.failed,
        notifications_unconfirmed=summary.unconfirmed,
    )
    return summary
