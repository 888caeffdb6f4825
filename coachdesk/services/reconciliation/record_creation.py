"""
Idempotent class-record creation from calendar events.

Each event is matched to a student by exact (trimmed) name and gets at most
one ClassRecord, guaranteed by the unique event_id constraint. Every event in
the batch is processed; individual failures are reported, never raised.
"""

from collections.abc import Sequence

from coachdesk.errors import GatewayError, ReconciliationError, StudentNotFound, ValidationError
from coachdesk.infrastructure.observability.logging import get_logger, log_batch_summary
from coachdesk.models.domain.reconciliation_domain import (
    RecordCreationItem,
    RecordCreationOutcome,
    RecordCreationSummary,
    ScheduledEvent,
    Student,
)

logger = get_logger(__name__)


async def match_student(store, event: ScheduledEvent) -> Student:
    """
    Resolve the event summary to exactly one student.

    Raises:
        ValidationError: event is missing id, summary or start, or the name is ambiguous
        StudentNotFound: no student has that exact name
    """
    if not event.is_complete():
        raise ValidationError("Event data incomplete", details={"event_id": event.event_id})

    name = event.student_name
    students = await store.find_students_by_name(name)
    if not students:
        raise StudentNotFound(
            f"No student record found for '{name}'", details={"student_name": name}
        )
    if len(students) > 1:
        raise ValidationError(
            f"Multiple students are named '{name}'",
            details={"student_name": name, "student_ids": [s.id for s in students]},
        )
    return students[0]


async def _create_one(store, event: ScheduledEvent) -> RecordCreationItem:
    name = event.student_name
    try:
        student = await match_student(store, event)
        _, created = await store.insert_class_record(student.id, event.event_id, event.start)
    except GatewayError as e:
        logger.error("Failed to create class record", event_id=event.event_id, error=str(e))
        return RecordCreationItem(
            event_id=event.event_id,
            student_name=name,
            outcome=RecordCreationOutcome.FAILED,
            error=f"Failed to create class record: {e}",
            error_code=e.code,
        )
    except ReconciliationError as e:
        if isinstance(e, StudentNotFound):
            # Most often a renamed student or a typo in the calendar summary
            logger.warning("Calendar event matches no student", event_id=event.event_id, name=name)
        return RecordCreationItem(
            event_id=event.event_id,
            student_name=name,
            outcome=RecordCreationOutcome.FAILED,
            error=str(e),
            error_code=e.code,
        )
    except Exception as e:
        logger.exception("Unexpected error processing event", event_id=event.event_id)
        return RecordCreationItem(
            event_id=event.event_id,
            student_name=name,
            outcome=RecordCreationOutcome.FAILED,
            error=f"Error processing event: {e}",
            error_code="internal_error",
        )

    outcome = RecordCreationOutcome.CREATED if created else RecordCreationOutcome.ALREADY_EXISTS
    return RecordCreationItem(event_id=event.event_id, student_name=name, outcome=outcome)


async def create_class_records(store, events: Sequence[ScheduledEvent]) -> RecordCreationSummary:
    """
    Create one ClassRecord per event, skipping events that already have one.

    Safe to run repeatedly and concurrently with itself.
    """
    summary = RecordCreationSummary()
    for event in events:
        summary.items.append(await _create_one(store, event))

    log_batch_summary(
        "create_class_records",
        total_events=len(events),
        records_created=summary.created,
        records_skipped=summary.skipped,
        records_failed=len(summary.failures),
    )
    return summary
