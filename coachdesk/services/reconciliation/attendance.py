"""
Attendance confirmation and the credit transaction behind it.

Transition rules:
    unset    -> attended   -1 (needs remaining_classes > 0)
    absent   -> attended   -1 (needs remaining_classes > 0)
    unset    -> absent      0
    attended -> absent      0 (no refund)
    same     -> same        0 (no write)

skip_decrement forces a 0 delta for any transition.

Stores that can run the attendance write and the balance write in one
transaction do so. Otherwise the attendance write happens first and is
undone if the balance write fails; if the undo fails too the two are out of
sync and InternalInconsistency is raised.
"""

from datetime import datetime, tzinfo

from coachdesk.errors import (
    ConflictError,
    GatewayError,
    InsufficientCredit,
    InternalInconsistency,
    RecordNotFound,
    ReconciliationError,
    StudentNotFound,
    ValidationError,
)
from coachdesk.infrastructure.observability.logging import get_logger, log_batch_summary
from coachdesk.models.domain.reconciliation_domain import (
    AttendanceChange,
    AttendanceFailure,
    AttendanceStatus,
    AttendanceSweepSummary,
    ClassRecord,
    Student,
    credit_delta,
)
from coachdesk.utils.time_windows import local_date, trailing_window

logger = get_logger(__name__)

INSUFFICIENT_CREDIT_MESSAGE = "Student has insufficient remaining classes, cannot deduct class"


async def confirm_attendance(
    store,
    record_id: int,
    status: AttendanceStatus,
    *,
    skip_decrement: bool = False,
) -> AttendanceChange:
    """
    Set a class record's attendance and move the student's balance to match.

    Raises:
        ValidationError: status is UNSET
        RecordNotFound: no record with that id
        InsufficientCredit: the transition costs a class and the balance is 0
        ConflictError: another writer changed the record to a different status
        GatewayError: the store failed; nothing was changed
        InternalInconsistency: the store failed and the rollback failed too
    """
    if status is AttendanceStatus.UNSET:
        raise ValidationError("Attendance can only be set to attended or absent")

    record = await store.get_class_record(record_id)
    if record is None:
        raise RecordNotFound(f"Class record {record_id} not found", details={"record_id": record_id})

    student = await _load_student(store, record)
    return await _apply_transition(store, record, student, status, skip_decrement=skip_decrement)


async def _load_student(store, record: ClassRecord) -> Student:
    student = await store.get_student(record.student_id)
    if student is None:
        raise StudentNotFound(
            f"Student {record.student_id} for class record {record.id} not found",
            details={"record_id": record.id, "student_id": record.student_id},
        )
    return student


def _build_change(
    record: ClassRecord,
    student: Student,
    previous: AttendanceStatus,
    new_status: AttendanceStatus,
    delta: int,
    balance: int,
) -> AttendanceChange:
    return AttendanceChange(
        record_id=record.id,
        student_id=student.id,
        student_name=student.name,
        previous_status=previous,
        new_status=new_status,
        balance_delta=delta,
        remaining_classes=balance,
    )


async def _apply_transition(
    store,
    record: ClassRecord,
    student: Student,
    new_status: AttendanceStatus,
    *,
    skip_decrement: bool = False,
) -> AttendanceChange:
    previous = record.attendance
    if previous is new_status:
        return _build_change(record, student, previous, new_status, 0, student.remaining_classes)

    delta = credit_delta(previous, new_status, skip_decrement=skip_decrement)
    if delta < 0 and student.remaining_classes <= 0:
        raise InsufficientCredit(
            INSUFFICIENT_CREDIT_MESSAGE,
            details={"student_id": student.id, "record_id": record.id},
        )

    try:
        if store.supports_transactions:
            balance = await store.apply_attendance_change(record, new_status, delta)
        else:
            balance = await _apply_with_compensation(store, record, student, new_status, delta)
    except ConflictError:
        return await _resolve_conflict(store, record, new_status)

    logger.info(
        "Attendance updated",
        record_id=record.id,
        student_id=student.id,
        previous_status=previous.value,
        new_status=new_status.value,
        balance_delta=delta,
        remaining_classes=balance,
    )
    return _build_change(record, student, previous, new_status, delta, balance)


async def _apply_with_compensation(
    store,
    record: ClassRecord,
    student: Student,
    new_status: AttendanceStatus,
    delta: int,
) -> int:
    previous = record.attendance

    if not await store.set_attendance(record.id, new_status, expected=previous):
        raise ConflictError(
            "Class record attendance changed concurrently", details={"record_id": record.id}
        )

    if delta == 0:
        return student.remaining_classes

    try:
        balance = await store.adjust_balance(
            student.id,
            delta,
            class_record_id=record.id,
            reason=f"attendance:{new_status.value}",
        )
    except GatewayError as e:
        await _undo_attendance(store, record, student, new_status, cause=e)
        raise

    if balance is None:
        # Another writer spent the last credit between our read and our write
        await _undo_attendance(store, record, student, new_status, cause=None)
        raise InsufficientCredit(
            INSUFFICIENT_CREDIT_MESSAGE,
            details={"student_id": student.id, "record_id": record.id},
        )
    return balance


async def _undo_attendance(
    store,
    record: ClassRecord,
    student: Student,
    attempted: AttendanceStatus,
    *,
    cause: Exception | None,
) -> None:
    previous = record.attendance
    undo_error: Exception | None = None
    try:
        restored = await store.set_attendance(record.id, previous, expected=attempted)
    except Exception as e:
        restored = False
        undo_error = e

    if not restored:
        logger.critical(
            "Attendance and credit balance out of sync; manual reconciliation required",
            record_id=record.id,
            student_id=student.id,
            previous_status=previous.value,
            attempted_status=attempted.value,
            balance_error=str(cause) if cause else "insufficient_credit",
            undo_error=str(undo_error) if undo_error else "attendance changed concurrently",
        )
        raise InternalInconsistency(
            f"Could not restore attendance of class record {record.id} after a failed "
            "balance update",
            details={
                "record_id": record.id,
                "student_id": student.id,
                "previous_status": previous.value,
                "attempted_status": attempted.value,
            },
        ) from (undo_error or cause)

    logger.warning(
        "Attendance change rolled back",
        record_id=record.id,
        student_id=student.id,
        restored_status=previous.value,
    )


async def _resolve_conflict(
    store, record: ClassRecord, new_status: AttendanceStatus
) -> AttendanceChange:
    """A concurrent writer won. Fine if it wrote what we wanted; otherwise a conflict."""
    current = await store.get_class_record(record.id)
    if current is not None and current.attendance is new_status:
        student = await _load_student(store, current)
        logger.info(
            "Attendance already set by concurrent request",
            record_id=record.id,
            status=new_status.value,
        )
        return _build_change(current, student, new_status, new_status, 0, student.remaining_classes)

    raise ConflictError(
        "Class record attendance changed concurrently; reload and retry",
        details={
            "record_id": record.id,
            "current_status": current.attendance.value if current else None,
        },
    )


async def auto_confirm_recent_attendance(
    store,
    *,
    now: datetime,
    tz: tzinfo,
    days_back: int = 2,
) -> AttendanceSweepSummary:
    """
    Mark every still-undecided record in the trailing window as attended.

    Each record goes through the same transition as a manual confirmation, so
    each one costs its student a class. Records whose student has no credit
    left stay undecided and are reported as failures.
    """
    window_start, window_end = trailing_window(now, tz, days_back)
    pending = await store.list_class_records(
        window_start, window_end, status=AttendanceStatus.UNSET
    )

    summary = AttendanceSweepSummary(window_start=window_start, window_end=window_end)

    for record in pending:
        try:
            student = await _load_student(store, record)
            change = await _apply_transition(store, record, student, AttendanceStatus.ATTENDED)
        except ReconciliationError as e:
            summary.failures.append(
                AttendanceFailure(
                    record_id=record.id,
                    student_name=record.student_name or "Unknown Student",
                    class_date=record.class_date,
                    error=str(e),
                    error_code=e.code,
                )
            )
            continue
        except Exception as e:
            logger.exception("Unexpected error confirming attendance", record_id=record.id)
            summary.failures.append(
                AttendanceFailure(
                    record_id=record.id,
                    student_name=record.student_name or "Unknown Student",
                    class_date=record.class_date,
                    error=f"Error confirming attendance: {e}",
                    error_code="internal_error",
                )
            )
            continue

        summary.confirmed.append(change)
        day = local_date(record.class_date, tz).isoformat()
        summary.attendance_by_date.setdefault(day, []).append(change.student_name)

    log_batch_summary(
        "auto_confirm_attendance",
        pending_records=len(pending),
        confirmed=len(summary.confirmed),
        failed=len(summary.failures),
    )
    return summary
