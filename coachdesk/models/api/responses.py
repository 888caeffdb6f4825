# coachdesk/models/api/responses.py
"""
API response models.
Used by routes for output formatting.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from coachdesk.models.domain.calendar_domain import CalendarEvent
from coachdesk.models.domain.reconciliation_domain import (
    AttendanceChange,
    AttendanceSweepSummary,
    ClassRecord,
    DispatchSummary,
    RecordCreationSummary,
    Student,
)


class ErrorResponse(BaseModel):
    error: str
    code: str
    details: dict[str, Any] = Field(default_factory=dict)


class StudentResponse(BaseModel):
    id: int
    name: str
    phone: str | None = None
    line_user_id: str | None = None
    total_classes: int
    remaining_classes: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_domain(cls, student: Student) -> "StudentResponse":
        return cls(
            id=student.id,
            name=student.name,
            phone=student.phone,
            line_user_id=student.line_user_id,
            total_classes=student.total_classes,
            remaining_classes=student.remaining_classes,
            created_at=student.created_at,
            updated_at=student.updated_at,
        )


class ClassRecordResponse(BaseModel):
    id: int
    student_id: int
    student_name: str | None = None
    event_id: str
    class_date: datetime
    attendance: str
    attended: bool | None

    @classmethod
    def from_domain(cls, record: ClassRecord) -> "ClassRecordResponse":
        return cls(
            id=record.id,
            student_id=record.student_id,
            student_name=record.student_name,
            event_id=record.event_id,
            class_date=record.class_date,
            attendance=record.attendance.value,
            attended=record.attendance.to_db(),
        )


class ItemFailure(BaseModel):
    name: str
    error: str | None = None
    event_id: str | None = None
    code: str | None = None


class RecordCreationResponse(BaseModel):
    success: bool = True
    message: str
    total_events: int
    records_created: int
    records_skipped: int
    created_students: list[str]
    skipped_students: list[str]
    failed_students: list[ItemFailure]

    @classmethod
    def from_domain(cls, summary: RecordCreationSummary) -> "RecordCreationResponse":
        return cls(
            message=summary.message,
            total_events=len(summary.items),
            records_created=summary.created,
            records_skipped=summary.skipped,
            created_students=summary.created_students,
            skipped_students=summary.skipped_students,
            failed_students=[
                ItemFailure(name=i.student_name, error=i.error, event_id=i.event_id, code=i.error_code)
                for i in summary.failures
            ],
        )


class DispatchResponse(BaseModel):
    success: bool = True
    message: str
    total_events: int
    notifications_sent: int
    notifications_failed: int
    notifications_unconfirmed: int
    sent_students: list[str]
    failed_students: list[ItemFailure]

    @classmethod
    def from_domain(cls, summary: DispatchSummary) -> "DispatchResponse":
        return cls(
            message=summary.message,
            total_events=len(summary.items),
            notifications_sent=summary.sent,
            notifications_failed=summary.failed,
            notifications_unconfirmed=summary.unconfirmed,
            sent_students=summary.sent_students,
            failed_students=[
                ItemFailure(
                    name=i.student_name, error=i.error, event_id=i.event_id, code=i.outcome.value
                )
                for i in summary.failures
            ],
        )


class AttendanceResponse(BaseModel):
    success: bool = True
    message: str
    record_id: int
    student_id: int
    student_name: str
    previous_status: str
    status: str
    balance_delta: int
    remaining_classes: int

    @classmethod
    def from_domain(cls, change: AttendanceChange) -> "AttendanceResponse":
        return cls(
            message=change.message,
            record_id=change.record_id,
            student_id=change.student_id,
            student_name=change.student_name,
            previous_status=change.previous_status.value,
            status=change.status_label,
            balance_delta=change.balance_delta,
            remaining_classes=change.remaining_classes,
        )


class AttendanceSweepResponse(BaseModel):
    success: bool = True
    message: str
    window_start: datetime
    window_end: datetime
    updated_count: int
    attendance_by_date: dict[str, list[str]]
    failed_students: list[ItemFailure]

    @classmethod
    def from_domain(cls, summary: AttendanceSweepSummary) -> "AttendanceSweepResponse":
        return cls(
            message=summary.message,
            window_start=summary.window_start,
            window_end=summary.window_end,
            updated_count=len(summary.confirmed),
            attendance_by_date=summary.attendance_by_date,
            failed_students=[
                ItemFailure(name=f.student_name, error=f.error, code=f.error_code)
                for f in summary.failures
            ],
        )


class CompletionResponse(BaseModel):
    """Result of a "complete tomorrow's ..." sweep."""

    success: bool = True
    message: str
    total_events: int
    details: dict[str, Any] | None = None


class ProgressCounter(BaseModel):
    total: int
    completed: int
    percentage: int


class DashboardStatsResponse(BaseModel):
    success: bool = True
    notifications: ProgressCounter
    attendance: ProgressCounter
    class_records: ProgressCounter
    calendar_available: bool


class DayCounts(BaseModel):
    total: int
    completed: int
    pending: int
    absent: int


class CalendarEventResponse(BaseModel):
    id: str
    summary: str
    description: str = ""
    start_time: datetime | None = None
    end_time: datetime | None = None
    timezone: str
    status: str
    is_all_day: bool

    @classmethod
    def from_domain(cls, event: CalendarEvent) -> "CalendarEventResponse":
        return cls(
            id=event.id,
            summary=event.summary or "",
            description=event.description or "",
            start_time=event.start_time,
            end_time=event.end_time,
            timezone=event.timezone,
            status=event.status,
            is_all_day=event.is_all_day(),
        )


class EventsListResponse(BaseModel):
    events: list[CalendarEventResponse]
    total_count: int
    time_min: datetime
    time_max: datetime


class LineProfileResponse(BaseModel):
    user_id: str
    display_name: str
    picture_url: str | None = None
    status_message: str | None = None
