"""
Domain models for students, class records and reminder delivery.

These dataclasses are what the record store hands to the reconciliation
engine and what the engine hands back to routes and jobs.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class AttendanceStatus(str, Enum):
    """Tri-state attendance. Stored as a nullable boolean column."""

    UNSET = "unset"
    ATTENDED = "attended"
    ABSENT = "absent"

    @classmethod
    def from_db(cls, value: bool | None) -> "AttendanceStatus":
        if value is None:
            return cls.UNSET
        return cls.ATTENDED if value else cls.ABSENT

    def to_db(self) -> bool | None:
        if self is AttendanceStatus.UNSET:
            return None
        return self is AttendanceStatus.ATTENDED

    @classmethod
    def from_attended_flag(cls, attended: bool) -> "AttendanceStatus":
        return cls.ATTENDED if attended else cls.ABSENT


def credit_delta(
    previous: AttendanceStatus, new: AttendanceStatus, *, skip_decrement: bool = False
) -> int:
    """
    Balance change for an attendance transition.

    Only a move into ATTENDED from a state that has not already been charged
    costs a class. Moving away from ATTENDED never refunds.
    """
    if skip_decrement or previous is new:
        return 0
    if new is AttendanceStatus.ATTENDED:
        return -1
    return 0


@dataclass(slots=True)
class Student:
    id: int
    name: str
    line_user_id: str | None
    total_classes: int
    remaining_classes: int
    phone: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class ClassRecord:
    """One scheduled class instance for one student, keyed by calendar event id."""

    id: int
    student_id: int
    event_id: str
    class_date: datetime
    attendance: AttendanceStatus = AttendanceStatus.UNSET
    student_name: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class NotificationStatus:
    event_id: str
    notified: bool
    notified_at: datetime | None = None


@dataclass(slots=True)
class ScheduledEvent:
    """A calendar event as submitted for reconciliation."""

    event_id: str | None
    summary: str | None
    start: datetime | None
    end: datetime | None = None

    @property
    def student_name(self) -> str:
        return (self.summary or "").strip()

    def is_complete(self) -> bool:
        return bool(self.event_id and self.student_name and self.start)


# ---------------------------------------------------------------------------
# Record creation results
# ---------------------------------------------------------------------------


class RecordCreationOutcome(str, Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"
    FAILED = "failed"


@dataclass(slots=True)
class RecordCreationItem:
    event_id: str | None
    student_name: str
    outcome: RecordCreationOutcome
    error: str | None = None
    error_code: str | None = None


@dataclass(slots=True)
class RecordCreationSummary:
    items: list[RecordCreationItem] = field(default_factory=list)

    @property
    def created(self) -> int:
        return sum(1 for i in self.items if i.outcome is RecordCreationOutcome.CREATED)

    @property
    def skipped(self) -> int:
        return sum(1 for i in self.items if i.outcome is RecordCreationOutcome.ALREADY_EXISTS)

    @property
    def failures(self) -> list[RecordCreationItem]:
        return [i for i in self.items if i.outcome is RecordCreationOutcome.FAILED]

    @property
    def created_students(self) -> list[str]:
        return [i.student_name for i in self.items if i.outcome is RecordCreationOutcome.CREATED]

    @property
    def skipped_students(self) -> list[str]:
        return [
            i.student_name for i in self.items if i.outcome is RecordCreationOutcome.ALREADY_EXISTS
        ]

    @property
    def message(self) -> str:
        return (
            f"Class record processing completed: created {self.created}, "
            f"already existed {self.skipped}, failed {len(self.failures)}"
        )


# ---------------------------------------------------------------------------
# Attendance results
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class AttendanceChange:
    record_id: int
    student_id: int
    student_name: str
    previous_status: AttendanceStatus
    new_status: AttendanceStatus
    balance_delta: int
    remaining_classes: int

    @property
    def status_label(self) -> str:
        return self.new_status.value

    @property
    def message(self) -> str:
        text = f"Successfully set {self.student_name} as {self.status_label}"
        if self.balance_delta:
            text += f", {self.remaining_classes} classes remaining"
        return text


@dataclass(slots=True)
class AttendanceFailure:
    record_id: int
    student_name: str
    class_date: datetime
    error: str
    error_code: str


@dataclass(slots=True)
class AttendanceSweepSummary:
    window_start: datetime
    window_end: datetime
    confirmed: list[AttendanceChange] = field(default_factory=list)
    failures: list[AttendanceFailure] = field(default_factory=list)
    attendance_by_date: dict[str, list[str]] = field(default_factory=dict)

    @property
    def message(self) -> str:
        if not self.confirmed and not self.failures:
            return "No attendance records need confirmation"
        return (
            f"Batch confirmed {len(self.confirmed)} attendance records as attended, "
            f"{len(self.failures)} failed"
        )


# ---------------------------------------------------------------------------
# Reminder dispatch results
# ---------------------------------------------------------------------------


class DispatchOutcome(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    # Gateway timed out: delivery may or may not have happened.
    UNCONFIRMED = "unconfirmed"
    DUPLICATE = "duplicate"


@dataclass(slots=True)
class DispatchItem:
    event_id: str | None
    student_name: str
    outcome: DispatchOutcome
    error: str | None = None
    status_recorded: bool = False


@dataclass(slots=True)
class DispatchSummary:
    items: list[DispatchItem] = field(default_factory=list)

    def _count(self, outcome: DispatchOutcome) -> int:
        return sum(1 for i in self.items if i.outcome is outcome)

    @property
    def sent(self) -> int:
        return self._count(DispatchOutcome.SENT)

    @property
    def failed(self) -> int:
        return self._count(DispatchOutcome.FAILED)

    @property
    def unconfirmed(self) -> int:
        return self._count(DispatchOutcome.UNCONFIRMED)

    @property
    def sent_students(self) -> list[str]:
        return [i.student_name for i in self.items if i.outcome is DispatchOutcome.SENT]

    @property
    def failures(self) -> list[DispatchItem]:
        return [
            i
            for i in self.items
            if i.outcome in (DispatchOutcome.FAILED, DispatchOutcome.UNCONFIRMED)
        ]

    @property
    def message(self) -> str:
        return (
            f"Notification processing completed: sent {self.sent}, failed {self.failed}, "
            f"unconfirmed {self.unconfirmed}"
        )


# ---------------------------------------------------------------------------
# Registration results
# ---------------------------------------------------------------------------


class RegistrationOutcome(str, Enum):
    REGISTERED = "registered"
    ALREADY_REGISTERED = "already_registered"
    FAILED = "failed"


@dataclass(slots=True)
class RegistrationResult:
    sender_id: str
    outcome: RegistrationOutcome
    student: Student | None = None
    reply_sent: bool = False
    error: str | None = None
