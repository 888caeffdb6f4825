import itertools
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

from coachdesk.models.domain.calendar_domain import CalendarEvent
from coachdesk.models.domain.reconciliation_domain import (
    AttendanceStatus,
    ClassRecord,
    NotificationStatus,
    Student,
)
from coachdesk.services.line.messaging_client import LineProfile

TAIPEI = ZoneInfo("Asia/Taipei")
# Thursday 2025-03-13 18:00 in Taipei
NOW = datetime(2025, 3, 13, 10, 0, tzinfo=UTC)


class FakeRecordStore:
    """
    In-memory record store without transactions.

    fail(method, error, after=n) makes the (n+1)-th call of `method` raise.
    """

    supports_transactions = False

    def __init__(self):
        self.students: dict[int, Student] = {}
        self.records: dict[int, ClassRecord] = {}
        self.notifications: dict[str, NotificationStatus] = {}
        self.ledger: list[dict] = []
        self.calls: list[str] = []
        self._ids = itertools.count(1)
        self._failures: dict[str, list[list]] = {}

    # -- test helpers -------------------------------------------------

    def fail(self, method: str, error: Exception, *, after: int = 0) -> None:
        self._failures.setdefault(method, []).append([after, error])

    def _hit(self, method: str) -> None:
        self.calls.append(method)
        plans = self._failures.get(method)
        if not plans:
            return
        if plans[0][0] > 0:
            plans[0][0] -= 1
            return
        _, error = plans.pop(0)
        raise error

    def add_student(
        self, name: str, *, remaining: int = 5, total: int | None = None, line_user_id=None
    ) -> Student:
        student = Student(
            id=next(self._ids),
            name=name,
            line_user_id=line_user_id,
            total_classes=remaining if total is None else total,
            remaining_classes=remaining,
        )
        self.students[student.id] = student
        return student

    def add_record(
        self,
        student: Student,
        event_id: str,
        class_date: datetime,
        attendance: AttendanceStatus = AttendanceStatus.UNSET,
    ) -> ClassRecord:
        record = ClassRecord(
            id=next(self._ids),
            student_id=student.id,
            event_id=event_id,
            class_date=class_date,
            attendance=attendance,
        )
        self.records[record.id] = record
        return self._view(record)

    def balance(self, student_id: int) -> int:
        return self.students[student_id].remaining_classes

    def attendance(self, record_id: int) -> AttendanceStatus:
        return self.records[record_id].attendance

    def _view(self, record: ClassRecord) -> ClassRecord:
        student = self.students.get(record.student_id)
        return replace(record, student_name=student.name if student else None)

    # -- students -----------------------------------------------------

    async def get_student(self, student_id):
        self._hit("get_student")
        student = self.students.get(student_id)
        return replace(student) if student else None

    async def find_students_by_name(self, name):
        self._hit("find_students_by_name")
        return [replace(s) for s in self.students.values() if s.name == name]

    async def get_student_by_line_id(self, line_user_id):
        self._hit("get_student_by_line_id")
        for s in self.students.values():
            if s.line_user_id == line_user_id:
                return replace(s)
        return None

    async def list_students(self):
        self._hit("list_students")
        return sorted((replace(s) for s in self.students.values()), key=lambda s: (s.name, s.id))

    async def create_student(self, name, line_user_id=None, phone=None):
        self._hit("create_student")
        if line_user_id:
            for s in self.students.values():
                if s.line_user_id == line_user_id:
                    return replace(s), False
        student = self.add_student(name, remaining=0, line_user_id=line_user_id)
        student.phone = phone
        return replace(student), True

    async def update_student_profile(self, student_id, *, name=None, phone=None):
        self._hit("update_student_profile")
        student = self.students.get(student_id)
        if student is None:
            return None
        if name is not None:
            student.name = name
        if phone is not None:
            student.phone = phone
        return replace(student)

    async def grant_credits(self, student_id, classes):
        self._hit("grant_credits")
        student = self.students.get(student_id)
        if student is None:
            return None
        student.total_classes += classes
        student.remaining_classes += classes
        self.ledger.append({"student_id": student_id, "delta": classes, "reason": "grant"})
        return replace(student)

    # -- class records ------------------------------------------------

    async def get_class_record(self, record_id):
        self._hit("get_class_record")
        record = self.records.get(record_id)
        return self._view(record) if record else None

    async def get_class_record_by_event(self, event_id):
        self._hit("get_class_record_by_event")
        for r in self.records.values():
            if r.event_id == event_id:
                return self._view(r)
        return None

    async def insert_class_record(self, student_id, event_id, class_date):
        self._hit("insert_class_record")
        for r in self.records.values():
            if r.event_id == event_id:
                return self._view(r), False
        record = ClassRecord(
            id=next(self._ids), student_id=student_id, event_id=event_id, class_date=class_date
        )
        self.records[record.id] = record
        return self._view(record), True

    async def list_class_records(self, start, end, *, status=None):
        self._hit("list_class_records")
        rows = [
            self._view(r)
            for r in self.records.values()
            if start <= r.class_date <= end and (status is None or r.attendance is status)
        ]
        return sorted(rows, key=lambda r: (r.class_date, r.id))

    async def existing_record_event_ids(self, event_ids):
        self._hit("existing_record_event_ids")
        ids = set(event_ids)
        return {r.event_id for r in self.records.values() if r.event_id in ids}

    # -- attendance and balance ---------------------------------------

    async def set_attendance(self, record_id, new_status, *, expected):
        self._hit("set_attendance")
        record = self.records.get(record_id)
        if record is None or record.attendance is not expected:
            return False
        record.attendance = new_status
        return True

    async def adjust_balance(self, student_id, delta, *, class_record_id, reason):
        self._hit("adjust_balance")
        student = self.students[student_id]
        if student.remaining_classes + delta < 0:
            return None
        student.remaining_classes += delta
        self.ledger.append(
            {
                "student_id": student_id,
                "class_record_id": class_record_id,
                "delta": delta,
                "reason": reason,
            }
        )
        return student.remaining_classes

    # -- reminder status ----------------------------------------------

    async def upsert_notification_status(self, event_id, *, notified, notified_at):
        self._hit("upsert_notification_status")
        self.notifications[event_id] = NotificationStatus(event_id, notified, notified_at)

    async def notified_event_ids(self, event_ids):
        self._hit("notified_event_ids")
        return {e for e in event_ids if e in self.notifications and self.notifications[e].notified}


class FakeMessaging:
    def __init__(self):
        self.pushed: list[dict] = []
        self.broadcasts: list[str] = []
        self.profiles: dict[str, LineProfile] = {}
        self.push_errors: dict[str, Exception] = {}
        self.profile_error: Exception | None = None

    async def push_message(self, user_id, text, *, retry_key=None):
        error = self.push_errors.get(user_id)
        if error:
            raise error
        self.pushed.append({"to": user_id, "text": text, "retry_key": retry_key})

    async def broadcast(self, text):
        self.broadcasts.append(text)

    async def get_profile(self, user_id):
        if self.profile_error:
            raise self.profile_error
        return self.profiles.get(user_id, LineProfile(user_id=user_id, display_name=user_id))

    async def get_bot_info(self):
        return {"userId": "U-bot", "displayName": "Coach Bot"}

    def texts_to(self, user_id) -> list[str]:
        return [p["text"] for p in self.pushed if p["to"] == user_id]


class FakeCalendar:
    def __init__(self, events: list[dict] | None = None):
        self.events = [CalendarEvent(e) for e in events or []]
        self.error: Exception | None = None
        self.created: list[dict] = []
        self.deleted: list[str] = []

    async def list_events(self, time_min, time_max):
        if self.error:
            raise self.error
        return [e for e in self.events if e.start_time and time_min <= e.start_time <= time_max]

    async def create_event(self, summary, start_time, end_time, description=None):
        self.created.append({"summary": summary, "start": start_time, "end": end_time})
        return CalendarEvent(
            {
                "id": f"evt-{len(self.created)}",
                "summary": summary,
                "description": description or f"Class: {summary}",
                "start": {"dateTime": start_time.isoformat()},
                "end": {"dateTime": end_time.isoformat()},
            }
        )

    async def delete_event(self, event_id):
        if self.error:
            raise self.error
        self.deleted.append(event_id)
        return True


def calendar_event(event_id: str, summary: str, start: datetime) -> dict:
    """Raw Google Calendar payload for a one-hour class."""
    end = start + timedelta(hours=1)
    return {
        "id": event_id,
        "summary": summary,
        "status": "confirmed",
        "start": {"dateTime": start.isoformat(), "timeZone": "Asia/Taipei"},
        "end": {"dateTime": end.isoformat(), "timeZone": "Asia/Taipei"},
    }

