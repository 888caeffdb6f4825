"""
Postgres-backed record store for students, class records, reminder status
and the credit ledger.

Uniqueness on class_records.event_id and students.line_user_id is the only
concurrency primitive: inserts use ON CONFLICT DO NOTHING and report
"already exists" instead of checking first.
"""

from collections.abc import Iterable
from datetime import datetime

from coachdesk.db.helpers import (
    DatabaseError,
    execute_query,
    fetch_all,
    fetch_one,
    fetch_val,
    with_db_retry,
)
from coachdesk.db.pool import get_db_transaction
from coachdesk.errors import ConflictError, InsufficientCredit
from coachdesk.infrastructure.observability.logging import get_logger
from coachdesk.models.domain.reconciliation_domain import (
    AttendanceStatus,
    ClassRecord,
    Student,
)

logger = get_logger(__name__)

STUDENT_COLUMNS = """
    id, name, phone, line_user_id, total_classes, remaining_classes,
    created_at, updated_at
"""

RECORD_COLUMNS = """
    cr.id, cr.student_id, cr.event_id, cr.class_date, cr.attended,
    cr.created_at, cr.updated_at, s.name AS student_name
"""

LEDGER_INSERT = """
    INSERT INTO credit_ledger (student_id, class_record_id, delta, reason)
    VALUES (%s, %s, %s, %s)
"""


class RecordStoreError(DatabaseError):
    """More specific exception for record store failures."""


class PostgresRecordStore:
    """Persistence helpers backing the reconciliation engine."""

    # Attendance + balance writes run inside one transaction.
    supports_transactions = True

    @staticmethod
    def _row_to_student(row: dict | None) -> Student | None:
        if not row:
            return None
        return Student(
            id=row["id"],
            name=row["name"],
            phone=row.get("phone"),
            line_user_id=row.get("line_user_id"),
            total_classes=row["total_classes"],
            remaining_classes=row["remaining_classes"],
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    @staticmethod
    def _row_to_record(row: dict | None) -> ClassRecord | None:
        if not row:
            return None
        return ClassRecord(
            id=row["id"],
            student_id=row["student_id"],
            event_id=row["event_id"],
            class_date=row["class_date"],
            attendance=AttendanceStatus.from_db(row.get("attended")),
            student_name=row.get("student_name"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    # ------------------------------------------------------------------
    # Students
    # ------------------------------------------------------------------

    @with_db_retry()
    async def get_student(self, student_id: int) -> Student | None:
        query = f"SELECT {STUDENT_COLUMNS} FROM students WHERE id = %s"
        return self._row_to_student(await fetch_one(query, (student_id,)))

    @with_db_retry()
    async def find_students_by_name(self, name: str) -> list[Student]:
        """Exact-match lookup. More than one row means the name is ambiguous."""
        query = f"SELECT {STUDENT_COLUMNS} FROM students WHERE name = %s ORDER BY id"
        rows = await fetch_all(query, (name,))
        return [self._row_to_student(row) for row in rows]

    @with_db_retry()
    async def get_student_by_line_id(self, line_user_id: str) -> Student | None:
        query = f"SELECT {STUDENT_COLUMNS} FROM students WHERE line_user_id = %s"
        return self._row_to_student(await fetch_one(query, (line_user_id,)))

    @with_db_retry()
    async def list_students(self) -> list[Student]:
        query = f"SELECT {STUDENT_COLUMNS} FROM students ORDER BY name, id"
        return [self._row_to_student(row) for row in await fetch_all(query)]

    async def create_student(
        self, name: str, line_user_id: str | None = None, phone: str | None = None
    ) -> tuple[Student, bool]:
        """
        Insert a student with zero credits.

        Returns (student, created). A concurrent registration of the same
        LINE user resolves to (existing, False).
        """
        query = f"""
            INSERT INTO students (name, phone, line_user_id, total_classes, remaining_classes)
            VALUES (%s, %s, %s, 0, 0)
            ON CONFLICT (line_user_id) DO NOTHING
            RETURNING {STUDENT_COLUMNS}
        """
        row = await fetch_one(query, (name, phone, line_user_id))
        if row:
            logger.info("Student created", student_id=row["id"], has_line_id=bool(line_user_id))
            return self._row_to_student(row), True

        existing = await self.get_student_by_line_id(line_user_id)
        if existing is None:
            raise RecordStoreError(
                "Student insert conflicted but no existing row was found",
                operation="create_student",
            )
        return existing, False

    async def update_student_profile(
        self, student_id: int, *, name: str | None = None, phone: str | None = None
    ) -> Student | None:
        query = f"""
            UPDATE students
            SET name = COALESCE(%s, name),
                phone = COALESCE(%s, phone),
                updated_at = NOW()
            WHERE id = %s
            RETURNING {STUDENT_COLUMNS}
        """
        return self._row_to_student(await fetch_one(query, (name, phone, student_id)))

    async def grant_credits(self, student_id: int, classes: int) -> Student | None:
        """Add purchased classes to both the lifetime total and the balance."""
        query = f"""
            UPDATE students
            SET total_classes = total_classes + %s,
                remaining_classes = remaining_classes + %s,
                updated_at = NOW()
            WHERE id = %s
            RETURNING {STUDENT_COLUMNS}
        """
        async with await get_db_transaction() as conn:
            row = await fetch_one(query, (classes, classes, student_id), connection=conn)
            if row:
                await execute_query(
                    LEDGER_INSERT, (student_id, None, classes, "grant"), connection=conn
                )

        if row:
            logger.info("Credits granted", student_id=student_id, classes=classes)
        return self._row_to_student(row)

    # ------------------------------------------------------------------
    # Class records
    # ------------------------------------------------------------------

    @with_db_retry()
    async def get_class_record(self, record_id: int) -> ClassRecord | None:
        query = f"""
            SELECT {RECORD_COLUMNS}
            FROM class_records cr
            JOIN students s ON s.id = cr.student_id
            WHERE cr.id = %s
        """
        return self._row_to_record(await fetch_one(query, (record_id,)))

    @with_db_retry()
    async def get_class_record_by_event(self, event_id: str) -> ClassRecord | None:
        query = f"""
            SELECT {RECORD_COLUMNS}
            FROM class_records cr
            JOIN students s ON s.id = cr.student_id
            WHERE cr.event_id = %s
        """
        return self._row_to_record(await fetch_one(query, (event_id,)))

    async def insert_class_record(
        self, student_id: int, event_id: str, class_date: datetime
    ) -> tuple[ClassRecord | None, bool]:
        """
        Insert an undecided record for the event.

        Returns (record, created). When the event already has a record,
        created is False and the existing row is returned.
        """
        query = """
            INSERT INTO class_records (student_id, class_date, event_id, attended)
            VALUES (%s, %s, %s, NULL)
            ON CONFLICT (event_id) DO NOTHING
            RETURNING id
        """
        new_id = await fetch_val(query, (student_id, class_date, event_id))
        if new_id is None:
            return await self.get_class_record_by_event(event_id), False

        logger.info("Class record created", record_id=new_id, event_id=event_id)
        return await self.get_class_record(new_id), True

    @with_db_retry()
    async def list_class_records(
        self,
        start: datetime,
        end: datetime,
        *,
        status: AttendanceStatus | None = None,
    ) -> list[ClassRecord]:
        """Records with start <= class_date <= end, optionally filtered by attendance."""
        query = f"""
            SELECT {RECORD_COLUMNS}
            FROM class_records cr
            JOIN students s ON s.id = cr.student_id
            WHERE cr.class_date >= %s AND cr.class_date <= %s
        """
        params: tuple = (start, end)
        if status is AttendanceStatus.UNSET:
            query += " AND cr.attended IS NULL"
        elif status is not None:
            query += " AND cr.attended = %s"
            params += (status.to_db(),)
        query += " ORDER BY cr.class_date, cr.id"

        return [self._row_to_record(row) for row in await fetch_all(query, params)]

    @with_db_retry()
    async def existing_record_event_ids(self, event_ids: Iterable[str]) -> set[str]:
        ids = [e for e in event_ids if e]
        if not ids:
            return set()
        rows = await fetch_all(
            "SELECT event_id FROM class_records WHERE event_id = ANY(%s)", (ids,)
        )
        return {row["event_id"] for row in rows}

    # ------------------------------------------------------------------
    # Attendance and balance
    # ------------------------------------------------------------------

    async def set_attendance(
        self,
        record_id: int,
        new_status: AttendanceStatus,
        *,
        expected: AttendanceStatus,
    ) -> bool:
        """Compare-and-swap on the attendance column. False if it no longer holds `expected`."""
        query = """
            UPDATE class_records
            SET attended = %s, updated_at = NOW()
            WHERE id = %s AND attended IS NOT DISTINCT FROM %s
        """
        rowcount = await execute_query(query, (new_status.to_db(), record_id, expected.to_db()))
        return rowcount == 1

    async def adjust_balance(
        self, student_id: int, delta: int, *, class_record_id: int | None, reason: str
    ) -> int | None:
        """
        Move remaining_classes by `delta` and write a ledger row.

        Returns the new balance, or None when the move would go below zero.
        """
        query = """
            UPDATE students
            SET remaining_classes = remaining_classes + %s, updated_at = NOW()
            WHERE id = %s AND remaining_classes + %s >= 0
            RETURNING remaining_classes
        """
        async with await get_db_transaction() as conn:
            balance = await fetch_val(query, (delta, student_id, delta), connection=conn)
            if balance is None:
                return None
            await execute_query(
                LEDGER_INSERT, (student_id, class_record_id, delta, reason), connection=conn
            )
        return balance

    async def apply_attendance_change(
        self,
        record: ClassRecord,
        new_status: AttendanceStatus,
        delta: int,
    ) -> int:
        """
        Attendance write and balance write in one transaction.

        Raises ConflictError if the record changed since it was read and
        InsufficientCredit if the guarded decrement finds no credit; either
        way the transaction rolls back and nothing is written.
        """
        swap_query = """
            UPDATE class_records
            SET attended = %s, updated_at = NOW()
            WHERE id = %s AND attended IS NOT DISTINCT FROM %s
        """
        balance_query = """
            UPDATE students
            SET remaining_classes = remaining_classes + %s, updated_at = NOW()
            WHERE id = %s AND remaining_classes + %s >= 0
            RETURNING remaining_classes
        """

        async with await get_db_transaction() as conn:
            swapped = await execute_query(
                swap_query,
                (new_status.to_db(), record.id, record.attendance.to_db()),
                connection=conn,
            )
            if swapped != 1:
                raise ConflictError(
                    "Class record attendance changed concurrently",
                    details={"record_id": record.id},
                )

            if delta == 0:
                return await fetch_val(
                    "SELECT remaining_classes FROM students WHERE id = %s",
                    (record.student_id,),
                    connection=conn,
                )

            balance = await fetch_val(
                balance_query, (delta, record.student_id, delta), connection=conn
            )
            if balance is None:
                raise InsufficientCredit(
                    "Student has insufficient remaining classes, cannot deduct class",
                    details={"student_id": record.student_id},
                )
            await execute_query(
                LEDGER_INSERT,
                (record.student_id, record.id, delta, f"attendance:{new_status.value}"),
                connection=conn,
            )
            return balance

    # ------------------------------------------------------------------
    # Reminder status
    # ------------------------------------------------------------------

    async def upsert_notification_status(
        self, event_id: str, *, notified: bool, notified_at: datetime | None
    ) -> None:
        query = """
            INSERT INTO notification_status (event_id, has_notify, notified_at, updated_at)
            VALUES (%s, %s, %s, NOW())
            ON CONFLICT (event_id)
            DO UPDATE SET
                has_notify = EXCLUDED.has_notify,
                notified_at = EXCLUDED.notified_at,
                updated_at = NOW()
        """
        await execute_query(query, (event_id, notified, notified_at))

    @with_db_retry()
    async def notified_event_ids(self, event_ids: Iterable[str]) -> set[str]:
        ids = [e for e in event_ids if e]
        if not ids:
            return set()
        rows = await fetch_all(
            """
            SELECT event_id FROM notification_status
            WHERE event_id = ANY(%s) AND has_notify = TRUE
            """,
            (ids,),
        )
        return {row["event_id"] for row in rows}


# Singleton instance for application use
record_store = PostgresRecordStore()
