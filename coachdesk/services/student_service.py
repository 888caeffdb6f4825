"""
Student administration: listing, profile edits and credit grants.

Balances only move through credit grants and attendance changes, so
remaining_classes never exceeds total_classes.
"""

from coachdesk.errors import StudentNotFound, ValidationError
from coachdesk.infrastructure.observability.logging import get_logger
from coachdesk.models.domain.reconciliation_domain import Student

logger = get_logger(__name__)

MAX_GRANT = 1000


async def list_students(store) -> list[Student]:
    return await store.list_students()


async def update_profile(
    store, student_id: int, *, name: str | None = None, phone: str | None = None
) -> Student:
    if name is not None:
        name = name.strip()
        if not name:
            raise ValidationError("Student name cannot be empty")
        # Event matching is by exact name; refuse a rename that makes it ambiguous
        others = [s for s in await store.find_students_by_name(name) if s.id != student_id]
        if others:
            raise ValidationError(
                f"Another student is already named '{name}'",
                details={"student_ids": [s.id for s in others]},
            )
    if name is None and phone is None:
        raise ValidationError("Nothing to update")

    student = await store.update_student_profile(student_id, name=name, phone=phone)
    if student is None:
        raise StudentNotFound(f"Student {student_id} not found", details={"student_id": student_id})

    logger.info("Student profile updated", student_id=student_id, renamed=name is not None)
    return student


async def grant_credits(store, student_id: int, classes: int) -> Student:
    """Add purchased classes to the student's total and remaining balance."""
    if classes <= 0 or classes > MAX_GRANT:
        raise ValidationError(
            f"Classes to grant must be between 1 and {MAX_GRANT}", details={"classes": classes}
        )

    student = await store.grant_credits(student_id, classes)
    if student is None:
        raise StudentNotFound(f"Student {student_id} not found", details={"student_id": student_id})
    return student
