from fastapi import APIRouter, Depends

from coachdesk.dependencies import get_record_store
from coachdesk.models.api.requests import GrantCreditsRequest, UpdateStudentRequest
from coachdesk.models.api.responses import StudentResponse
from coachdesk.services import student_service

router = APIRouter(prefix="/students", tags=["students"])


@router.get("", response_model=list[StudentResponse])
async def list_students(store=Depends(get_record_store)):
    students = await student_service.list_students(store)
    return [StudentResponse.from_domain(s) for s in students]


@router.patch("/{student_id}", response_model=StudentResponse)
async def update_student(
    student_id: int, body: UpdateStudentRequest, store=Depends(get_record_store)
):
    student = await student_service.update_profile(
        store, student_id, name=body.name, phone=body.phone
    )
    return StudentResponse.from_domain(student)


@router.post("/{student_id}/credits", response_model=StudentResponse)
async def grant_credits(
    student_id: int, body: GrantCreditsRequest, store=Depends(get_record_store)
):
    """Add purchased classes to the student's total and remaining balance."""
    student = await student_service.grant_credits(store, student_id, body.classes)
    return StudentResponse.from_domain(student)
