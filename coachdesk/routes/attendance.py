from fastapi import APIRouter, Depends

from coachdesk.dependencies import get_record_store
from coachdesk.models.api.requests import ConfirmAttendanceRequest
from coachdesk.models.api.responses import AttendanceResponse
from coachdesk.models.domain.reconciliation_domain import AttendanceStatus
from coachdesk.services.reconciliation import confirm_attendance

router = APIRouter(prefix="/attendance", tags=["attendance"])


@router.post("/confirm", response_model=AttendanceResponse)
async def confirm(body: ConfirmAttendanceRequest, store=Depends(get_record_store)):
    """Set attendance for one class and charge or keep the student's balance."""
    change = await confirm_attendance(
        store,
        body.record_id,
        AttendanceStatus.from_attended_flag(body.attended),
        skip_decrement=body.skip_decrement,
    )
    return AttendanceResponse.from_domain(change)
