"""
Class record endpoints: batch creation from selected events, listing and
per-day counts for calendar badges.
"""

from datetime import date, tzinfo

from fastapi import APIRouter, Depends, Query

from coachdesk.dependencies import get_coach_tz, get_record_store
from coachdesk.errors import ValidationError
from coachdesk.models.api.requests import EventBatchRequest
from coachdesk.models.api.responses import ClassRecordResponse, DayCounts, RecordCreationResponse
from coachdesk.routes.errors import batch_response
from coachdesk.services.dashboard_service import count_records_by_date
from coachdesk.services.reconciliation import create_class_records
from coachdesk.utils.time_windows import end_of_day, start_of_day

router = APIRouter(prefix="/class-records", tags=["class-records"])


@router.post("", response_model=RecordCreationResponse)
async def create_records(body: EventBatchRequest, store=Depends(get_record_store)):
    """Create one class record per selected event. 207 when some events failed."""
    summary = await create_class_records(store, body.to_domain())
    response = RecordCreationResponse.from_domain(summary)
    return batch_response(response, has_failures=bool(summary.failures))


@router.get("", response_model=list[ClassRecordResponse])
async def list_records(
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    store=Depends(get_record_store),
    tz: tzinfo = Depends(get_coach_tz),
):
    if end_date < start_date:
        raise ValidationError("endDate must not be before startDate")
    records = await store.list_class_records(start_of_day(start_date, tz), end_of_day(end_date, tz))
    return [ClassRecordResponse.from_domain(r) for r in records]


@router.get("/count", response_model=dict[str, DayCounts])
async def count_records(
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    store=Depends(get_record_store),
    tz: tzinfo = Depends(get_coach_tz),
):
    return await count_records_by_date(store, start_date, end_date, tz=tz)
