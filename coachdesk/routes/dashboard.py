"""
Dashboard endpoints: progress counters and the one-click "complete
tomorrow's records / reminders / recent attendance" actions.
"""

from datetime import datetime, tzinfo

from fastapi import APIRouter, Depends

from coachdesk.config import settings
from coachdesk.dependencies import (
    get_calendar,
    get_coach_tz,
    get_messaging,
    get_now,
    get_record_store,
)
from coachdesk.infrastructure.observability.logging import get_logger
from coachdesk.models.api.responses import (
    AttendanceSweepResponse,
    CompletionResponse,
    DashboardStatsResponse,
    DispatchResponse,
    RecordCreationResponse,
)
from coachdesk.routes.errors import batch_response
from coachdesk.services import dashboard_service
from coachdesk.services.reconciliation import auto_confirm_recent_attendance

logger = get_logger(__name__)

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/stats", response_model=DashboardStatsResponse)
async def stats(
    store=Depends(get_record_store),
    calendar=Depends(get_calendar),
    now: datetime = Depends(get_now),
    tz: tzinfo = Depends(get_coach_tz),
):
    counters = await dashboard_service.dashboard_stats(
        store, calendar, now=now, tz=tz, days_back=settings.ATTENDANCE_WINDOW_DAYS
    )
    return DashboardStatsResponse(**counters)


@router.post("/complete-class-records", response_model=CompletionResponse)
async def complete_class_records(
    store=Depends(get_record_store),
    calendar=Depends(get_calendar),
    now: datetime = Depends(get_now),
    tz: tzinfo = Depends(get_coach_tz),
):
    message, total, summary = await dashboard_service.complete_tomorrow_class_records(
        store, calendar, now=now, tz=tz
    )
    details = RecordCreationResponse.from_domain(summary).model_dump() if summary else None
    response = CompletionResponse(message=message, total_events=total, details=details)
    return batch_response(response, has_failures=bool(summary and summary.failures))


@router.post("/complete-notifications", response_model=CompletionResponse)
async def complete_notifications(
    store=Depends(get_record_store),
    calendar=Depends(get_calendar),
    messaging=Depends(get_messaging),
    now: datetime = Depends(get_now),
    tz: tzinfo = Depends(get_coach_tz),
):
    message, total, summary = await dashboard_service.complete_tomorrow_notifications(
        store, calendar, messaging, now=now, tz=tz
    )
    details = DispatchResponse.from_domain(summary).model_dump() if summary else None
    response = CompletionResponse(message=message, total_events=total, details=details)
    return batch_response(response, has_failures=bool(summary and summary.failures))


@router.post("/complete-attendance", response_model=AttendanceSweepResponse)
async def complete_attendance(
    store=Depends(get_record_store),
    now: datetime = Depends(get_now),
    tz: tzinfo = Depends(get_coach_tz),
):
    summary = await auto_confirm_recent_attendance(
        store, now=now, tz=tz, days_back=settings.ATTENDANCE_WINDOW_DAYS
    )
    logger.info(
        "Recent attendance completed",
        confirmed=len(summary.confirmed),
        by_date={day: len(names) for day, names in summary.attendance_by_date.items()},
    )
    response = AttendanceSweepResponse.from_domain(summary)
    return batch_response(response, has_failures=bool(summary.failures))
