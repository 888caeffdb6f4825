"""
Calendar API Routes
Read, create and delete classes on the coach's Google Calendar.
"""

from datetime import date, datetime, timedelta, tzinfo

from fastapi import APIRouter, Depends, Query, status

from coachdesk.dependencies import get_calendar, get_coach_tz, get_now
from coachdesk.errors import ValidationError
from coachdesk.models.api.requests import CreateEventRequest
from coachdesk.models.api.responses import CalendarEventResponse, EventsListResponse
from coachdesk.utils.time_windows import end_of_day, local_date, start_of_day

router = APIRouter(prefix="/calendar", tags=["calendar"])

DEFAULT_RANGE_DAYS = 30


@router.get("/events", response_model=EventsListResponse)
async def list_events(
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    calendar=Depends(get_calendar),
    now: datetime = Depends(get_now),
    tz: tzinfo = Depends(get_coach_tz),
):
    """Events between startDate and endDate inclusive; defaults to today through +30 days."""
    today = local_date(now, tz)
    start_date = start_date or today
    end_date = end_date or today + timedelta(days=DEFAULT_RANGE_DAYS)
    if end_date < start_date:
        raise ValidationError("endDate must not be before startDate")

    time_min, time_max = start_of_day(start_date, tz), end_of_day(end_date, tz)
    events = await calendar.list_events(time_min, time_max)
    return EventsListResponse(
        events=[CalendarEventResponse.from_domain(e) for e in events],
        total_count=len(events),
        time_min=time_min,
        time_max=time_max,
    )


@router.post(
    "/events", response_model=CalendarEventResponse, status_code=status.HTTP_201_CREATED
)
async def create_event(body: CreateEventRequest, calendar=Depends(get_calendar)):
    event = await calendar.create_event(
        summary=body.summary.strip(),
        start_time=body.start_time,
        end_time=body.end_time,
        description=body.description,
    )
    return CalendarEventResponse.from_domain(event)


@router.delete("/events/{event_id}")
async def delete_event(event_id: str, calendar=Depends(get_calendar)):
    await calendar.delete_event(event_id)
    return {"success": True, "event_id": event_id}
