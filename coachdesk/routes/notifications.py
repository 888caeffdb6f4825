from datetime import datetime, tzinfo

from fastapi import APIRouter, Depends

from coachdesk.dependencies import get_coach_tz, get_messaging, get_now, get_record_store
from coachdesk.models.api.requests import EventBatchRequest
from coachdesk.models.api.responses import DispatchResponse
from coachdesk.routes.errors import batch_response
from coachdesk.services.reconciliation import dispatch_class_reminders

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.post("/reminders", response_model=DispatchResponse)
async def send_reminders(
    body: EventBatchRequest,
    store=Depends(get_record_store),
    messaging=Depends(get_messaging),
    now: datetime = Depends(get_now),
    tz: tzinfo = Depends(get_coach_tz),
):
    """Send a LINE reminder for each selected event. Does not skip already-notified events."""
    summary = await dispatch_class_reminders(store, messaging, body.to_domain(), now=now, tz=tz)
    response = DispatchResponse.from_domain(summary)
    return batch_response(response, has_failures=bool(summary.failures))
