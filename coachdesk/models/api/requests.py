# coachdesk/models/api/requests.py
"""
API request models.
Used by routes for input validation.
"""

from pydantic import AwareDatetime, BaseModel, Field, model_validator

from coachdesk.models.domain.reconciliation_domain import ScheduledEvent


class EventPayload(BaseModel):
    """
    A calendar event as selected in the UI.

    Fields are optional here: an incomplete event fails on its own inside the
    batch instead of rejecting the whole request. Times must carry an offset.
    """

    event_id: str | None = Field(None, description="Calendar event id")
    summary: str | None = Field(None, description="Event title, i.e. the student's name")
    start_datetime: AwareDatetime | None = Field(None, description="Class start")
    end_datetime: AwareDatetime | None = Field(None, description="Class end")

    def to_domain(self) -> ScheduledEvent:
        return ScheduledEvent(
            event_id=self.event_id,
            summary=self.summary,
            start=self.start_datetime,
            end=self.end_datetime,
        )


class EventBatchRequest(BaseModel):
    events: list[EventPayload] = Field(..., min_length=1, max_length=500)

    def to_domain(self) -> list[ScheduledEvent]:
        return [event.to_domain() for event in self.events]


class ConfirmAttendanceRequest(BaseModel):
    record_id: int = Field(..., description="Class record id")
    attended: bool = Field(True, description="True for attended, false for absent")
    skip_decrement: bool = Field(
        False, description="Change attendance without charging a class"
    )


class CreateEventRequest(BaseModel):
    """Request for creating a class on the coach's calendar."""

    summary: str = Field(..., min_length=1, max_length=200, description="Student name")
    start_time: AwareDatetime = Field(..., description="Class start")
    end_time: AwareDatetime = Field(..., description="Class end")
    description: str | None = Field(None, max_length=1000)

    @model_validator(mode="after")
    def check_times(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class SendMessageRequest(BaseModel):
    user_id: str = Field(..., min_length=1, description="LINE user id")
    message: str = Field(..., min_length=1, max_length=5000)


class UpdateStudentRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    phone: str | None = Field(None, max_length=30)


class GrantCreditsRequest(BaseModel):
    classes: int = Field(..., ge=1, le=1000, description="Purchased classes to add")
