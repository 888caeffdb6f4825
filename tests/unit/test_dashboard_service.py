from datetime import date, datetime

import pytest

from coachdesk.errors import GatewayError, ValidationError
from coachdesk.models.domain.reconciliation_domain import AttendanceStatus
from coachdesk.services import dashboard_service
from tests.fakes import NOW, TAIPEI, FakeCalendar, calendar_event

TOMORROW_EVENING = datetime(2025, 3, 14, 18, 30, tzinfo=TAIPEI)


@pytest.fixture
def tomorrow_calendar():
    return FakeCalendar(
        [
            calendar_event("e1", "Alice", TOMORROW_EVENING),
            calendar_event("e2", "Bob", TOMORROW_EVENING),
            # Today: outside tomorrow's window
            calendar_event("e0", "Alice", datetime(2025, 3, 13, 19, 0, tzinfo=TAIPEI)),
        ]
    )


def test_progress():
    assert dashboard_service.progress(0, 0) == {"total": 0, "completed": 0, "percentage": 0}
    assert dashboard_service.progress(3, 2)["percentage"] == 67


@pytest.mark.asyncio
async def test_complete_class_records_skips_existing(store, tomorrow_calendar):
    alice = store.add_student("Alice")
    store.add_student("Bob")
    store.add_record(alice, "e1", TOMORROW_EVENING)

    message, total, summary = await dashboard_service.complete_tomorrow_class_records(
        store, tomorrow_calendar, now=NOW, tz=TAIPEI
    )

    assert total == 2
    assert summary.created_students == ["Bob"]
    assert summary.skipped == 0
    assert message.endswith("created 1 records")


@pytest.mark.asyncio
async def test_complete_class_records_without_events(store, calendar):
    message, total, summary = await dashboard_service.complete_tomorrow_class_records(
        store, calendar, now=NOW, tz=TAIPEI
    )

    assert (total, summary) == (0, None)
    assert message == "No classes tomorrow that need records created"


@pytest.mark.asyncio
async def test_complete_class_records_all_done(store, tomorrow_calendar):
    alice = store.add_student("Alice")
    bob = store.add_student("Bob")
    store.add_record(alice, "e1", TOMORROW_EVENING)
    store.add_record(bob, "e2", TOMORROW_EVENING)

    message, total, summary = await dashboard_service.complete_tomorrow_class_records(
        store, tomorrow_calendar, now=NOW, tz=TAIPEI
    )

    assert summary is None
    assert message == "All tomorrow's class records have been created"


@pytest.mark.asyncio
async def test_complete_notifications_skips_notified(store, messaging, tomorrow_calendar):
    store.add_student("Alice", line_user_id="U-alice")
    store.add_student("Bob", line_user_id="U-bob")
    await store.upsert_notification_status("e1", notified=True, notified_at=NOW)

    _, total, summary = await dashboard_service.complete_tomorrow_notifications(
        store, tomorrow_calendar, messaging, now=NOW, tz=TAIPEI
    )

    assert total == 2
    assert summary.sent_students == ["Bob"]
    assert [p["to"] for p in messaging.pushed] == ["U-bob"]


@pytest.mark.asyncio
async def test_complete_notifications_propagates_calendar_failure(store, messaging, calendar):
    calendar.error = GatewayError("calendar down", service="google_calendar")

    with pytest.raises(GatewayError):
        await dashboard_service.complete_tomorrow_notifications(
            store, calendar, messaging, now=NOW, tz=TAIPEI
        )


@pytest.mark.asyncio
async def test_dashboard_stats(store, tomorrow_calendar):
    alice = store.add_student("Alice")
    store.add_record(alice, "e1", TOMORROW_EVENING)
    store.add_record(alice, "r1", datetime(2025, 3, 12, 18, tzinfo=TAIPEI), AttendanceStatus.ATTENDED)
    store.add_record(alice, "r2", datetime(2025, 3, 13, 18, tzinfo=TAIPEI))
    await store.upsert_notification_status("e2", notified=True, notified_at=NOW)

    stats = await dashboard_service.dashboard_stats(store, tomorrow_calendar, now=NOW, tz=TAIPEI)

    assert stats["notifications"] == {"total": 2, "completed": 1, "percentage": 50}
    assert stats["attendance"] == {"total": 2, "completed": 1, "percentage": 50}
    assert stats["class_records"] == {"total": 2, "completed": 1, "percentage": 50}
    assert stats["calendar_available"] is True


@pytest.mark.asyncio
async def test_dashboard_stats_degrades_without_calendar(store, calendar):
    alice = store.add_student("Alice")
    store.add_record(alice, "r1", datetime(2025, 3, 12, 18, tzinfo=TAIPEI))
    calendar.error = GatewayError("calendar down", service="google_calendar")

    stats = await dashboard_service.dashboard_stats(store, calendar, now=NOW, tz=TAIPEI)

    assert stats["calendar_available"] is False
    assert stats["notifications"]["total"] == 0
    assert stats["attendance"]["total"] == 1


@pytest.mark.asyncio
async def test_count_records_by_date(store):
    alice = store.add_student("Alice")
    store.add_record(alice, "a", datetime(2025, 3, 12, 9, tzinfo=TAIPEI), AttendanceStatus.ATTENDED)
    store.add_record(alice, "b", datetime(2025, 3, 12, 18, tzinfo=TAIPEI), AttendanceStatus.ABSENT)
    store.add_record(alice, "c", datetime(2025, 3, 13, 23, 30, tzinfo=TAIPEI))

    counts = await dashboard_service.count_records_by_date(
        store, date(2025, 3, 12), date(2025, 3, 13), tz=TAIPEI
    )

    assert counts == {
        "2025-03-12": {"total": 2, "completed": 1, "pending": 0, "absent": 1},
        "2025-03-13": {"total": 1, "completed": 0, "pending": 1, "absent": 0},
    }


@pytest.mark.asyncio
async def test_count_records_rejects_reversed_range(store):
    with pytest.raises(ValidationError):
        await dashboard_service.count_records_by_date(
            store, date(2025, 3, 13), date(2025, 3, 12), tz=TAIPEI
        )
