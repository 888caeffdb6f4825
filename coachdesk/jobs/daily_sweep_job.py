"""
Daily reconciliation sweeps.

- class_record_sweep: create records for tomorrow's classes
- reminder_sweep: remind students about tomorrow's classes not yet notified
- attendance_sweep: mark undecided classes in the trailing window as attended

Each sweep is safe to rerun: records are unique per event, reminders skip
notified events and attendance only touches undecided records.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from coachdesk.config import settings
from coachdesk.db.pool import db_pool
from coachdesk.infrastructure.observability.logging import bind_request_context, get_logger
from coachdesk.repositories.record_store import record_store
from coachdesk.services import dashboard_service
from coachdesk.services.calendar.google_client import google_calendar_service
from coachdesk.services.line.messaging_client import line_messaging_service
from coachdesk.services.reconciliation import auto_confirm_recent_attendance

logger = get_logger(__name__)

RETRY_AFTER_ERROR_SECONDS = 1800


@asynccontextmanager
async def worker_resources():
    """Pool and HTTP clients for a standalone worker process."""
    await db_pool.initialize()
    try:
        yield
    finally:
        await google_calendar_service.close()
        await line_messaging_service.close()
        await db_pool.close()


async def class_record_sweep(*, now: datetime | None = None) -> dict:
    now = now or datetime.now(UTC)
    message, total, summary = await dashboard_service.complete_tomorrow_class_records(
        record_store, google_calendar_service, now=now, tz=settings.coach_tz()
    )
    result = {"sweep": "class_records", "message": message, "total_events": total}
    if summary:
        result.update(created=summary.created, failed=len(summary.failures))
    logger.info("Class record sweep finished", **result)
    return result


async def reminder_sweep(*, now: datetime | None = None) -> dict:
    now = now or datetime.now(UTC)
    message, total, summary = await dashboard_service.complete_tomorrow_notifications(
        record_store,
        google_calendar_service,
        line_messaging_service,
        now=now,
        tz=settings.coach_tz(),
    )
    result = {"sweep": "reminders", "message": message, "total_events": total}
    if summary:
        result.update(
            sent=summary.sent, failed=summary.failed, unconfirmed=summary.unconfirmed
        )
    logger.info("Reminder sweep finished", **result)
    return result


async def attendance_sweep(*, now: datetime | None = None) -> dict:
    now = now or datetime.now(UTC)
    summary = await auto_confirm_recent_attendance(
        record_store,
        now=now,
        tz=settings.coach_tz(),
        days_back=settings.ATTENDANCE_WINDOW_DAYS,
    )
    result = {
        "sweep": "attendance",
        "message": summary.message,
        "confirmed": len(summary.confirmed),
        "failed": len(summary.failures),
    }
    logger.info("Attendance sweep finished", **result)
    return result


SWEEPS = (class_record_sweep, reminder_sweep, attendance_sweep)


async def run_all_sweeps(*, now: datetime | None = None) -> list[dict]:
    """Run every sweep once. One sweep failing does not stop the others."""
    now = now or datetime.now(UTC)
    results = []
    for sweep in SWEEPS:
        bind_request_context(job=sweep.__name__)
        try:
            results.append(await sweep(now=now))
        except Exception as e:
            logger.error(
                "Sweep failed", sweep=sweep.__name__, error=str(e), error_type=type(e).__name__
            )
            results.append({"sweep": sweep.__name__, "error": str(e)})
    return results


def _single(sweep):
    async def run_once() -> None:
        async with worker_resources():
            bind_request_context(job=sweep.__name__)
            await sweep()

    run_once.__name__ = f"run_{sweep.__name__}"
    return run_once


run_class_record_sweep = _single(class_record_sweep)
run_reminder_sweep = _single(reminder_sweep)
run_attendance_sweep = _single(attendance_sweep)


async def start_daily_sweep_scheduler() -> None:
    """Run all sweeps every SWEEP_INTERVAL_HOURS until the process stops."""
    interval_hours = settings.SWEEP_INTERVAL_HOURS
    logger.info("Starting daily sweep scheduler", interval_hours=interval_hours)

    async with worker_resources():
        while True:
            try:
                await run_all_sweeps()
                await asyncio.sleep(interval_hours * 3600)
            except Exception as e:
                logger.error(
                    "Error in daily sweep scheduler", error=str(e), error_type=type(e).__name__
                )
                await asyncio.sleep(RETRY_AFTER_ERROR_SECONDS)
