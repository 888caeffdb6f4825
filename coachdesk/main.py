"""
FastAPI application with database pool and gateway client lifecycle.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from coachdesk.config import settings
from coachdesk.db.pool import db_pool
from coachdesk.infrastructure.observability.logging import get_logger, setup_logging
from coachdesk.middleware.request_context import RequestContextMiddleware
from coachdesk.routes import (
    attendance,
    calendar,
    class_records,
    dashboard,
    health,
    line,
    notifications,
    students,
)
from coachdesk.routes.errors import register_error_handlers
from coachdesk.services.calendar.google_client import google_calendar_service
from coachdesk.services.line.messaging_client import line_messaging_service

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the pool on startup; close gateway clients and the pool on shutdown."""
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    try:
        await db_pool.initialize()
    except Exception as e:
        logger.error("Failed to initialize database pool", error=str(e))
        raise

    if not settings.google_calendar_configured():
        logger.warning("Google Calendar credentials missing; calendar endpoints will fail")
    if not settings.line_configured():
        logger.warning("LINE channel credentials missing; messaging endpoints will fail")

    yield

    logger.info("Application shutting down")
    shutdown_errors = []

    for name, client in (
        ("google_calendar", google_calendar_service),
        ("line_messaging", line_messaging_service),
    ):
        try:
            await client.close()
        except Exception as e:
            logger.error("Error closing HTTP client", client=name, error=str(e))
            shutdown_errors.append(f"{name}: {e}")

    # Close database pool last (may have active connections)
    try:
        await db_pool.close()
    except Exception as e:
        logger.error("Error closing database pool", error=str(e))
        shutdown_errors.append(f"Database: {e}")

    if shutdown_errors:
        logger.warning("Some services had shutdown errors", errors=shutdown_errors)
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="Coach Desk",
    description="Class scheduling, attendance credits and LINE reminders for a coach",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(RequestContextMiddleware)
register_error_handlers(app)

app.include_router(health.router)
app.include_router(class_records.router)
app.include_router(attendance.router)
app.include_router(notifications.router)
app.include_router(dashboard.router)
app.include_router(students.router)
app.include_router(calendar.router)
app.include_router(line.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
