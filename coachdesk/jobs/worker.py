"""
Generic background worker runner.

Reads the desired job name from CLI args or the WORKER_JOB environment
variable and delegates to the matching sweep.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from coachdesk.config import settings
from coachdesk.infrastructure.observability.logging import get_logger, setup_logging
from coachdesk.jobs.daily_sweep_job import (
    run_attendance_sweep,
    run_class_record_sweep,
    run_reminder_sweep,
    start_daily_sweep_scheduler,
)

logger = get_logger(__name__)

JobCoroutine = Callable[[], Awaitable[None]]

JOB_REGISTRY: dict[str, JobCoroutine] = {
    "class_record_sweep": run_class_record_sweep,
    "reminder_sweep": run_reminder_sweep,
    "attendance_sweep": run_attendance_sweep,
    "daily_sweeps": start_daily_sweep_scheduler,
}


def _resolve_job_name() -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", "daily_sweeps").strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    """Run the requested background job."""
    name = (job_name or _resolve_job_name()).strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    logger.info("Starting background worker", job=name)
    await JOB_REGISTRY[name]()


def main() -> None:
    """CLI entrypoint."""
    setup_logging(log_level=settings.LOG_LEVEL)
    asyncio.run(run_worker(_resolve_job_name()))


if __name__ == "__main__":
    main()
