"""
Background Job Scheduler.

WHAT: Configures and manages APScheduler for the invoice reminder sweep.

WHY: Reminders and overdue transitions are driven by the clock. A
periodic job keeps them current without any user request.

HOW: Uses APScheduler with AsyncIOScheduler for async job support and an
in-memory job store. max_instances=1 keeps two sweeps from overlapping in
one process.

Example:
    # In main.py startup:
    from ledger.services.scheduler import start_scheduler, shutdown_scheduler

    @app.on_event("startup")
    async def startup():
        await start_scheduler()

    @app.on_event("shutdown")
    async def shutdown():
        await shutdown_scheduler()
"""

import logging
from typing import Optional

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ledger.core.config import settings
from ledger.services.reminder_background_service import get_reminder_service


logger = logging.getLogger(__name__)

REMINDER_SWEEP_JOB_ID = "invoice_reminder_sweep"

# Global scheduler instance
_scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> Optional[AsyncIOScheduler]:
    """Get the global scheduler instance."""
    return _scheduler


async def start_scheduler() -> None:
    """
    Start the background job scheduler.

    HOW:
    1. Creates AsyncIOScheduler with memory job store
    2. Registers the reminder sweep job
    3. Starts the scheduler

    Note: Call this from FastAPI startup event.
    """
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        logger.warning("Scheduler already running")
        return

    jobstores = {
        "default": MemoryJobStore()
    }

    executors = {
        "default": AsyncIOExecutor()
    }

    job_defaults = {
        "coalesce": True,  # Combine multiple missed runs into one
        "max_instances": 1,  # Only one sweep at a time
        "misfire_grace_time": 60,
    }

    _scheduler = AsyncIOScheduler(
        jobstores=jobstores,
        executors=executors,
        job_defaults=job_defaults,
        timezone="UTC",
    )

    _register_reminder_sweep_job()

    _scheduler.start()
    logger.info(
        f"Scheduler started with reminder sweep every {settings.REMINDER_SWEEP_INTERVAL_SECONDS} seconds"
    )


def _register_reminder_sweep_job() -> None:
    """Register the periodic invoice reminder sweep."""
    if _scheduler is None:
        logger.error("Cannot register job: scheduler not initialized")
        return

    reminder_service = get_reminder_service()

    _scheduler.add_job(
        func=reminder_service.run_reminder_sweep,
        trigger=IntervalTrigger(seconds=settings.REMINDER_SWEEP_INTERVAL_SECONDS),
        id=REMINDER_SWEEP_JOB_ID,
        name="Invoice Reminder Sweep",
        replace_existing=True,
    )

    logger.info(
        f"Registered reminder sweep job (interval: {settings.REMINDER_SWEEP_INTERVAL_SECONDS}s)"
    )


async def shutdown_scheduler() -> None:
    """
    Shut down the background job scheduler.

    Note: Call this from FastAPI shutdown event.
    """
    global _scheduler

    if _scheduler is None:
        logger.info("Scheduler not running")
        return

    if not _scheduler.running:
        logger.info("Scheduler already stopped")
        _scheduler = None
        return

    logger.info("Shutting down scheduler...")
    _scheduler.shutdown(wait=True)
    _scheduler = None
    logger.info("Scheduler shut down successfully")


def get_scheduler_status() -> dict:
    """
    Get scheduler status information.

    WHY: Enables health checks and monitoring.

    Returns:
        Dict with scheduler status and job details
    """
    if _scheduler is None:
        return {
            "running": False,
            "jobs": [],
            "message": "Scheduler not initialized",
        }

    jobs = []
    for job in _scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run_time": str(job.next_run_time) if job.next_run_time else None,
            "trigger": str(job.trigger),
        })

    return {
        "running": _scheduler.running,
        "jobs": jobs,
        "message": "Scheduler is running" if _scheduler.running else "Scheduler is paused",
    }
