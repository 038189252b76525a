"""
Background Job Scheduler.

WHAT: Configures and manages APScheduler for the proposal lifecycle jobs.

WHY: Two things must happen without a user request:
1. Lapsed proposals are expired (eager expiry)
2. Failed acceptance cascades are resumed

HOW: Uses APScheduler with AsyncIOScheduler and an in-memory job store;
intervals come from Settings.

Example:
    # In main.py startup:
    from homebid.services.scheduler import start_scheduler, shutdown_scheduler

    @app.on_event("startup")
    async def startup():
        await start_scheduler()

    @app.on_event("shutdown")
    async def shutdown():
        await shutdown_scheduler()
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.triggers.interval import IntervalTrigger

from homebid.core.config import settings
from homebid.services.lifecycle_jobs import get_lifecycle_service


logger = logging.getLogger(__name__)


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
    2. Registers the expiry sweep and acceptance reconciliation jobs
    3. Starts the scheduler

    Note: Call this from FastAPI startup event.
    """
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        logger.warning("Scheduler already running")
        return

    job_defaults = {
        "coalesce": True,  # Combine multiple missed runs into one
        "max_instances": 1,  # Only one instance of each job at a time
        "misfire_grace_time": 60,
    }

    _scheduler = AsyncIOScheduler(
        jobstores={"default": MemoryJobStore()},
        executors={"default": AsyncIOExecutor()},
        job_defaults=job_defaults,
        timezone="UTC",
    )

    _register_lifecycle_jobs()

    _scheduler.start()
    logger.info(f"Scheduler started with {len(_scheduler.get_jobs())} job(s)")


def _register_lifecycle_jobs() -> None:
    """Register the expiry sweep and acceptance reconciliation jobs."""
    if _scheduler is None:
        logger.error("Cannot register jobs: scheduler not initialized")
        return

    service = get_lifecycle_service()

    if settings.EXPIRY_SWEEP_ENABLED:
        _scheduler.add_job(
            func=service.run_expiry_sweep,
            trigger=IntervalTrigger(seconds=settings.EXPIRY_SWEEP_INTERVAL_SECONDS),
            id="proposal_expiry_sweep",
            name="Proposal Expiry Sweep",
            replace_existing=True,
        )
        logger.info(
            f"Registered proposal expiry sweep (interval: {settings.EXPIRY_SWEEP_INTERVAL_SECONDS}s)"
        )

    _scheduler.add_job(
        func=service.reconcile_acceptances,
        trigger=IntervalTrigger(seconds=settings.ACCEPTANCE_RECONCILE_INTERVAL_SECONDS),
        id="acceptance_reconciliation",
        name="Acceptance Reconciliation",
        replace_existing=True,
    )
    logger.info(
        f"Registered acceptance reconciliation (interval: {settings.ACCEPTANCE_RECONCILE_INTERVAL_SECONDS}s)"
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
        return

    logger.info("Shutting down scheduler...")
    _scheduler.shutdown(wait=True)
    _scheduler = None
    logger.info("Scheduler shut down successfully")


def get_scheduler_status() -> dict:
    """
    Get scheduler status information.

    WHY: Exposed by /health for monitoring.

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
