"""Background job scheduler.

A single APScheduler instance carries the dose monitor's daily cron jobs
and the escalation engine's one-shot level timers.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from dosewatch.logging_config import get_logger

logger = get_logger(__name__)

# Global scheduler instance
scheduler: AsyncIOScheduler | None = None


def start_scheduler() -> AsyncIOScheduler:
    """Start the background job scheduler.

    Must be called from a running event loop.

    Returns:
        The started scheduler instance
    """
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler already running")
        return scheduler

    scheduler = AsyncIOScheduler(
        job_defaults={"coalesce": False, "max_instances": 1},
    )
    scheduler.start()
    logger.info("Background scheduler started")

    return scheduler


def stop_scheduler() -> None:
    """Stop the background job scheduler."""
    global scheduler

    if scheduler is not None:
        scheduler.shutdown(wait=False)
        scheduler = None
        logger.info("Background scheduler stopped")
