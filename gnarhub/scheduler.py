# gnarhub/scheduler.py
"""
Periodic job scheduler.

Uses APScheduler's asyncio scheduler so jobs run on the same event loop as
the document store and the notification emitter. Currently one job:
- Day-before session reminders
"""

import logging
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from gnarhub.background_tasks.session_reminder_tasks import send_session_reminders
from gnarhub.core.config import settings
from gnarhub.db.store import DocumentStore
from gnarhub.services.notification_service import NotificationEmitter

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


def _on_job_error(event):
    """Log scheduler job errors with full context."""
    exc = event.exception
    logger.error(
        "Scheduled job FAILED: job_id=%s error=%s",
        event.job_id, exc,
        exc_info=(type(exc), exc, exc.__traceback__) if exc else None,
    )


def _on_job_missed(event):
    logger.warning(
        "Scheduled job MISSED: job_id=%s scheduled_run_time=%s",
        event.job_id,
        event.scheduled_run_time,
    )


def init_scheduler(db: DocumentStore, notifier: NotificationEmitter) -> AsyncIOScheduler:
    """
    Create and start the scheduler. Must be called from a running event loop.
    """
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler already initialized")
        return scheduler

    scheduler = AsyncIOScheduler(
        timezone="UTC",
        job_defaults={
            "coalesce": True,  # Combine missed executions
            "max_instances": 1,  # Only one instance of each job at a time
            "misfire_grace_time": 300,
        },
    )

    scheduler.add_job(
        func=send_session_reminders,
        trigger=CronTrigger(hour=settings.REMINDER_HOUR_UTC, minute=0, timezone="UTC"),
        kwargs={"db": db, "notifier": notifier},
        id="send_session_reminders",
        name="Send Day-Before Session Reminders",
        replace_existing=True,
    )
    logger.info(
        f"Scheduled job: send_session_reminders (daily at {settings.REMINDER_HOUR_UTC:02d}:00 UTC)"
    )

    scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)
    scheduler.add_listener(_on_job_missed, EVENT_JOB_MISSED)

    scheduler.start()
    logger.info("Background scheduler started")
    return scheduler


def shutdown_scheduler():
    """Stop the scheduler if it is running."""
    global scheduler

    if scheduler is not None:
        scheduler.shutdown(wait=False)
        logger.info("Background scheduler shutdown complete")
        scheduler = None


def get_scheduler_status():
    """Current status of all scheduled jobs."""
    if scheduler is None:
        return {"status": "not_initialized", "jobs": []}

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
            "trigger": str(job.trigger),
        })

    return {
        "status": "running" if scheduler.running else "stopped",
        "jobs": jobs,
    }
