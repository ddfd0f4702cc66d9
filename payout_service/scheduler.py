# payout_service/scheduler.py
"""
Optional background scheduler for payouts.

Uses APScheduler to periodically:
- Create payouts for events that have ended
- Run the stripe payout batch

Disabled unless PAYOUT_SCHEDULER_ENABLED is set; operators can always
trigger the same work from the admin endpoints.
"""

import asyncio
import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED

from payout_service.core.config import settings
from payout_service.db.session import SessionLocal

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = None


def _on_job_error(event):
    exc = event.exception
    logger.error(
        "Scheduled job FAILED: job_id=%s error=%s",
        event.job_id, exc,
        exc_info=(type(exc), exc, None) if exc else None,
    )


def _on_job_missed(event):
    logger.warning(
        "Scheduled job MISSED: job_id=%s scheduled_run_time=%s",
        event.job_id,
        event.scheduled_run_time,
    )


def run_payout_cycle():
    """Schedule payouts for ended events, then transfer everything due."""
    # Imported here to keep the scheduler importable without the API stack
    from payout_service.api.deps import build_orchestrator

    db = SessionLocal()
    try:
        orchestrator = build_orchestrator(db)
        created = orchestrator.schedule_completed_events()
        result = asyncio.run(orchestrator.process_all_due_stripe_payouts())
        logger.info(
            f"Payout cycle: scheduled={created} processed={result.processed} "
            f"succeeded={result.succeeded} failed={result.failed}"
        )
    finally:
        db.close()


def init_scheduler():
    """
    Initialize the background scheduler with the payout job.

    This is called once when the application starts up.
    """
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler already initialized")
        return scheduler

    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)
    scheduler.add_listener(_on_job_missed, EVENT_JOB_MISSED)

    scheduler.add_job(
        run_payout_cycle,
        trigger=IntervalTrigger(minutes=settings.PAYOUT_SCHEDULE_INTERVAL_MINUTES),
        id="payout_cycle",
        name="Schedule and process organizer payouts",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    scheduler.start()
    logger.info(
        f"Payout scheduler started (every {settings.PAYOUT_SCHEDULE_INTERVAL_MINUTES} minutes)"
    )
    return scheduler


def shutdown_scheduler():
    global scheduler

    if scheduler is not None:
        scheduler.shutdown(wait=False)
        scheduler = None
        logger.info("Payout scheduler stopped")
