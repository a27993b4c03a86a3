"""Background scheduler for periodic cleanup and fire-and-forget jobs."""

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from charmclaim.config import settings
from charmclaim.database import SessionLocal
from charmclaim.services.claim_store import cleanup_expired_challenges

logger = structlog.get_logger()

scheduler = BackgroundScheduler()


def cleanup_job() -> None:
    """Delete claim challenges that can no longer be completed."""
    db = SessionLocal()
    try:
        deleted = cleanup_expired_challenges(db)
        if deleted:
            logger.info("expired_challenges_deleted", count=deleted)
    except Exception as e:
        logger.error("challenge_cleanup_failed", error=str(e))
    finally:
        db.close()


def start_scheduler() -> None:
    """Start the background scheduler."""
    scheduler.add_job(
        cleanup_job,
        trigger=IntervalTrigger(minutes=settings.challenge_cleanup_interval_minutes),
        id="cleanup_expired_challenges",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        "scheduler_started",
        cleanup_interval_minutes=settings.challenge_cleanup_interval_minutes,
    )


def shutdown_scheduler() -> None:
    """Shutdown the scheduler gracefully."""
    scheduler.shutdown()
    logger.info("scheduler_stopped")
