"""Best-effort recording of suspicious claim attempts."""

from collections.abc import Callable
from datetime import UTC, datetime

import structlog
from apscheduler.schedulers.base import BaseScheduler

from charmclaim.database import SessionLocal
from charmclaim.scheduler import scheduler
from charmclaim.services.claim_store import record_abuse_event

logger = structlog.get_logger()

AbuseSink = Callable[[dict], None]


def database_sink(event: dict) -> None:
    """Persist an abuse event in its own session."""
    db = SessionLocal()
    try:
        record_abuse_event(
            db,
            event_type=event["type"],
            actor_ref=event["actor_ref"],
            metadata=event.get("metadata"),
        )
    finally:
        db.close()


class AbuseLogger:
    """
    Fire-and-forget abuse event logger.

    When a running scheduler is attached, delivery is handed to it as a one-off
    job and ``log`` returns immediately. Otherwise the sink is called inline.
    Either way, failures are logged and never reach the caller.
    """

    def __init__(self, sink: AbuseSink, scheduler: BaseScheduler | None = None):
        self._sink = sink
        self._scheduler = scheduler

    def log(self, event_type: str, actor_ref: str, metadata: dict | None = None) -> None:
        event = {
            "type": event_type,
            "actor_ref": actor_ref,
            "metadata": metadata,
            "occurred_at": datetime.now(UTC).isoformat(),
        }
        try:
            if self._scheduler is not None and self._scheduler.running:
                self._scheduler.add_job(self._deliver, args=[event], misfire_grace_time=None)
            else:
                self._deliver(event)
        except Exception as e:
            logger.error("abuse_log_failed", event_type=event_type, error=str(e))

    def _deliver(self, event: dict) -> None:
        try:
            self._sink(event)
            logger.info("abuse_event_recorded", event_type=event["type"])
        except Exception as e:
            logger.error("abuse_log_failed", event_type=event["type"], error=str(e))


abuse_logger = AbuseLogger(sink=database_sink, scheduler=scheduler)


def get_abuse_logger() -> AbuseLogger:
    """Dependency returning the process-wide abuse logger."""
    return abuse_logger
