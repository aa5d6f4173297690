"""Background sweep that expires stale appointment requests.

Uses APScheduler BackgroundScheduler with a fixed interval job. Each run opens
its own session, moves REQUESTED appointments older than the configured
threshold to EXPIRED as the SYSTEM actor, and logs how many were swept.
"""

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.orm import Session, sessionmaker

from motocare.core.config import Settings
from motocare.db.session import SessionLocal
from motocare.services.appointment_service import expire_stale_appointments

logger = logging.getLogger(__name__)

EXPIRY_JOB_ID = "expire_stale_appointments"


def run_expiry_sweep(
    threshold_hours: int,
    session_factory: sessionmaker[Session] = SessionLocal,
) -> int:
    """Run one sweep; failures are logged and reported as zero expirations."""
    db = session_factory()
    try:
        expired = expire_stale_appointments(db, threshold_hours=threshold_hours)
        logger.info(
            "Expiry sweep complete: %d appointment(s) expired (threshold=%sh).",
            expired,
            threshold_hours,
        )
        return expired
    except Exception:
        logger.exception("Unhandled error in appointment expiry sweep.")
        return 0
    finally:
        db.close()


def start_scheduler(settings: Settings) -> BackgroundScheduler:
    """Create, configure, and start the background expiry scheduler.

    Returns the scheduler instance so the caller can shut it down if needed.
    """
    scheduler = BackgroundScheduler(daemon=True)

    scheduler.add_job(
        run_expiry_sweep,
        trigger="interval",
        minutes=settings.expiry_sweep_minutes,
        id=EXPIRY_JOB_ID,
        name="Expire stale appointment requests",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        kwargs={"threshold_hours": settings.request_expiry_hours},
    )

    scheduler.start()
    logger.info(
        "Expiry scheduler started (every %d min, threshold %dh).",
        settings.expiry_sweep_minutes,
        settings.request_expiry_hours,
    )
    return scheduler
