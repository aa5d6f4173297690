from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from motocare.core.config import Settings
from motocare.core.enums import AppointmentStatus
from motocare.db.models import Appointment
from motocare.scheduler.expiry_scheduler import EXPIRY_JOB_ID, run_expiry_sweep, start_scheduler


def test_sweep_expires_with_its_own_session(db, session_factory, customer, bike, make_appointment):
    old = datetime.now(timezone.utc) - timedelta(hours=8)
    appointment = make_appointment(customer, bike, created_at=old)

    assert run_expiry_sweep(6, session_factory=session_factory) == 1

    db.expire_all()
    assert db.get(Appointment, appointment.id).status == AppointmentStatus.EXPIRED


def test_sweep_failure_is_logged_not_raised(caplog):
    broken = sessionmaker(bind=create_engine("sqlite://"))

    assert run_expiry_sweep(6, session_factory=broken) == 0
    assert "expiry sweep" in caplog.text


def test_start_scheduler_registers_interval_job():
    scheduler = start_scheduler(Settings(expiry_sweep_minutes=5, request_expiry_hours=3))
    try:
        job = scheduler.get_job(EXPIRY_JOB_ID)
        assert job is not None
        assert job.trigger.interval == timedelta(minutes=5)
        assert job.kwargs == {"threshold_hours": 3}
    finally:
        scheduler.shutdown(wait=False)
