from datetime import date, datetime, timedelta

import pytest

from motocare.core.domain_exceptions import AdmissionRejectedError, ValidationError
from motocare.core.enums import AppointmentStatus
from motocare.services.slot_service import (
    admit_booking,
    check_slot_conflict,
    count_slot_occupancy,
    ensure_not_in_past,
    get_slot_availability,
    parse_time_slot,
)


@pytest.mark.parametrize("raw", ["9:00", "0900", "25:00", "10:61", "", None])
def test_parse_time_slot_rejects_malformed(raw):
    with pytest.raises(ValidationError):
        parse_time_slot(raw)


def test_past_dates_and_started_slots_are_rejected():
    now = datetime(2030, 3, 10, 12, 0)

    with pytest.raises(AdmissionRejectedError):
        ensure_not_in_past(date(2030, 3, 9), "15:00", now=now)
    with pytest.raises(AdmissionRejectedError):
        ensure_not_in_past(date(2030, 3, 10), "12:00", now=now)

    ensure_not_in_past(date(2030, 3, 10), "12:30", now=now)
    ensure_not_in_past(date(2030, 3, 11), "08:00", now=now)


def test_only_active_statuses_occupy_a_slot(db, garage, tomorrow, make_user, make_bike, make_appointment):
    for status in (
        AppointmentStatus.REQUESTED,
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.RESCHEDULED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.EXPIRED,
    ):
        user = make_user()
        make_appointment(user, make_bike(user), status)

    assert count_slot_occupancy(db, garage.id, tomorrow, "10:00") == 3
    assert check_slot_conflict(db, garage.id, tomorrow, "10:00", max_per_slot=3)
    assert not check_slot_conflict(db, garage.id, tomorrow, "10:00", max_per_slot=4)


def test_full_slot_rejects_third_booking_but_not_other_slot(
    db, garage, customer, tomorrow, make_user, make_bike, make_appointment
):
    for _ in range(2):
        user = make_user()
        make_appointment(user, make_bike(user))

    with pytest.raises(AdmissionRejectedError, match="fully booked"):
        admit_booking(
            db,
            customer_id=customer.id,
            garage_id=garage.id,
            preferred_date=tomorrow,
            time_slot="10:00",
            max_per_slot=2,
        )

    admit_booking(
        db,
        customer_id=customer.id,
        garage_id=garage.id,
        preferred_date=tomorrow,
        time_slot="11:00",
        max_per_slot=2,
    )


def test_live_appointment_blocks_second_booking(db, garage, customer, bike, tomorrow, make_appointment):
    make_appointment(customer, bike, AppointmentStatus.CONFIRMED, time_slot="09:00")

    with pytest.raises(AdmissionRejectedError, match="one active appointment"):
        admit_booking(
            db,
            customer_id=customer.id,
            garage_id=garage.id,
            preferred_date=tomorrow + timedelta(days=1),
            time_slot="14:00",
            max_per_slot=4,
        )


def test_terminal_appointment_does_not_block_booking(db, garage, customer, bike, tomorrow, make_appointment):
    make_appointment(customer, bike, AppointmentStatus.COMPLETED)

    admit_booking(
        db,
        customer_id=customer.id,
        garage_id=garage.id,
        preferred_date=tomorrow,
        time_slot="10:00",
        max_per_slot=4,
    )


def test_slot_availability_counts_per_slot(db, garage, tomorrow, make_user, make_bike, make_appointment):
    for slot in ("09:00", "09:00", "13:30"):
        user = make_user()
        make_appointment(user, make_bike(user), time_slot=slot)

    view = get_slot_availability(db, tomorrow, garage.id, max_per_slot=2)

    assert view["max_per_slot"] == 2
    assert view["counts"] == {"09:00": 2, "13:30": 1}
    assert get_slot_availability(db, tomorrow, garage.id + 1, max_per_slot=2)["counts"] == {}
