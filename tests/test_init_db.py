from sqlalchemy import inspect, text

from motocare.db.init_db import init_db


def test_init_db_is_rerunnable_and_backfills_legacy_status(engine, db, customer, bike, make_appointment):
    appointment = make_appointment(customer, bike)
    db.execute(text("UPDATE appointments SET status = 'PENDING' WHERE id = :id"), {"id": appointment.id})
    db.commit()

    init_db(engine)

    raw = db.execute(text("SELECT status FROM appointments WHERE id = :id"), {"id": appointment.id}).scalar()
    assert raw == "REQUESTED"
    index_names = {index["name"] for index in inspect(engine).get_indexes("reward_transactions")}
    assert "uq_reward_transactions_user_appointment_type" in index_names
