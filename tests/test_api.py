from decimal import Decimal

from motocare.core.enums import AppointmentStatus, InvoiceStatus, RewardType
from motocare.db.models import RewardTransaction


def _booking(bike, garage, day, slot="10:00"):
    return {
        "bike_id": bike.id,
        "garage_id": garage.id,
        "km_running": 12000,
        "preferred_date": day.isoformat(),
        "time_slot": slot,
        "service_type": "Full Service",
    }


def test_health(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json() == {"status": "Motocare Running"}
    assert response.headers["X-Request-ID"]


def test_create_and_list_appointment(client, customer, bike, garage, tomorrow, auth_headers):
    response = client.post("/appointments/", json=_booking(bike, garage, tomorrow), headers=auth_headers(customer))

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["status"] == "REQUESTED"
    assert body["data"]["history"][0]["to_status"] == "REQUESTED"

    listed = client.get("/appointments/", headers=auth_headers(customer)).json()["data"]
    assert [item["id"] for item in listed] == [body["data"]["id"]]


def test_missing_identity_is_rejected(client, bike, garage, tomorrow):
    response = client.post("/appointments/", json=_booking(bike, garage, tomorrow))

    assert response.status_code == 401
    assert response.json()["success"] is False


def test_bad_time_slot_is_a_400(client, customer, bike, garage, tomorrow, auth_headers):
    response = client.post(
        "/appointments/",
        json=_booking(bike, garage, tomorrow, slot="10am"),
        headers=auth_headers(customer),
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_full_slot_is_a_conflict(client, garage, tomorrow, make_user, make_bike, make_appointment, auth_headers):
    for _ in range(2):
        user = make_user()
        make_appointment(user, make_bike(user))
    late = make_user()
    late_bike = make_bike(late)

    response = client.post("/appointments/", json=_booking(late_bike, garage, tomorrow), headers=auth_headers(late))

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "ADMISSION_REJECTED"


def test_availability(client, garage, tomorrow, customer, bike, make_appointment):
    make_appointment(customer, bike, time_slot="09:00")

    response = client.get(
        "/appointments/availability",
        params={"garage_id": garage.id, "date": tomorrow.isoformat()},
    )

    data = response.json()["data"]
    assert data["max_per_slot"] == 2
    assert data["counts"] == {"09:00": 1}


def test_status_change_roles(client, customer, other_customer, admin, bike, make_appointment, auth_headers):
    appointment = make_appointment(customer, bike)
    url = f"/appointments/{appointment.id}/status"

    forbidden = client.patch(url, json={"status": "CONFIRMED"}, headers=auth_headers(customer))
    assert forbidden.status_code == 403
    assert forbidden.json()["error"]["code"] == "FORBIDDEN_TRANSITION"

    stranger = client.patch(url, json={"status": "CANCELLED"}, headers=auth_headers(other_customer))
    assert stranger.status_code == 403
    assert stranger.json()["error"]["code"] == "UNAUTHORIZED_ACTOR"

    confirmed = client.patch(url, json={"status": "CONFIRMED", "note": "Bay 2"}, headers=auth_headers(admin))
    assert confirmed.status_code == 200
    assert confirmed.json()["data"]["status"] == "CONFIRMED"
    assert "internal_notes" not in confirmed.json()["data"]

    back = client.patch(url, json={"status": "REQUESTED"}, headers=auth_headers(admin))
    assert back.status_code == 400
    assert back.json()["error"]["code"] == "INVALID_TRANSITION"


def test_customer_cancel(client, customer, bike, make_appointment, auth_headers):
    appointment = make_appointment(customer, bike)

    response = client.patch(
        f"/appointments/{appointment.id}/cancel",
        json={"reason": "Out of town"},
        headers=auth_headers(customer),
    )

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "CANCELLED"
    assert response.json()["data"]["cancellation_reason"] == "Out of town"


def test_unknown_appointment_is_404(client, admin, auth_headers):
    response = client.patch("/appointments/9999/status", json={"status": "CONFIRMED"}, headers=auth_headers(admin))

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


def test_admin_routes_require_admin(client, customer, auth_headers):
    response = client.get("/admin/appointments", headers=auth_headers(customer))

    assert response.status_code == 403


def test_admin_listing_pages(client, admin, customer, bike, make_appointment, auth_headers):
    make_appointment(customer, bike)

    response = client.get("/admin/appointments", params={"limit": 5}, headers=auth_headers(admin))

    page = response.json()["data"]
    assert page["total"] == 1
    assert page["pages"] == 1
    assert page["items"][0]["status"] == "REQUESTED"
    assert "internal_notes" in page["items"][0]


def test_invoice_and_payment_flow(client, db, customer, admin, bike, make_appointment, auth_headers):
    appointment = make_appointment(customer, bike, AppointmentStatus.CONFIRMED)
    db.add(RewardTransaction(user_id=customer.id, type=RewardType.EARN, points=400))
    db.commit()

    priced = client.patch(
        f"/admin/appointments/{appointment.id}/price",
        json={"quoted_price": "1200"},
        headers=auth_headers(admin),
    )
    assert priced.status_code == 200

    created = client.post(
        f"/admin/appointments/{appointment.id}/invoice",
        json={
            "items": [
                {"description": "Engine oil", "unit_price": 600, "quantity": 1},
                {"description": "Labour", "unit_price": 400, "quantity": 1},
            ],
            "vat_rate": 13,
        },
        headers=auth_headers(admin),
    )
    assert created.status_code == 201
    invoice = created.json()["data"]
    assert Decimal(str(invoice["total_amount"])) == Decimal("1130.00")

    duplicate = client.post(
        f"/admin/appointments/{appointment.id}/invoice",
        json={},
        headers=auth_headers(admin),
    )
    assert duplicate.status_code == 409

    locked = client.patch(
        f"/admin/appointments/{appointment.id}/price",
        json={"quoted_price": "900"},
        headers=auth_headers(admin),
    )
    assert locked.status_code == 409
    assert locked.json()["error"]["code"] == "LOCKED"

    issued = client.patch(
        f"/admin/invoices/{invoice['id']}/status",
        json={"status": "ISSUED"},
        headers=auth_headers(admin),
    )
    assert issued.json()["data"]["status"] == InvoiceStatus.ISSUED.value

    paid_request = client.post(
        f"/invoices/{invoice['id']}/pay",
        json={"redeem_points": 300},
        headers=auth_headers(customer),
    )
    assert paid_request.status_code == 200
    assert paid_request.json()["data"]["status"] == "PAYMENT_PENDING"

    pending = client.get("/admin/invoices/pending", headers=auth_headers(admin)).json()["data"]
    assert [row["id"] for row in pending] == [invoice["id"]]

    paid = client.patch(
        f"/admin/invoices/{invoice['id']}/status",
        json={"status": "PAID"},
        headers=auth_headers(admin),
    )
    data = paid.json()["data"]
    assert data["status"] == "PAID"
    assert Decimal(str(data["paid_amount"])) == Decimal("830.00")

    rewards = client.get("/rewards/me", headers=auth_headers(customer)).json()["data"]
    assert rewards["balance"] == 100
    assert rewards["redeemed"] == 300


def test_expire_endpoint(client, admin, auth_headers):
    response = client.post("/admin/appointments/expire", headers=auth_headers(admin))

    assert response.status_code == 200
    assert response.json()["data"] == {"expired": 0}
