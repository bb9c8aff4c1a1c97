from __future__ import annotations

from decimal import Decimal

from fastapi.testclient import TestClient


def test_payment_status_before_and_after_transfer(client: TestClient, make_glamping_booking, sepay_payload):
    make_glamping_booking()

    before = client.get("/bookings/code/GH25000002/payment-status")
    assert before.status_code == 200
    assert before.json()["payment_status"] == "pending"
    assert before.json()["transaction"] is None

    client.post("/webhooks/sepay", json=sepay_payload(amount=1000000))

    after = client.get("/bookings/code/gh25000002/payment-status").json()
    assert after["booking_code"] == "GH25000002"
    assert after["booking_type"] == "glamping"
    assert after["status"] == "confirmed"
    assert after["payment_status"] == "deposit_paid"
    assert Decimal(after["amount_paid"]) == Decimal("1000000")
    assert after["transaction"]["transaction_code"] == "FT25300000001"
    assert after["transaction"]["status"] == "matched"


def test_payment_status_for_camping_booking(client: TestClient, make_camping_booking):
    make_camping_booking()

    r = client.get("/api/bookings/code/CH25000001/payment-status")

    assert r.status_code == 200
    assert r.json()["booking_type"] == "camping"


def test_payment_status_unknown_booking(client: TestClient):
    assert client.get("/bookings/code/GH00000000/payment-status").status_code == 404
    assert client.get("/bookings/code/XX12345678/payment-status").status_code == 404
