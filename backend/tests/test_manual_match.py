from __future__ import annotations

from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.db.audit import get_audit_log
from app.domain.bookings.enums import BookingStatus, PaymentStatus
from app.domain.bookings.models import GlampingBookingPayment
from app.domain.payments.enums import MatchedBy, TransactionStatus
from app.domain.payments.models import IncomingTransaction


def _unmatched_transaction(client: TestClient, db: Session, sepay_payload, **kwargs) -> IncomingTransaction:
    r = client.post("/webhooks/sepay", json=sepay_payload(content="chuyen tien dat phong", **kwargs))
    assert r.json()["matched"] is False
    return db.execute(select(IncomingTransaction)).scalar_one()


def test_list_pending_transactions(client: TestClient, db_session: Session, sepay_payload, staff_headers):
    tx = _unmatched_transaction(client, db_session, sepay_payload)

    r = client.get("/admin/sepay-transactions", params={"status": "pending"}, headers=staff_headers)

    assert r.status_code == 200
    items = r.json()
    assert [item["id"] for item in items] == [str(tx.id)]
    assert items[0]["status"] == "pending"
    assert items[0]["matched_booking_reference"] is None

    matched = client.get("/admin/sepay-transactions", params={"status": "matched"}, headers=staff_headers)
    assert matched.json() == []


def test_manual_match_confirms_booking(client: TestClient, db_session: Session, make_glamping_booking, sepay_payload, staff_headers):
    booking = make_glamping_booking()
    tx = _unmatched_transaction(client, db_session, sepay_payload, amount=1000000)

    r = client.post(
        f"/admin/sepay-transactions/{tx.id}/match",
        json={"booking_reference": "gh25000002"},
        headers=staff_headers,
    )

    assert r.status_code == 200
    body = r.json()
    assert body["outcome"] == "matched_deposit"
    assert body["booking_reference"] == "GH25000002"
    assert body["payment_status"] == "deposit_paid"

    db_session.refresh(tx)
    db_session.refresh(booking)
    assert tx.status == TransactionStatus.matched
    assert tx.matched_by == MatchedBy.manual
    assert booking.status == BookingStatus.confirmed
    assert booking.payment_status == PaymentStatus.deposit_paid

    [event] = get_audit_log(db_session, entity_id=booking.id, entity_type="glamping_booking")
    assert event.actor_id == "ops-user"
    assert event.actor_roles == ["OPERATIONS"]

    [entry] = db_session.execute(select(GlampingBookingPayment)).scalars().all()
    assert entry.payment_metadata["auto_matched"] is False


def test_manual_balance_match(client: TestClient, db_session: Session, make_glamping_booking, sepay_payload, staff_headers):
    booking = make_glamping_booking(payment_status=PaymentStatus.deposit_paid, status=BookingStatus.confirmed)
    db_session.add(
        GlampingBookingPayment(booking_id=booking.id, amount=Decimal("1000000"), status="paid", payment_type="deposit")
    )
    db_session.commit()
    tx = _unmatched_transaction(client, db_session, sepay_payload, amount=2000000)

    r = client.post(
        f"/admin/sepay-transactions/{tx.id}/match",
        json={"booking_reference": "GH25000002_balance"},
        headers=staff_headers,
    )

    assert r.status_code == 200
    assert r.json()["outcome"] == "matched_balance"
    db_session.refresh(booking)
    assert booking.payment_status == PaymentStatus.fully_paid


def test_manual_match_of_resolved_transaction_conflicts(client: TestClient, db_session: Session, make_glamping_booking, sepay_payload, staff_headers):
    make_glamping_booking()
    client.post("/webhooks/sepay", json=sepay_payload())
    tx = db_session.execute(select(IncomingTransaction)).scalar_one()

    r = client.post(
        f"/admin/sepay-transactions/{tx.id}/match",
        json={"booking_reference": "GH25000002"},
        headers=staff_headers,
    )

    assert r.status_code == 409


def test_manual_match_unknown_transaction(client: TestClient, staff_headers):
    r = client.post(
        "/admin/sepay-transactions/7d1f4c1e-3f0b-4bde-9a57-1f5e2a6b9c10/match",
        json={"booking_reference": "GH25000002"},
        headers=staff_headers,
    )

    assert r.status_code == 404


def test_manual_match_rejects_bad_reference(client: TestClient, db_session: Session, sepay_payload, staff_headers):
    tx = _unmatched_transaction(client, db_session, sepay_payload)

    r = client.post(
        f"/admin/sepay-transactions/{tx.id}/match",
        json={"booking_reference": "ZZ12345678"},
        headers=staff_headers,
    )

    assert r.status_code == 400


def test_manual_match_to_missing_booking_leaves_transaction_pending(client: TestClient, db_session: Session, sepay_payload, staff_headers):
    tx = _unmatched_transaction(client, db_session, sepay_payload)

    r = client.post(
        f"/admin/sepay-transactions/{tx.id}/match",
        json={"booking_reference": "CH99999999"},
        headers=staff_headers,
    )

    assert r.status_code == 400
    db_session.refresh(tx)
    assert tx.status == TransactionStatus.pending
    assert tx.matched_reservation_id is None


def test_outgoing_transfer_cannot_be_matched_manually(client: TestClient, db_session: Session, make_glamping_booking, sepay_payload, staff_headers):
    booking = make_glamping_booking()
    client.post("/webhooks/sepay", json=sepay_payload(transferType="out"))
    tx = db_session.execute(select(IncomingTransaction)).scalar_one()
    assert tx.status == TransactionStatus.pending

    r = client.post(
        f"/admin/sepay-transactions/{tx.id}/match",
        json={"booking_reference": "GH25000002"},
        headers=staff_headers,
    )

    assert r.status_code == 400
    db_session.refresh(tx)
    db_session.refresh(booking)
    assert tx.status == TransactionStatus.pending
    assert booking.payment_status == PaymentStatus.pending
    assert db_session.execute(select(GlampingBookingPayment)).scalars().all() == []
