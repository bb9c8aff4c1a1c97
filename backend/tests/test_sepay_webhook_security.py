from __future__ import annotations

import json

from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.domain.bookings.enums import PaymentStatus
from app.domain.bookings.models import GlampingBookingPayment
from app.domain.payments.models import IncomingTransaction, WebhookLog
from app.domain.payments.services.ingress import compute_signature


SECRET = "sepay-shared-secret"


def _count(db: Session, model) -> int:
    return db.execute(select(func.count()).select_from(model)).scalar_one()


def _post_raw(client: TestClient, raw: bytes, signature: str | None = None):
    headers = {"content-type": "application/json"}
    if signature is not None:
        headers["x-sepay-signature"] = signature
    return client.post("/webhooks/sepay", content=raw, headers=headers)


def test_valid_signature_is_accepted(client: TestClient, monkeypatch, make_glamping_booking, sepay_payload):
    monkeypatch.setattr(settings, "SEPAY_SECRET_KEY", SECRET)
    make_glamping_booking()
    raw = json.dumps(sepay_payload()).encode()

    r = _post_raw(client, raw, compute_signature(raw, SECRET))

    assert r.status_code == 200
    assert r.json()["matched"] is True


def test_wrong_signature_is_rejected_without_payment_writes(client: TestClient, db_session: Session, monkeypatch, make_glamping_booking, sepay_payload):
    monkeypatch.setattr(settings, "SEPAY_SECRET_KEY", SECRET)
    booking = make_glamping_booking()
    raw = json.dumps(sepay_payload()).encode()

    r = _post_raw(client, raw, compute_signature(raw, "some-other-secret"))

    assert r.status_code == 401
    assert r.json() == {"success": False, "error": "Invalid signature"}
    db_session.refresh(booking)
    assert booking.payment_status == PaymentStatus.pending
    assert _count(db_session, GlampingBookingPayment) == 0
    assert _count(db_session, IncomingTransaction) == 0

    [log] = db_session.execute(select(WebhookLog)).scalars().all()
    assert log.status == "invalid_signature"
    assert log.http_status_code == 401
    assert log.error_type == "InvalidSignature"


def test_missing_signature_is_rejected_when_secret_configured(client: TestClient, db_session: Session, monkeypatch, sepay_payload):
    monkeypatch.setattr(settings, "SEPAY_SECRET_KEY", SECRET)

    r = _post_raw(client, json.dumps(sepay_payload()).encode())

    assert r.status_code == 401
    assert _count(db_session, IncomingTransaction) == 0


def test_signature_covers_exact_bytes(client: TestClient, monkeypatch, sepay_payload):
    monkeypatch.setattr(settings, "SEPAY_SECRET_KEY", SECRET)
    raw = json.dumps(sepay_payload()).encode()
    signature = compute_signature(raw, SECRET)

    # Same JSON document, different whitespace.
    reformatted = json.dumps(sepay_payload(), indent=2).encode()
    r = _post_raw(client, reformatted, signature)

    assert r.status_code == 401


def test_malformed_json_is_a_validation_error(client: TestClient, db_session: Session):
    r = _post_raw(client, b"{not json")

    assert r.status_code == 400
    assert r.json()["success"] is False
    [log] = db_session.execute(select(WebhookLog)).scalars().all()
    assert log.status == "validation_error"
    assert log.request_body == {"raw": "{not json"}


def test_non_object_body_is_rejected(client: TestClient):
    r = _post_raw(client, b"[1, 2, 3]")

    assert r.status_code == 400


def test_missing_amount_is_rejected(client: TestClient, db_session: Session, sepay_payload):
    payload = sepay_payload()
    del payload["transferAmount"]

    r = client.post("/webhooks/sepay", json=payload)

    assert r.status_code == 400
    assert "amount" in r.json()["error"]
    assert _count(db_session, IncomingTransaction) == 0


def test_negative_amount_is_rejected(client: TestClient, sepay_payload):
    r = client.post("/webhooks/sepay", json=sepay_payload(amount=-1000))

    assert r.status_code == 400


def test_missing_identifiers_are_rejected(client: TestClient, sepay_payload):
    payload = sepay_payload(referenceCode=None)
    del payload["id"]

    r = client.post("/webhooks/sepay", json=payload)

    assert r.status_code == 400
    assert "identifier" in r.json()["error"]


def test_non_ascii_signature_is_rejected(client: TestClient, db_session: Session, monkeypatch, make_glamping_booking, sepay_payload):
    monkeypatch.setattr(settings, "SEPAY_SECRET_KEY", SECRET)
    booking = make_glamping_booking()
    raw = json.dumps(sepay_payload()).encode()

    r = client.post(
        "/webhooks/sepay",
        content=raw,
        headers={"content-type": "application/json", "x-sepay-signature": ("é" * 64).encode("latin-1")},
    )

    assert r.status_code == 401
    assert r.json() == {"success": False, "error": "Invalid signature"}
    db_session.refresh(booking)
    assert booking.payment_status == PaymentStatus.pending
    assert _count(db_session, IncomingTransaction) == 0
    [log] = db_session.execute(select(WebhookLog)).scalars().all()
    assert log.status == "invalid_signature"
