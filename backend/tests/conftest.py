from __future__ import annotations

import datetime as dt
import json
import os
import sys
from collections.abc import Generator
from decimal import Decimal
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import Session, sessionmaker

# Make `backend/` importable regardless of pytest import mode.
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.core.config import settings
from app.core.db.base import Base
from app.core.db.session import get_db, import_model_modules
from app.core.http.platform_client import PlatformClient, get_platform_client
from app.domain.bookings.enums import BookingStatus, PaymentStatus
from app.domain.bookings.models import CampingBooking, GlampingBooking
from app.main import create_app
from app.shared.enums import Env
from app.shared.utils import utcnow

# Ensure model modules are imported so Base.metadata is complete.
import_model_modules()


class RecordingPlatformClient(PlatformClient):
    """Captures outbound platform calls instead of sending them."""

    def __init__(self) -> None:
        super().__init__(base_url="http://platform.test", api_key="test-key", timeout=1.0)
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def post(self, path: str, payload: dict[str, Any]):
        self.calls.append((path, payload))
        return None

    def events(self, path: str) -> list[str]:
        return [payload.get("event_type") for p, payload in self.calls if p == path]


@pytest.fixture(autouse=True)
def _settings_defaults(monkeypatch):
    monkeypatch.setattr(settings, "env", Env.dev)
    monkeypatch.setattr(settings, "SEPAY_SECRET_KEY", None)
    monkeypatch.setattr(settings, "PAYMENT_AMOUNT_TOLERANCE", Decimal("0.01"))
    monkeypatch.setattr(settings, "authz_bypass_enabled", False)


@pytest.fixture()
def db_engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture()
def db_session(db_engine) -> Generator[Session, None, None]:
    TestingSessionLocal = sessionmaker(bind=db_engine, autoflush=False, autocommit=False, class_=Session)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def platform_client() -> RecordingPlatformClient:
    return RecordingPlatformClient()


@pytest.fixture()
def client(db_session: Session, platform_client: RecordingPlatformClient) -> TestClient:
    app = create_app()

    def _override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_platform_client] = lambda: platform_client
    return TestClient(app)


@pytest.fixture()
def staff_headers() -> dict[str, str]:
    return {"X-DEV-ACTOR": json.dumps({"actor_id": "ops-user", "roles": ["OPERATIONS"]})}


def _make_booking(model, db: Session, **overrides) -> Any:
    values: dict[str, Any] = {
        "guest_name": "Nguyen Van A",
        "guest_email": "guest@example.com",
        "check_in_date": dt.date(2026, 11, 20),
        "check_out_date": dt.date(2026, 11, 22),
        "total_amount": Decimal("3000000"),
        "deposit_due": Decimal("1000000"),
        "status": BookingStatus.pending,
        "payment_status": PaymentStatus.pending,
        "payment_expires_at": utcnow() + dt.timedelta(minutes=30),
    }
    values.update(overrides)
    booking = model(**values)
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


@pytest.fixture()
def make_glamping_booking(db_session: Session):
    def _make(booking_code: str = "GH25000002", **overrides):
        return _make_booking(GlampingBooking, db_session, booking_code=booking_code, **overrides)

    return _make


@pytest.fixture()
def make_camping_booking(db_session: Session):
    def _make(booking_code: str = "CH25000001", **overrides):
        return _make_booking(CampingBooking, db_session, booking_code=booking_code, **overrides)

    return _make


def build_sepay_payload(
    *,
    code: str = "FT25300000001",
    amount: int | str = 1000000,
    content: str = "IB GH25000002 DEPOSIT",
    vendor_id: int = 92704,
    **extra: Any,
) -> dict[str, Any]:
    """Production-shaped Sepay notification."""
    body: dict[str, Any] = {
        "id": vendor_id,
        "gateway": "Vietcombank",
        "transactionDate": "2026-10-18 14:02:37",
        "accountNumber": "0123499999",
        "code": None,
        "content": content,
        "transferType": "in",
        "transferAmount": amount,
        "accumulated": 19077000,
        "subAccount": None,
        "referenceCode": code,
        "description": f"BankAPINotify {content}",
    }
    body.update(extra)
    return body


@pytest.fixture()
def sepay_payload():
    return build_sepay_payload
