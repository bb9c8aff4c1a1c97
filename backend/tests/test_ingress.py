from __future__ import annotations

import datetime as dt
from decimal import Decimal

import pytest

from app.domain.payments.services.ingress import compute_signature, normalize_payload, verify_signature
from app.shared.exceptions import InvalidSignature, WebhookValidationError


def test_production_and_legacy_shapes_normalize_alike():
    production = normalize_payload(
        {
            "id": 1,
            "referenceCode": "FT-1",
            "transferAmount": 1000000,
            "content": "GH25000002",
            "accountNumber": 123456,
            "gateway": "MBBank",
            "transactionDate": "2026-10-18 14:02:37",
            "transferType": "IN",
        }
    )
    legacy = normalize_payload(
        {
            "transaction_code": "FT-1",
            "amount": "1000000",
            "description": "GH25000002",
            "account_number": "123456",
            "bank_name": "MBBank",
            "transaction_date": "2026-10-18 14:02:37",
        }
    )

    for canonical in (production, legacy):
        assert canonical.transaction_code == "FT-1"
        assert canonical.amount == Decimal("1000000")
        assert canonical.description == "GH25000002"
        assert canonical.account_number == "123456"
        assert canonical.bank_label == "MBBank"
    assert production.transfer_type == "in"
    assert legacy.transfer_type is None
    assert production.vendor_id == "1"


def test_naive_transfer_time_is_vietnam_local():
    canonical = normalize_payload(
        {"referenceCode": "FT-2", "transferAmount": 10, "content": "x", "transactionDate": "2026-10-18 14:02:37"}
    )

    assert canonical.transferred_at.utcoffset() == dt.timedelta(hours=7)
    assert canonical.transferred_at.astimezone(dt.timezone.utc).hour == 7


def test_bank_label_defaults_to_sepay():
    canonical = normalize_payload({"transaction_code": "FT-3", "amount": 5, "description": "x"})

    assert canonical.bank_label == "sepay"


def test_non_numeric_amount_is_a_validation_error():
    with pytest.raises(WebhookValidationError):
        normalize_payload({"transaction_code": "FT-4", "amount": "lots", "description": "x"})


def test_signature_check_is_skipped_without_secret():
    verify_signature(b"{}", None, None)
    verify_signature(b"{}", "whatever", "")


def test_signature_is_case_insensitive_hex():
    raw = b'{"a": 1}'
    verify_signature(raw, compute_signature(raw, "s").upper(), "s")

    with pytest.raises(InvalidSignature):
        verify_signature(raw, compute_signature(raw, "s")[:-1], "s")
