from __future__ import annotations

import pytest

from app.domain.bookings.enums import BookingNamespace
from app.domain.payments.services.reference_matcher import extract_reference, parse_booking_reference


@pytest.mark.parametrize(
    "description, reference, namespace",
    [
        ("IB GH25000002 DEPOSIT", "GH25000002", BookingNamespace.glamping),
        ("MBVCB.11223344.gh25000002.CT tu 0123 toi 4567", "GH25000002", BookingNamespace.glamping),
        ("CH25000001 thanh toan coc", "CH25000001", BookingNamespace.camping),
        ("Chuyen tien CH25000001-Nguyen Van A", "CH25000001", BookingNamespace.camping),
        ("100000-0912345678-GH25000017", "GH25000017", BookingNamespace.glamping),
    ],
)
def test_extracts_reference_from_bank_descriptions(description, reference, namespace):
    match = extract_reference(description)

    assert match is not None
    assert match.reference == reference
    assert match.namespace == namespace
    assert match.is_balance_payment is False


@pytest.mark.parametrize(
    "description",
    [
        "IB GH25000002_balance DEPOSIT",
        "thanh toan gh25000002_BALANCE con lai",
    ],
)
def test_balance_form_wins_over_bare_reference(description):
    match = extract_reference(description)

    assert match is not None
    assert match.reference == "GH25000002"
    assert match.namespace == BookingNamespace.glamping
    assert match.is_balance_payment is True


def test_camping_balance_suffix_is_read_as_regular_payment():
    match = extract_reference("CH25000001_balance")

    assert match is not None
    assert match.reference == "CH25000001"
    assert match.is_balance_payment is False


@pytest.mark.parametrize(
    "description",
    [
        None,
        "",
        "Chuyen tien an trua",
        "GH2500000",  # seven digits
        "GH250000021",  # nine digits
        "XX25000002",
    ],
)
def test_no_reference_found(description):
    assert extract_reference(description) is None


def test_parse_booking_reference_is_strict():
    assert parse_booking_reference("gh25000002").reference == "GH25000002"
    assert parse_booking_reference("GH25000002_balance").is_balance_payment is True
    assert parse_booking_reference("CH25000001_balance") is None
    assert parse_booking_reference("pay GH25000002") is None
    assert parse_booking_reference("") is None
