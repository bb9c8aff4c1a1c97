from __future__ import annotations

import re
from dataclasses import dataclass

from app.domain.bookings.enums import BookingNamespace


BALANCE_SUFFIX = "_balance"
REFERENCE_DIGITS = 8

_PREFIX_ALTERNATION = "|".join(ns.prefix for ns in BookingNamespace)

# Only glamping bookings take a separate balance transfer.
_BALANCE_PATTERN = re.compile(
    rf"({BookingNamespace.glamping.prefix}[0-9]{{{REFERENCE_DIGITS}}}){BALANCE_SUFFIX}",
    re.IGNORECASE,
)
# Exactly 8 digits: a trailing ninth digit means some other number, not a booking code.
_REFERENCE_PATTERN = re.compile(
    rf"(?:{_PREFIX_ALTERNATION})[0-9]{{{REFERENCE_DIGITS}}}(?![0-9])",
    re.IGNORECASE,
)
_EXACT_REFERENCE_PATTERN = re.compile(
    rf"((?:{_PREFIX_ALTERNATION})[0-9]{{{REFERENCE_DIGITS}}})({BALANCE_SUFFIX})?",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class ReferenceMatch:
    reference: str
    namespace: BookingNamespace
    is_balance_payment: bool = False


def extract_reference(description: str | None) -> ReferenceMatch | None:
    """Recover a booking reference from a free-text transfer description.

    Bank descriptions are uncontrolled text ("IB GH25000002 DEPOSIT",
    "MBVCB.1234.gh25000002.CT tu ..."). The balance form is searched first so a
    balance transfer is never read as a fresh deposit.
    """
    if not description:
        return None

    balance = _BALANCE_PATTERN.search(description)
    if balance:
        return ReferenceMatch(
            reference=balance.group(1).upper(),
            namespace=BookingNamespace.glamping,
            is_balance_payment=True,
        )

    regular = _REFERENCE_PATTERN.search(description)
    if regular:
        reference = regular.group(0).upper()
        namespace = BookingNamespace.from_reference(reference)
        if namespace is not None:
            return ReferenceMatch(reference=reference, namespace=namespace)

    return None


def parse_booking_reference(value: str | None) -> ReferenceMatch | None:
    """Strict variant for operator input: the whole string must be a reference."""
    if not value:
        return None
    m = _EXACT_REFERENCE_PATTERN.fullmatch(value.strip())
    if not m:
        return None
    reference = m.group(1).upper()
    namespace = BookingNamespace.from_reference(reference)
    if namespace is None:
        return None
    is_balance = bool(m.group(2))
    if is_balance and namespace != BookingNamespace.glamping:
        return None
    return ReferenceMatch(reference=reference, namespace=namespace, is_balance_payment=is_balance)
