from __future__ import annotations

from enum import Enum


class BookingNamespace(str, Enum):
    """Reservation families; each owns a disjoint booking-code space."""

    camping = "camping"
    glamping = "glamping"

    @property
    def prefix(self) -> str:
        return _PREFIXES[self]

    @classmethod
    def from_reference(cls, reference: str) -> "BookingNamespace | None":
        head = reference[:2].upper()
        for namespace, prefix in _PREFIXES.items():
            if prefix == head:
                return namespace
        return None


_PREFIXES: dict[BookingNamespace, str] = {
    BookingNamespace.camping: "CH",
    BookingNamespace.glamping: "GH",
}


class BookingStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    cancelled = "cancelled"
    completed = "completed"


class PaymentStatus(str, Enum):
    pending = "pending"
    deposit_paid = "deposit_paid"
    fully_paid = "fully_paid"
    expired = "expired"


# Payment statuses that still accept an incoming transfer.
PAYABLE_STATUSES: frozenset[PaymentStatus] = frozenset({PaymentStatus.pending, PaymentStatus.deposit_paid})


class LedgerEntryStatus(str, Enum):
    pending = "pending"
    paid = "paid"
    completed = "completed"
    successful = "successful"
    failed = "failed"


# Ledger rows that count toward "already paid".
SETTLED_LEDGER_STATUSES: tuple[str, ...] = (
    LedgerEntryStatus.successful.value,
    LedgerEntryStatus.completed.value,
    LedgerEntryStatus.paid.value,
)


class PaymentMethod(str, Enum):
    bank_transfer = "bank_transfer"
    cash = "cash"
    card = "card"
