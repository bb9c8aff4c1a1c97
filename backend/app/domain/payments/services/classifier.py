from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from app.domain.bookings.enums import PaymentStatus
from app.domain.payments.enums import PaymentType


DEFAULT_TOLERANCE = Decimal("0.01")


def within_tolerance(paid: Decimal, expected: Decimal, tolerance: Decimal = DEFAULT_TOLERANCE) -> bool:
    """Relative comparison; a non-positive expected figure never matches."""
    if expected <= 0:
        return False
    return abs(paid - expected) / expected < tolerance


@dataclass(frozen=True)
class RegularPaymentDecision:
    payment_type: PaymentType
    # None when the amount fits neither band and the status must stay as it is.
    new_payment_status: PaymentStatus | None

    @property
    def is_mismatch(self) -> bool:
        return self.new_payment_status is None


@dataclass(frozen=True)
class BalancePaymentDecision:
    expected_balance: Decimal
    amount_matches: bool


def classify_regular_payment(
    paid: Decimal,
    *,
    total_amount: Decimal,
    deposit_due: Decimal,
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> RegularPaymentDecision:
    # Full is checked first: a no-deposit booking has deposit == total.
    if within_tolerance(paid, total_amount, tolerance):
        return RegularPaymentDecision(PaymentType.full_payment, PaymentStatus.fully_paid)
    if within_tolerance(paid, deposit_due, tolerance):
        return RegularPaymentDecision(PaymentType.deposit, PaymentStatus.deposit_paid)
    return RegularPaymentDecision(PaymentType.unclassified, None)


def expected_balance(total_amount: Decimal, additional_costs: Decimal, total_paid: Decimal) -> Decimal:
    return total_amount + additional_costs - total_paid


def classify_balance_payment(
    paid: Decimal,
    *,
    total_amount: Decimal,
    additional_costs: Decimal,
    total_paid: Decimal,
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> BalancePaymentDecision:
    balance = expected_balance(total_amount, additional_costs, total_paid)
    return BalancePaymentDecision(expected_balance=balance, amount_matches=within_tolerance(paid, balance, tolerance))
