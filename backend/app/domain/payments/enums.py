from __future__ import annotations

from enum import Enum


class TransactionStatus(str, Enum):
    pending = "pending"
    matched = "matched"
    late_payment = "late_payment"
    invalid_signature = "invalid_signature"
    validation_error = "validation_error"


class MatchedBy(str, Enum):
    auto = "auto"
    manual = "manual"


class TransferType(str, Enum):
    incoming = "in"
    outgoing = "out"


class PaymentType(str, Enum):
    deposit = "deposit"
    full_payment = "full_payment"
    balance = "balance"
    late_payment = "late_payment"
    unclassified = "unclassified"


class ReconciliationOutcome(str, Enum):
    matched_deposit = "matched_deposit"
    matched_full = "matched_full"
    matched_balance = "matched_balance"
    amount_mismatch = "amount_mismatch"
    late_payment = "late_payment"
    unmatched = "unmatched"
    duplicate = "duplicate"


class WebhookType(str, Enum):
    sepay = "sepay"


class WebhookStatus(str, Enum):
    received = "received"
    success = "success"
    failed = "failed"
    invalid_signature = "invalid_signature"
    validation_error = "validation_error"
    duplicate = "duplicate"


# Delivery outcomes that count toward the failure alert threshold.
FAILURE_STATUSES: tuple[WebhookStatus, ...] = (
    WebhookStatus.failed,
    WebhookStatus.invalid_signature,
    WebhookStatus.validation_error,
)


class MatchType(str, Enum):
    auto = "auto"
    manual = "manual"
    late_payment = "late_payment"
    unmatched = "unmatched"
