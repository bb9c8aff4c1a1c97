from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.db.audit import write_audit_event
from app.domain.bookings.enums import PAYABLE_STATUSES, BookingNamespace, BookingStatus, PaymentStatus
from app.domain.bookings.repositories import Reservation, ReservationRepository, repository_for
from app.domain.payments.enums import (
    MatchedBy,
    MatchType,
    PaymentType,
    ReconciliationOutcome,
    TransactionStatus,
    TransferType,
)
from app.domain.payments.models.transactions import IncomingTransaction
from app.domain.payments.schemas.webhook import CanonicalTransaction
from app.domain.payments.services.classifier import classify_balance_payment, classify_regular_payment
from app.domain.payments.services.ingress import claim_transaction
from app.domain.payments.services.reference_matcher import ReferenceMatch, extract_reference, parse_booking_reference
from app.services.notifications import PostCommitEffect
from app.shared.exceptions import NotFound, TransactionAlreadyClaimed, ValidationError
from app.shared.utils import ensure_utc, sa_model_to_dict, utcnow


logger = structlog.get_logger(__name__)

BALANCE_PAYMENT_NOTE = "balance_payment"
LATE_PAYMENT_NOTE = "late_payment"
AMOUNT_MISMATCH_NOTE = "amount mismatch - manual review"

STAFF_ROLES_TO_NOTIFY = ("admin", "operations")

_MATCHED_OUTCOMES = frozenset(
    {
        ReconciliationOutcome.matched_deposit,
        ReconciliationOutcome.matched_full,
        ReconciliationOutcome.matched_balance,
        ReconciliationOutcome.amount_mismatch,
    }
)

_OUTCOME_MESSAGES = {
    ReconciliationOutcome.matched_deposit: "Deposit received, booking confirmed",
    ReconciliationOutcome.matched_full: "Full payment received, booking confirmed",
    ReconciliationOutcome.matched_balance: "Balance payment matched and booking updated to fully_paid",
    ReconciliationOutcome.amount_mismatch: "Transaction matched; amount fits no expected figure, manual review required",
    ReconciliationOutcome.late_payment: "Late payment detected for expired booking. Admin notified.",
    ReconciliationOutcome.unmatched: "Transaction saved, awaiting manual matching",
    ReconciliationOutcome.duplicate: "Transaction already processed",
}


@dataclass
class ReconciliationResult:
    outcome: ReconciliationOutcome
    transaction_code: str
    transaction_id: uuid.UUID | None = None
    booking_reference: str | None = None
    namespace: BookingNamespace | None = None
    payment_type: PaymentType | None = None
    payment_status: PaymentStatus | None = None
    matched_by: MatchedBy | None = None
    duplicate_status: str | None = None
    note: str | None = None
    effects: list[PostCommitEffect] = field(default_factory=list)

    @classmethod
    def duplicate(cls, transaction_code: str, status: str | None) -> "ReconciliationResult":
        return cls(ReconciliationOutcome.duplicate, transaction_code, duplicate_status=status)

    @property
    def matched(self) -> bool:
        return self.outcome in _MATCHED_OUTCOMES

    @property
    def match_type(self) -> MatchType | None:
        if self.outcome == ReconciliationOutcome.duplicate:
            return None
        if self.outcome == ReconciliationOutcome.unmatched:
            return MatchType.unmatched
        if self.outcome == ReconciliationOutcome.late_payment:
            return MatchType.late_payment
        return MatchType.manual if self.matched_by == MatchedBy.manual else MatchType.auto

    def response_body(self) -> dict[str, Any]:
        message = _OUTCOME_MESSAGES[self.outcome]
        if self.outcome == ReconciliationOutcome.duplicate:
            return {
                "success": True,
                "duplicate": True,
                "message": message,
                "status": self.duplicate_status,
                "transaction_code": self.transaction_code,
            }
        if self.outcome == ReconciliationOutcome.unmatched:
            return {"success": True, "matched": False, "message": message, "transaction_code": self.transaction_code}

        body: dict[str, Any] = {
            "success": True,
            "message": message,
            "booking_reference": self.booking_reference,
            "transaction_code": self.transaction_code,
            "booking_type": self.namespace.value if self.namespace else None,
        }
        if self.outcome == ReconciliationOutcome.late_payment:
            body.update({"matched": False, "late_payment": True})
            return body

        body.update(
            {
                "matched": True,
                "payment_type": self.payment_type.value if self.payment_type else None,
                "payment_status": self.payment_status.value if self.payment_status else None,
            }
        )
        if self.outcome == ReconciliationOutcome.amount_mismatch or self.note:
            body["manual_review"] = True
        return body


def format_vnd(amount: Decimal) -> str:
    return f"{amount:,.0f}".replace(",", ".") + " ₫"


def _claim(
    db: Session,
    tx: IncomingTransaction,
    *,
    status: TransactionStatus,
    reservation: Reservation,
    match: ReferenceMatch,
    matched_by: MatchedBy,
    note: str | None,
) -> None:
    """Move the transaction out of ``pending``; only one attempt can win.

    The WHERE clause is the guard against a concurrent delivery of the same
    code: if it already resolved the row, nothing is updated and this attempt
    is abandoned.
    """
    before = sa_model_to_dict(tx)
    result = db.execute(
        update(IncomingTransaction)
        .where(
            IncomingTransaction.id == tx.id,
            IncomingTransaction.status == TransactionStatus.pending,
            IncomingTransaction.matched_reservation_id.is_(None),
        )
        .values(
            status=status,
            booking_namespace=match.namespace,
            matched_reservation_id=reservation.id,
            matched_booking_reference=match.reference,
            matched_by=matched_by,
            matched_at=utcnow(),
            match_note=note,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        current = db.execute(
            select(IncomingTransaction.status).where(IncomingTransaction.id == tx.id)
        ).scalar_one_or_none()
        raise TransactionAlreadyClaimed(tx.transaction_code, status=current.value if current else None)
    db.refresh(tx)

    write_audit_event(
        db,
        action=f"sepay_transaction.{status.value}",
        entity_type="sepay_transaction",
        entity_id=tx.id,
        before=before,
        after=sa_model_to_dict(tx),
    )


def _payment_metadata(tx: IncomingTransaction, matched_by: MatchedBy, **extra: Any) -> dict[str, Any]:
    return {
        "gateway": tx.gateway,
        "sepay_transaction_id": tx.sepay_transaction_id,
        "auto_matched": matched_by == MatchedBy.auto,
        **extra,
    }


def _notification_data(reservation: Reservation, match: ReferenceMatch, amount: Decimal) -> dict[str, Any]:
    return {
        "booking_id": str(reservation.id),
        "booking_reference": match.reference,
        "booking_type": match.namespace.value,
        "amount": format_vnd(amount),
        "guest_name": reservation.guest_name or "N/A",
        "guest_email": reservation.guest_email or "",
        "check_in_date": reservation.check_in_date.isoformat() if reservation.check_in_date else None,
        "check_out_date": reservation.check_out_date.isoformat() if reservation.check_out_date else None,
        "notification_link": f"{settings.PUBLIC_BASE_URL.rstrip('/')}/admin/zones/all/bookings?booking_code={match.reference}",
    }


def _staff_effects(event_type: str, data: dict[str, Any]) -> list[PostCommitEffect]:
    return [PostCommitEffect.role(role, event_type, data) for role in STAFF_ROLES_TO_NOTIFY]


def _apply_balance_payment(
    db: Session,
    tx: IncomingTransaction,
    repo: ReservationRepository,
    reservation: Reservation,
    match: ReferenceMatch,
    *,
    matched_by: MatchedBy,
    tolerance: Decimal,
) -> ReconciliationResult:
    paid = Decimal(str(tx.amount))
    decision = classify_balance_payment(
        paid,
        total_amount=Decimal(str(reservation.total_amount)),
        additional_costs=repo.additional_costs(reservation.id),
        total_paid=repo.sum_paid(reservation.id),
        tolerance=tolerance,
    )
    note = None
    if not decision.amount_matches:
        # Balance transfers are never rejected on amount; operators reconcile the gap.
        note = f"balance amount mismatch: expected {decision.expected_balance}, received {paid}"
        logger.warning(
            "sepay.balance.amount_mismatch",
            booking_reference=match.reference,
            expected=str(decision.expected_balance),
            received=str(paid),
        )

    _claim(db, tx, status=TransactionStatus.matched, reservation=reservation, match=match, matched_by=matched_by, note=note)
    repo.update_status(
        reservation,
        action="booking.balance_paid",
        payment_status=PaymentStatus.fully_paid,
        context={"transaction_code": tx.transaction_code, "expected_balance": str(decision.expected_balance)},
    )
    repo.record_payment(
        reservation,
        amount=paid,
        transaction_code=tx.transaction_code,
        payment_type=PaymentType.balance.value,
        paid_at=tx.transaction_date,
        notes=BALANCE_PAYMENT_NOTE,
        metadata=_payment_metadata(tx, matched_by, expected_balance=str(decision.expected_balance)),
    )

    data = _notification_data(reservation, match, paid)
    effects = _staff_effects("balance_payment_received", data)
    if reservation.customer_id:
        effects.insert(0, PostCommitEffect.customer(reservation.customer_id, "payment_received", data))
    if note:
        effects.append(PostCommitEffect.role("admin", "payment_amount_mismatch", {**data, "note": note}))

    logger.info("sepay.transaction.matched", booking_reference=match.reference, payment_type="balance", amount=str(paid))
    return ReconciliationResult(
        ReconciliationOutcome.matched_balance,
        tx.transaction_code,
        transaction_id=tx.id,
        booking_reference=match.reference,
        namespace=match.namespace,
        payment_type=PaymentType.balance,
        payment_status=PaymentStatus.fully_paid,
        matched_by=matched_by,
        note=note,
        effects=effects,
    )


def _apply_regular_payment(
    db: Session,
    tx: IncomingTransaction,
    repo: ReservationRepository,
    reservation: Reservation,
    match: ReferenceMatch,
    *,
    matched_by: MatchedBy,
    tolerance: Decimal,
) -> ReconciliationResult:
    paid = Decimal(str(tx.amount))
    decision = classify_regular_payment(
        paid,
        total_amount=Decimal(str(reservation.total_amount)),
        deposit_due=Decimal(str(reservation.deposit_due or 0)),
        tolerance=tolerance,
    )
    now = utcnow()
    expires_at = ensure_utc(reservation.payment_expires_at)
    paid_after_expiry = expires_at is not None and expires_at < now
    previous_status = reservation.payment_status
    note = AMOUNT_MISMATCH_NOTE if decision.is_mismatch else None

    _claim(db, tx, status=TransactionStatus.matched, reservation=reservation, match=match, matched_by=matched_by, note=note)

    context = {"transaction_code": tx.transaction_code, "amount": str(paid), "matched_by": matched_by.value}
    if decision.is_mismatch:
        logger.warning(
            "sepay.payment.amount_mismatch",
            booking_reference=match.reference,
            received=str(paid),
            total_amount=str(reservation.total_amount),
            deposit_due=str(reservation.deposit_due),
        )
        repo.update_status(
            reservation,
            action="booking.payment_amount_mismatch",
            has_late_payment=True if paid_after_expiry else None,
            context=context,
        )
    else:
        repo.update_status(
            reservation,
            action="booking.payment_received",
            payment_status=decision.new_payment_status,
            booking_status=BookingStatus.confirmed,
            confirmed_at=now,
            has_late_payment=True if paid_after_expiry else None,
            context=context,
        )

    repo.record_payment(
        reservation,
        amount=paid,
        transaction_code=tx.transaction_code,
        payment_type=decision.payment_type.value,
        paid_at=tx.transaction_date,
        metadata=_payment_metadata(tx, matched_by, amount_mismatch=decision.is_mismatch, paid_after_expiry=paid_after_expiry),
        complete_pending=True,
    )

    data = _notification_data(reservation, match, paid)
    effects: list[PostCommitEffect] = []
    if reservation.customer_id:
        effects.append(PostCommitEffect.customer(reservation.customer_id, "payment_received", data))
    if decision.is_mismatch:
        effects.append(PostCommitEffect.role("admin", "payment_amount_mismatch", {**data, "note": note}))
    else:
        effects.extend(_staff_effects("new_booking_pending", data))
    if match.namespace == BookingNamespace.camping:
        effects.append(PostCommitEffect.commission(reservation.id))

    if decision.is_mismatch:
        outcome = ReconciliationOutcome.amount_mismatch
    elif decision.payment_type == PaymentType.full_payment:
        outcome = ReconciliationOutcome.matched_full
    else:
        outcome = ReconciliationOutcome.matched_deposit

    logger.info(
        "sepay.transaction.matched",
        booking_reference=match.reference,
        booking_type=match.namespace.value,
        payment_type=decision.payment_type.value,
        previous_payment_status=previous_status.value,
        amount=str(paid),
        paid_after_expiry=paid_after_expiry,
    )
    return ReconciliationResult(
        outcome,
        tx.transaction_code,
        transaction_id=tx.id,
        booking_reference=match.reference,
        namespace=match.namespace,
        payment_type=decision.payment_type,
        payment_status=reservation.payment_status,
        matched_by=matched_by,
        note=note,
        effects=effects,
    )


def _apply_late_payment(
    db: Session,
    tx: IncomingTransaction,
    repo: ReservationRepository,
    reservation: Reservation,
    match: ReferenceMatch,
    *,
    matched_by: MatchedBy,
) -> ReconciliationResult:
    """Money arrived for a booking that already expired.

    The booking stays cancelled/expired; the transfer is booked to its ledger
    so refund or manual re-confirmation can trace it.
    """
    paid = Decimal(str(tx.amount))
    _claim(db, tx, status=TransactionStatus.late_payment, reservation=reservation, match=match, matched_by=matched_by, note=None)
    repo.update_status(
        reservation,
        action="booking.late_payment_received",
        has_late_payment=True,
        context={"transaction_code": tx.transaction_code, "amount": str(paid)},
    )
    repo.record_payment(
        reservation,
        amount=paid,
        transaction_code=tx.transaction_code,
        payment_type=PaymentType.late_payment.value,
        paid_at=tx.transaction_date,
        notes=LATE_PAYMENT_NOTE,
        metadata=_payment_metadata(tx, matched_by, is_late_payment=True),
        complete_pending=True,
    )

    data = _notification_data(reservation, match, paid)
    effects = _staff_effects("late_payment_received", data)
    if reservation.customer_id:
        effects.insert(0, PostCommitEffect.customer(reservation.customer_id, "late_payment_expired", data))

    logger.warning("sepay.transaction.late_payment", booking_reference=match.reference, amount=str(paid))
    return ReconciliationResult(
        ReconciliationOutcome.late_payment,
        tx.transaction_code,
        transaction_id=tx.id,
        booking_reference=match.reference,
        namespace=match.namespace,
        payment_type=PaymentType.late_payment,
        payment_status=reservation.payment_status,
        matched_by=matched_by,
        effects=effects,
    )


def _unmatched(tx: IncomingTransaction, match: ReferenceMatch | None, reason: str) -> ReconciliationResult:
    logger.info(
        "sepay.transaction.unmatched",
        transaction_code=tx.transaction_code,
        booking_reference=match.reference if match else None,
        reason=reason,
    )
    return ReconciliationResult(
        ReconciliationOutcome.unmatched,
        tx.transaction_code,
        transaction_id=tx.id,
        booking_reference=match.reference if match else None,
        namespace=match.namespace if match else None,
        note=reason,
    )


def apply_match(
    db: Session,
    tx: IncomingTransaction,
    match: ReferenceMatch | None,
    *,
    matched_by: MatchedBy,
    tolerance: Decimal,
) -> ReconciliationResult:
    """Resolve the referenced reservation and run the payment state machine.

    Stages every write on ``db`` without committing.
    """
    if match is None:
        return _unmatched(tx, None, "no booking reference in description")

    repo = repository_for(db, match.namespace)
    reservation = repo.find_by_reference(match.reference, for_update=True)
    if reservation is None:
        return _unmatched(tx, match, "booking not found")

    if (
        match.is_balance_payment
        and match.namespace == BookingNamespace.glamping
        and reservation.payment_status == PaymentStatus.deposit_paid
    ):
        return _apply_balance_payment(db, tx, repo, reservation, match, matched_by=matched_by, tolerance=tolerance)

    if reservation.payment_status in PAYABLE_STATUSES:
        return _apply_regular_payment(db, tx, repo, reservation, match, matched_by=matched_by, tolerance=tolerance)

    if reservation.status == BookingStatus.cancelled and reservation.payment_status == PaymentStatus.expired:
        return _apply_late_payment(db, tx, repo, reservation, match, matched_by=matched_by)

    return _unmatched(tx, match, f"booking payment_status is {reservation.payment_status.value}")


def reconcile_notification(
    db: Session,
    canonical: CanonicalTransaction,
    *,
    tolerance: Decimal | None = None,
) -> ReconciliationResult:
    """One reconciliation attempt for a normalized Sepay notification.

    Everything (transaction row, reservation, ledger, audit trail) commits
    together. Errors propagate uncommitted; the caller rolls back.
    """
    tolerance = tolerance if tolerance is not None else settings.PAYMENT_AMOUNT_TOLERANCE

    claim = claim_transaction(db, canonical)
    if claim.is_duplicate:
        db.rollback()
        status = claim.duplicate_status.value if claim.duplicate_status else None
        logger.info("sepay.transaction.duplicate", transaction_code=canonical.transaction_code, status=status)
        return ReconciliationResult.duplicate(canonical.transaction_code, status)

    tx = claim.transaction
    if canonical.transfer_type == TransferType.outgoing.value:
        # Money leaving our account is never a customer payment.
        result = _unmatched(tx, None, "outgoing transfer")
    else:
        result = apply_match(db, tx, extract_reference(canonical.description), matched_by=MatchedBy.auto, tolerance=tolerance)

    db.commit()
    return result


def match_transaction_manually(
    db: Session,
    *,
    transaction_id: uuid.UUID,
    booking_reference: str,
    tolerance: Decimal | None = None,
) -> ReconciliationResult:
    """Operator-driven match of a transaction the webhook could not place."""
    tolerance = tolerance if tolerance is not None else settings.PAYMENT_AMOUNT_TOLERANCE

    match = parse_booking_reference(booking_reference)
    if match is None:
        raise ValidationError(f"Invalid booking reference: {booking_reference!r}")

    tx = db.execute(
        select(IncomingTransaction).where(IncomingTransaction.id == transaction_id).with_for_update()
    ).scalar_one_or_none()
    if tx is None:
        db.rollback()
        raise NotFound("Transaction not found")
    if tx.status != TransactionStatus.pending or tx.matched_reservation_id is not None:
        code, status = tx.transaction_code, tx.status.value
        db.rollback()
        raise TransactionAlreadyClaimed(code, status=status)
    if tx.transfer_type == TransferType.outgoing.value:
        code = tx.transaction_code
        db.rollback()
        raise ValidationError(f"Transaction {code} is an outgoing transfer and cannot pay a booking")

    try:
        result = apply_match(db, tx, match, matched_by=MatchedBy.manual, tolerance=tolerance)
    except Exception:
        db.rollback()
        raise
    if result.outcome == ReconciliationOutcome.unmatched:
        db.rollback()
        raise ValidationError(f"Booking {match.reference} cannot take this payment: {result.note}")

    db.commit()
    return result
