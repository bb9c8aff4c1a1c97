from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.db.session import get_db
from app.domain.bookings.enums import BookingNamespace
from app.domain.bookings.repositories import repository_for
from app.domain.payments.models.transactions import IncomingTransaction


router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.get("/code/{booking_code}/payment-status")
def booking_payment_status(booking_code: str, db: Session = Depends(get_db)) -> dict:
    """Polled by the payment page while the guest completes the transfer."""
    namespace = BookingNamespace.from_reference(booking_code)
    if namespace is None:
        raise HTTPException(status_code=404, detail="Booking not found")

    repo = repository_for(db, namespace)
    reservation = repo.find_by_reference(booking_code)
    if reservation is None:
        raise HTTPException(status_code=404, detail="Booking not found")

    tx = db.execute(
        select(IncomingTransaction)
        .where(
            IncomingTransaction.matched_reservation_id == reservation.id,
            IncomingTransaction.booking_namespace == namespace,
        )
        .order_by(IncomingTransaction.matched_at.desc())
        .limit(1)
    ).scalar_one_or_none()

    return {
        "booking_code": reservation.booking_code,
        "booking_type": namespace.value,
        "status": reservation.status.value,
        "payment_status": reservation.payment_status.value,
        "has_late_payment": reservation.has_late_payment,
        "total_amount": str(reservation.total_amount),
        "deposit_due": str(reservation.deposit_due) if reservation.deposit_due is not None else None,
        "amount_paid": str(repo.sum_paid(reservation.id)),
        "payment_expires_at": reservation.payment_expires_at.isoformat() if reservation.payment_expires_at else None,
        "transaction": (
            {
                "transaction_code": tx.transaction_code,
                "amount": str(tx.amount),
                "status": tx.status.value,
                "matched_at": tx.matched_at.isoformat() if tx.matched_at else None,
            }
            if tx is not None
            else None
        ),
    }
