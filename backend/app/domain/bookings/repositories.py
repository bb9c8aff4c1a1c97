from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal
from typing import Any, ClassVar, Union

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.db.audit import write_audit_event
from app.domain.bookings.enums import (
    SETTLED_LEDGER_STATUSES,
    BookingNamespace,
    BookingStatus,
    LedgerEntryStatus,
    PaymentMethod,
    PaymentStatus,
)
from app.domain.bookings.models.bank_accounts import BankAccount
from app.domain.bookings.models.camping import CampingBooking, CampingBookingPayment
from app.domain.bookings.models.glamping import GlampingBooking, GlampingBookingAdditionalCost, GlampingBookingPayment
from app.shared.utils import sa_model_to_dict


Reservation = Union[CampingBooking, GlampingBooking]
LedgerEntry = Union[CampingBookingPayment, GlampingBookingPayment]


class ReservationRepository:
    """Reservation + payment-ledger access for one booking namespace.

    Writes are staged on the caller's session; committing is the caller's job
    so that a reconciliation attempt lands (or rolls back) as one unit.
    """

    namespace: ClassVar[BookingNamespace]
    booking_model: ClassVar[type]
    payment_model: ClassVar[type]

    def __init__(self, db: Session) -> None:
        self.db = db

    @property
    def entity_type(self) -> str:
        return f"{self.namespace.value}_booking"

    def find_by_reference(self, reference: str, *, for_update: bool = False) -> Reservation | None:
        stmt = select(self.booking_model).where(self.booking_model.booking_code == reference.upper())
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    def sum_paid(self, reservation_id: uuid.UUID) -> Decimal:
        total = self.db.execute(
            select(func.coalesce(func.sum(self.payment_model.amount), 0)).where(
                self.payment_model.booking_id == reservation_id,
                self.payment_model.status.in_(SETTLED_LEDGER_STATUSES),
            )
        ).scalar_one()
        return Decimal(str(total))

    def additional_costs(self, reservation_id: uuid.UUID) -> Decimal:
        return Decimal("0")

    def update_status(
        self,
        reservation: Reservation,
        *,
        action: str,
        payment_status: PaymentStatus | None = None,
        booking_status: BookingStatus | None = None,
        confirmed_at: dt.datetime | None = None,
        has_late_payment: bool | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        before = sa_model_to_dict(reservation)
        if payment_status is not None:
            reservation.payment_status = payment_status
        if booking_status is not None:
            reservation.status = booking_status
        if confirmed_at is not None:
            reservation.confirmed_at = confirmed_at
        if has_late_payment is not None:
            reservation.has_late_payment = has_late_payment
        self.db.flush()

        after = sa_model_to_dict(reservation)
        if context:
            after = {**after, "context": context}
        write_audit_event(
            self.db,
            action=action,
            entity_type=self.entity_type,
            entity_id=reservation.id,
            before=before,
            after=after,
        )

    def find_pending_ledger_entry(self, reservation_id: uuid.UUID) -> LedgerEntry | None:
        return self.db.execute(
            select(self.payment_model)
            .where(
                self.payment_model.booking_id == reservation_id,
                self.payment_model.status == LedgerEntryStatus.pending.value,
            )
            .order_by(self.payment_model.created_at.asc())
            .limit(1)
        ).scalar_one_or_none()

    def record_payment(
        self,
        reservation: Reservation,
        *,
        amount: Decimal,
        transaction_code: str,
        payment_type: str,
        paid_at: dt.datetime,
        notes: str | None = None,
        metadata: dict[str, Any] | None = None,
        complete_pending: bool = False,
    ) -> LedgerEntry:
        """Write the ledger row for a received transfer.

        With ``complete_pending`` a payment row pre-created at booking time is
        completed in place instead of adding a second row for the same money.
        """
        entry = self.find_pending_ledger_entry(reservation.id) if complete_pending else None
        before = sa_model_to_dict(entry) if entry is not None else None
        if entry is None:
            entry = self.payment_model(booking_id=reservation.id)
            self.db.add(entry)

        entry.payment_method = PaymentMethod.bank_transfer.value
        entry.amount = amount
        entry.status = LedgerEntryStatus.paid.value
        entry.payment_type = payment_type
        entry.transaction_reference = transaction_code
        entry.notes = notes
        entry.paid_at = paid_at
        entry.payment_metadata = metadata
        self.db.flush()

        write_audit_event(
            self.db,
            action="booking.payment.recorded",
            entity_type=f"{self.entity_type}_payment",
            entity_id=entry.id,
            before=before,
            after=sa_model_to_dict(entry),
        )
        return entry


class CampingReservationRepository(ReservationRepository):
    namespace = BookingNamespace.camping
    booking_model = CampingBooking
    payment_model = CampingBookingPayment


class GlampingReservationRepository(ReservationRepository):
    namespace = BookingNamespace.glamping
    booking_model = GlampingBooking
    payment_model = GlampingBookingPayment

    def additional_costs(self, reservation_id: uuid.UUID) -> Decimal:
        total = self.db.execute(
            select(
                func.coalesce(
                    func.sum(GlampingBookingAdditionalCost.total_price + GlampingBookingAdditionalCost.tax_amount),
                    0,
                )
            ).where(GlampingBookingAdditionalCost.booking_id == reservation_id)
        ).scalar_one()
        return Decimal(str(total))


_REPOSITORIES: dict[BookingNamespace, type[ReservationRepository]] = {
    BookingNamespace.camping: CampingReservationRepository,
    BookingNamespace.glamping: GlampingReservationRepository,
}


def repository_for(db: Session, namespace: BookingNamespace) -> ReservationRepository:
    return _REPOSITORIES[namespace](db)


def get_bank_account_by_account_number(db: Session, account_number: str) -> BankAccount | None:
    return db.execute(
        select(BankAccount)
        .where(BankAccount.account_number == account_number, BankAccount.is_active.is_(True))
        .limit(1)
    ).scalar_one_or_none()
