from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal

from sqlalchemy import JSON, Date, DateTime, Enum as SAEnum, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.domain.bookings.enums import BookingStatus, LedgerEntryStatus, PaymentMethod, PaymentStatus


class ReservationMixin:
    """Columns shared by camping and glamping bookings.

    Reservations are created by the booking flow; reconciliation only reads
    the amounts and moves the status columns forward.
    """

    booking_code: Mapped[str] = mapped_column(String(16), unique=True, index=True, nullable=False)
    customer_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True, index=True)
    guest_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    guest_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    check_in_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    check_out_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)

    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    deposit_due: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    status: Mapped[BookingStatus] = mapped_column(
        SAEnum(BookingStatus, name="booking_status_enum"),
        nullable=False,
        default=BookingStatus.pending,
        index=True,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(PaymentStatus, name="booking_payment_status_enum"),
        nullable=False,
        default=PaymentStatus.pending,
        index=True,
    )
    confirmed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_expires_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    has_late_payment: Mapped[bool] = mapped_column(default=False, nullable=False)


class LedgerEntryMixin:
    """One money movement against a reservation. Rows are never deleted."""

    payment_method: Mapped[str] = mapped_column(String(32), nullable=False, default=PaymentMethod.bank_transfer.value)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="VND")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=LedgerEntryStatus.pending.value, index=True)
    payment_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    transaction_reference: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    notes: Mapped[str | None] = mapped_column(String(255), nullable=True)
    paid_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_metadata: Mapped[dict | None] = mapped_column(JSON, nullable=True)
