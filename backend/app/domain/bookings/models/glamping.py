from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db.base import AuditMetaMixin, Base, IdMixin
from app.domain.bookings.models.base import LedgerEntryMixin, ReservationMixin


class GlampingBooking(Base, IdMixin, ReservationMixin, AuditMetaMixin):
    __tablename__ = "glamping_bookings"


class GlampingBookingPayment(Base, IdMixin, LedgerEntryMixin, AuditMetaMixin):
    __tablename__ = "glamping_booking_payments"

    booking_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("glamping_bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )

    __table_args__ = (Index("ix_glamping_payments_booking_status", "booking_id", "status"),)


class GlampingBookingAdditionalCost(Base, IdMixin, AuditMetaMixin):
    """Extra line items (meals, late checkout...) added after the booking was placed."""

    __tablename__ = "glamping_booking_additional_costs"

    booking_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("glamping_bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
