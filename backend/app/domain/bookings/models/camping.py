from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db.base import AuditMetaMixin, Base, IdMixin
from app.domain.bookings.models.base import LedgerEntryMixin, ReservationMixin


class CampingBooking(Base, IdMixin, ReservationMixin, AuditMetaMixin):
    __tablename__ = "camping_bookings"


class CampingBookingPayment(Base, IdMixin, LedgerEntryMixin, AuditMetaMixin):
    __tablename__ = "camping_booking_payments"

    booking_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("camping_bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )

    __table_args__ = (Index("ix_camping_payments_booking_status", "booking_id", "status"),)
