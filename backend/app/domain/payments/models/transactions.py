from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal

from sqlalchemy import JSON, DateTime, Enum as SAEnum, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db.base import AuditMetaMixin, Base, IdMixin
from app.domain.bookings.enums import BookingNamespace
from app.domain.payments.enums import MatchedBy, TransactionStatus


class IncomingTransaction(Base, IdMixin, AuditMetaMixin):
    """One bank transfer reported by Sepay, keyed by its transaction code.

    The unique ``transaction_code`` is the only idempotency state; duplicate
    deliveries are resolved against this table, never in process memory.
    """

    __tablename__ = "sepay_transactions"

    sepay_transaction_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    transaction_code: Mapped[str] = mapped_column(String(128), nullable=False, unique=True, index=True)

    amount: Mapped[Decimal] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    account_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    bank_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    gateway: Mapped[str | None] = mapped_column(String(100), nullable=True)
    transaction_date: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    transfer_type: Mapped[str | None] = mapped_column(String(8), nullable=True)
    webhook_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    bank_account_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("bank_accounts.id", ondelete="SET NULL"), nullable=True, index=True
    )

    status: Mapped[TransactionStatus] = mapped_column(
        SAEnum(TransactionStatus, name="sepay_transaction_status_enum"),
        nullable=False,
        default=TransactionStatus.pending,
        index=True,
    )
    booking_namespace: Mapped[BookingNamespace | None] = mapped_column(
        SAEnum(BookingNamespace, name="booking_namespace_enum"), nullable=True
    )
    matched_reservation_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True, index=True)
    matched_booking_reference: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)
    matched_by: Mapped[MatchedBy | None] = mapped_column(SAEnum(MatchedBy, name="matched_by_enum"), nullable=True)
    matched_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    match_note: Mapped[str | None] = mapped_column(String(500), nullable=True)

    __table_args__ = (Index("ix_sepay_transactions_status_reservation", "status", "matched_reservation_id"),)
