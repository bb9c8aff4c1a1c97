from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from app.domain.bookings.enums import BookingNamespace
from app.domain.payments.enums import MatchedBy, TransactionStatus


class SepayTransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    transaction_code: str
    sepay_transaction_id: str | None
    amount: Decimal
    description: str
    account_number: str | None
    bank_name: str | None
    transaction_date: dt.datetime
    transfer_type: str | None

    status: TransactionStatus
    booking_namespace: BookingNamespace | None
    matched_booking_reference: str | None
    matched_by: MatchedBy | None
    matched_at: dt.datetime | None
    match_note: str | None
    created_at: dt.datetime | None = None


class ManualMatchRequest(BaseModel):
    booking_reference: str = Field(min_length=10, max_length=32)


class ManualMatchOut(BaseModel):
    success: bool = True
    transaction_id: uuid.UUID
    transaction_code: str
    booking_reference: str
    booking_type: BookingNamespace
    outcome: str
    payment_type: str | None
    payment_status: str | None
    note: str | None = None
