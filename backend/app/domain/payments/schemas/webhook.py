from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict


class SepayWebhookPayload(BaseModel):
    """Raw Sepay notification.

    Production deliveries use camelCase (``transferAmount``, ``content``...);
    the older test harness posts snake_case fields. Both are accepted here and
    collapsed by ``canonical_fields`` so nothing downstream sees the aliases.
    """

    model_config = ConfigDict(extra="allow")

    id: int | str | None = None

    # Production format
    referenceCode: str | int | None = None
    transferAmount: Decimal | None = None
    content: str | None = None
    accountNumber: str | int | None = None
    gateway: str | None = None
    transactionDate: str | None = None
    transferType: str | None = None

    # Legacy / test format
    transaction_code: str | int | None = None
    amount: Decimal | None = None
    description: str | None = None
    account_number: str | int | None = None
    bank_name: str | None = None
    transaction_date: str | None = None

    def canonical_fields(self) -> dict[str, Any]:
        vendor_id = str(self.id) if self.id is not None else None
        code = self.referenceCode or self.transaction_code
        if code:
            transaction_code = str(code)
        elif vendor_id:
            transaction_code = f"SEPAY-{vendor_id}"
        else:
            transaction_code = None
        account = self.accountNumber or self.account_number
        return {
            "vendor_id": vendor_id,
            "transaction_code": transaction_code,
            "amount": self.transferAmount or self.amount,
            "description": self.content or self.description,
            "account_number": str(account) if account else None,
            "gateway": self.gateway,
            "bank_label": self.gateway or self.bank_name or "sepay",
            "transaction_date": self.transactionDate or self.transaction_date,
            "transfer_type": (self.transferType or "").lower() or None,
        }


@dataclass(frozen=True)
class CanonicalTransaction:
    transaction_code: str
    amount: Decimal
    description: str
    transferred_at: dt.datetime
    vendor_id: str | None = None
    account_number: str | None = None
    gateway: str | None = None
    bank_label: str = "sepay"
    transfer_type: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)
