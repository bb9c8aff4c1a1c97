from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db.base import AuditMetaMixin, Base, IdMixin


class BankAccount(Base, IdMixin, AuditMetaMixin):
    """Receiving account shown on the VietQR payment screen."""

    __tablename__ = "bank_accounts"

    bank_name: Mapped[str] = mapped_column(String(200), nullable=False)
    bank_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    account_number: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    account_holder: Mapped[str] = mapped_column(String(200), nullable=False)
    is_default: Mapped[bool] = mapped_column(default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)
