from __future__ import annotations

import datetime as dt
import hashlib
import hmac
import json
from dataclasses import dataclass

import pydantic
import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.domain.bookings.repositories import get_bank_account_by_account_number
from app.domain.payments.enums import TransactionStatus
from app.domain.payments.models.transactions import IncomingTransaction
from app.domain.payments.schemas.webhook import CanonicalTransaction, SepayWebhookPayload
from app.shared.exceptions import InvalidSignature, TransactionAlreadyClaimed, WebhookValidationError
from app.shared.utils import utcnow


logger = structlog.get_logger(__name__)


def compute_signature(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes, signature: str | None, secret: str | None) -> None:
    """HMAC-SHA256 over the exact bytes received.

    Without a configured secret nothing is checked. With one, a missing or
    different signature is rejected.
    """
    if not secret:
        return
    if not signature:
        raise InvalidSignature("Missing webhook signature")
    expected = compute_signature(raw_body, secret).encode("ascii")
    # Header values are latin-1 decoded; compare as bytes.
    received = signature.strip().lower().encode("utf-8", errors="replace")
    if not hmac.compare_digest(expected, received):
        raise InvalidSignature("Webhook signature verification failed")


def _parse_transferred_at(value: str | None) -> dt.datetime:
    if not value:
        return utcnow()
    try:
        parsed = dt.datetime.fromisoformat(value.strip())
    except ValueError:
        logger.warning("sepay.transaction_date.unparseable", value=value)
        return utcnow()
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone(dt.timedelta(hours=settings.SEPAY_UTC_OFFSET_HOURS)))
    return parsed


def decode_body(raw_body: bytes) -> dict:
    try:
        body = json.loads(raw_body or b"")
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise WebhookValidationError(f"Malformed JSON body: {exc}") from exc
    if not isinstance(body, dict):
        raise WebhookValidationError("Webhook body must be a JSON object")
    return body


def normalize_payload(body: dict) -> CanonicalTransaction:
    """Collapse the legacy and production payload shapes into one record."""
    try:
        payload = SepayWebhookPayload.model_validate(body)
    except pydantic.ValidationError as exc:
        raise WebhookValidationError(f"Invalid webhook payload: {exc.error_count()} field error(s)") from exc

    fields = payload.canonical_fields()
    missing = [name for name in ("amount", "description") if not fields[name]]
    if missing:
        raise WebhookValidationError(f"Missing required fields: {', '.join(missing)}")
    if fields["amount"] < 0:
        raise WebhookValidationError("amount must be positive")
    if not fields["transaction_code"]:
        raise WebhookValidationError("Missing transaction identifier")

    return CanonicalTransaction(
        transaction_code=fields["transaction_code"],
        amount=fields["amount"],
        description=fields["description"],
        transferred_at=_parse_transferred_at(fields["transaction_date"]),
        vendor_id=fields["vendor_id"],
        account_number=fields["account_number"],
        gateway=fields["gateway"],
        bank_label=fields["bank_label"],
        transfer_type=fields["transfer_type"],
        raw=body,
    )


def parse_notification(raw_body: bytes) -> CanonicalTransaction:
    return normalize_payload(decode_body(raw_body))


@dataclass(frozen=True)
class ClaimResult:
    transaction: IncomingTransaction | None
    is_retry: bool = False
    duplicate_status: TransactionStatus | None = None

    @property
    def is_duplicate(self) -> bool:
        return self.transaction is None


def _find_by_code(db: Session, transaction_code: str, *, for_update: bool = False) -> IncomingTransaction | None:
    stmt = select(IncomingTransaction).where(IncomingTransaction.transaction_code == transaction_code)
    if for_update:
        stmt = stmt.with_for_update()
    return db.execute(stmt).scalar_one_or_none()


def _apply_payload(tx: IncomingTransaction, canonical: CanonicalTransaction, bank_account_id) -> None:
    tx.sepay_transaction_id = canonical.vendor_id
    tx.amount = canonical.amount
    tx.description = canonical.description
    tx.account_number = canonical.account_number
    tx.bank_name = canonical.bank_label
    tx.gateway = canonical.gateway
    tx.transaction_date = canonical.transferred_at
    tx.transfer_type = canonical.transfer_type
    tx.webhook_data = canonical.raw
    tx.bank_account_id = bank_account_id


def claim_transaction(db: Session, canonical: CanonicalTransaction) -> ClaimResult:
    """Insert the delivery as ``pending`` or pick up an unmatched retry.

    Runs inside the caller's transaction. A row that already reached a terminal
    state, or already points at a reservation, short-circuits as a duplicate.
    """
    bank_account_id = None
    if canonical.account_number:
        account = get_bank_account_by_account_number(db, canonical.account_number)
        if account is None:
            logger.warning("sepay.bank_account.unknown", account_number=canonical.account_number)
        else:
            bank_account_id = account.id

    existing = _find_by_code(db, canonical.transaction_code, for_update=True)
    if existing is not None:
        if existing.status == TransactionStatus.pending and existing.matched_reservation_id is None:
            _apply_payload(existing, canonical, bank_account_id)
            db.flush()
            logger.info("sepay.transaction.retry", transaction_code=canonical.transaction_code)
            return ClaimResult(transaction=existing, is_retry=True)
        return ClaimResult(transaction=None, duplicate_status=existing.status)

    tx = IncomingTransaction(transaction_code=canonical.transaction_code, status=TransactionStatus.pending)
    _apply_payload(tx, canonical, bank_account_id)
    db.add(tx)
    try:
        db.flush()
    except IntegrityError as exc:
        # A concurrent delivery inserted the same code between our read and write.
        db.rollback()
        winner = _find_by_code(db, canonical.transaction_code)
        raise TransactionAlreadyClaimed(
            canonical.transaction_code, status=winner.status.value if winner else None
        ) from exc
    logger.info("sepay.transaction.recorded", transaction_code=canonical.transaction_code)
    return ClaimResult(transaction=tx)
