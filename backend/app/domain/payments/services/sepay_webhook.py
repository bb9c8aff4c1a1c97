from __future__ import annotations

import json
import traceback
from dataclasses import dataclass, field
from typing import Any

import structlog
from sqlalchemy.orm import Session

from app.core.config import settings
from app.domain.payments.enums import WebhookStatus, WebhookType
from app.domain.payments.services.ingress import parse_notification, verify_signature
from app.domain.payments.services.reconciliation import ReconciliationResult, reconcile_notification
from app.domain.payments.services.webhook_alerts import check_and_alert_webhook_failure
from app.domain.payments.services.webhook_logs import complete_webhook_log, log_webhook_error, start_webhook_log
from app.services.notifications import PostCommitEffect
from app.shared.exceptions import InvalidSignature, TransactionAlreadyClaimed, WebhookValidationError


logger = structlog.get_logger(__name__)

MAX_LOGGED_RAW_BODY = 10_000


@dataclass(frozen=True)
class DeliveryContext:
    headers: dict[str, str]
    signature: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass
class WebhookResponse:
    status_code: int
    body: dict[str, Any]
    effects: list[PostCommitEffect] = field(default_factory=list)


def _loggable_body(raw_body: bytes) -> dict[str, Any]:
    try:
        parsed = json.loads(raw_body or b"")
    except (UnicodeDecodeError, json.JSONDecodeError):
        return {"raw": raw_body[:MAX_LOGGED_RAW_BODY].decode("utf-8", errors="replace")}
    return parsed if isinstance(parsed, dict) else {"raw": parsed}


def _reject(
    db: Session,
    log_id,
    *,
    status: WebhookStatus,
    http_status_code: int,
    error: str,
    exc: Exception,
) -> WebhookResponse:
    body = {"success": False, "error": error}
    complete_webhook_log(
        db,
        log_id,
        status=status,
        http_status_code=http_status_code,
        response_body=body,
        error_type=type(exc).__name__,
        error_message=str(exc),
        error_stack=traceback.format_exc(),
    )
    effects = check_and_alert_webhook_failure(db, WebhookType.sepay, str(exc))
    return WebhookResponse(http_status_code, body, effects)


def _reject_unprocessed(
    db: Session,
    raw_body: bytes,
    ctx: DeliveryContext,
    *,
    status: WebhookStatus,
    http_status_code: int,
    error: str,
    exc: Exception,
) -> WebhookResponse:
    body = {"success": False, "error": error}
    log_webhook_error(
        db,
        webhook_type=WebhookType.sepay,
        status=status,
        http_status_code=http_status_code,
        error_type=type(exc).__name__,
        error_message=str(exc),
        response_body=body,
        request_headers=ctx.headers,
        request_body=_loggable_body(raw_body),
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    effects = check_and_alert_webhook_failure(db, WebhookType.sepay, str(exc))
    return WebhookResponse(http_status_code, body, effects)


def handle_sepay_delivery(db: Session, raw_body: bytes, ctx: DeliveryContext) -> WebhookResponse:
    """Authenticate, normalize and reconcile one Sepay delivery.

    Every delivery is journaled in ``webhook_logs``. Payment state is only
    touched once signature and payload checks pass. Notifications come back
    in ``effects`` for the caller to run after the response is sent.
    """
    try:
        verify_signature(raw_body, ctx.signature, settings.SEPAY_SECRET_KEY)
    except InvalidSignature as exc:
        logger.warning("sepay.webhook.invalid_signature", ip_address=ctx.ip_address, error=str(exc))
        return _reject_unprocessed(
            db, raw_body, ctx, status=WebhookStatus.invalid_signature, http_status_code=401, error="Invalid signature", exc=exc
        )

    try:
        canonical = parse_notification(raw_body)
    except WebhookValidationError as exc:
        logger.warning("sepay.webhook.validation_error", error=str(exc))
        return _reject_unprocessed(
            db, raw_body, ctx, status=WebhookStatus.validation_error, http_status_code=400, error=str(exc), exc=exc
        )

    log_id = start_webhook_log(
        db,
        webhook_type=WebhookType.sepay,
        request_headers=ctx.headers,
        request_body=_loggable_body(raw_body),
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    logger.info(
        "sepay.webhook.received",
        transaction_code=canonical.transaction_code,
        amount=str(canonical.amount),
        description=canonical.description,
        transfer_type=canonical.transfer_type,
    )

    try:
        result = reconcile_notification(db, canonical)
    except TransactionAlreadyClaimed as exc:
        db.rollback()
        logger.info("sepay.transaction.claimed_concurrently", transaction_code=exc.transaction_code)
        result = ReconciliationResult.duplicate(exc.transaction_code, exc.status)
    except Exception as exc:  # noqa: BLE001 - reported to Sepay as 500 and journaled
        db.rollback()
        logger.exception("sepay.webhook.failed", transaction_code=canonical.transaction_code)
        return _reject(db, log_id, status=WebhookStatus.failed, http_status_code=500, error="Internal server error", exc=exc)

    body = result.response_body()
    match_type = result.match_type
    complete_webhook_log(
        db,
        log_id,
        status=WebhookStatus.duplicate if body.get("duplicate") else WebhookStatus.success,
        http_status_code=200,
        response_body=body,
        transaction_code=result.transaction_code,
        booking_reference=result.booking_reference,
        matched=result.matched,
        match_type=match_type.value if match_type else None,
    )
    return WebhookResponse(200, body, result.effects)
