from __future__ import annotations

import datetime as dt
import uuid
from collections.abc import Mapping
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.middleware.audit import get_request_id
from app.domain.payments.enums import FAILURE_STATUSES, WebhookStatus, WebhookType
from app.domain.payments.models.webhook_logs import WebhookLog
from app.shared.utils import ensure_utc, utcnow


logger = structlog.get_logger(__name__)

# Only these headers are journaled; auth material never is.
RELEVANT_HEADERS = (
    "content-type",
    "user-agent",
    "x-forwarded-for",
    "x-real-ip",
    "x-request-id",
    "x-sepay-signature",
)


def extract_headers(headers: Mapping[str, str]) -> dict[str, str]:
    lowered = {k.lower(): v for k, v in headers.items()}
    return {name: lowered[name] for name in RELEVANT_HEADERS if name in lowered}


def extract_client_ip(headers: Mapping[str, str], fallback: str | None = None) -> str | None:
    lowered = {k.lower(): v for k, v in headers.items()}
    forwarded = lowered.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return lowered.get("x-real-ip") or fallback


def start_webhook_log(
    db: Session,
    *,
    webhook_type: WebhookType,
    request_headers: dict[str, str] | None,
    request_body: dict[str, Any] | None,
    ip_address: str | None,
    user_agent: str | None,
) -> uuid.UUID:
    """Journal a delivery before anything else happens to it; committed immediately."""
    log = WebhookLog(
        webhook_type=webhook_type.value,
        request_id=get_request_id(),
        request_headers=request_headers,
        request_body=request_body,
        ip_address=ip_address,
        user_agent=user_agent,
        status=WebhookStatus.received.value,
        received_at=utcnow(),
    )
    db.add(log)
    db.commit()
    return log.id


def complete_webhook_log(
    db: Session,
    log_id: uuid.UUID,
    *,
    status: WebhookStatus,
    http_status_code: int,
    response_body: dict[str, Any] | None = None,
    transaction_code: str | None = None,
    booking_reference: str | None = None,
    matched: bool = False,
    match_type: str | None = None,
    error_type: str | None = None,
    error_message: str | None = None,
    error_stack: str | None = None,
) -> None:
    log = db.get(WebhookLog, log_id)
    if log is None:
        logger.warning("webhook_log.missing", log_id=str(log_id))
        return

    completed_at = utcnow()
    log.status = status.value
    log.http_status_code = http_status_code
    log.response_body = response_body
    log.transaction_code = transaction_code
    log.booking_reference = booking_reference
    log.matched = matched
    log.match_type = match_type
    log.error_type = error_type
    log.error_message = error_message
    log.error_stack = error_stack
    log.processing_completed_at = completed_at
    received_at = ensure_utc(log.received_at)
    if received_at is not None:
        log.processing_duration_ms = int((completed_at - received_at).total_seconds() * 1000)
    db.commit()


def log_webhook_error(
    db: Session,
    *,
    webhook_type: WebhookType,
    status: WebhookStatus,
    http_status_code: int,
    error_type: str,
    error_message: str,
    response_body: dict[str, Any] | None = None,
    request_headers: dict[str, str] | None = None,
    request_body: dict[str, Any] | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> uuid.UUID:
    """One-shot journal entry for a delivery rejected before processing started."""
    log_id = start_webhook_log(
        db,
        webhook_type=webhook_type,
        request_headers=request_headers,
        request_body=request_body,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    complete_webhook_log(
        db,
        log_id,
        status=status,
        http_status_code=http_status_code,
        response_body=response_body or {"success": False, "error": error_message},
        error_type=error_type,
        error_message=error_message,
    )
    return log_id


def get_webhook_stats(db: Session, webhook_type: WebhookType, hours: int = 24) -> dict[str, Any]:
    since = utcnow() - dt.timedelta(hours=hours)
    rows = db.execute(
        select(WebhookLog.status, func.count())
        .where(WebhookLog.webhook_type == webhook_type.value, WebhookLog.received_at >= since)
        .group_by(WebhookLog.status)
    ).all()
    by_status = {status: int(count) for status, count in rows}

    matched = db.execute(
        select(func.count())
        .select_from(WebhookLog)
        .where(
            WebhookLog.webhook_type == webhook_type.value,
            WebhookLog.received_at >= since,
            WebhookLog.matched.is_(True),
        )
    ).scalar_one()
    avg_duration = db.execute(
        select(func.avg(WebhookLog.processing_duration_ms)).where(
            WebhookLog.webhook_type == webhook_type.value,
            WebhookLog.received_at >= since,
            WebhookLog.processing_duration_ms.isnot(None),
        )
    ).scalar_one()

    total = sum(by_status.values())
    failures = sum(by_status.get(s.value, 0) for s in FAILURE_STATUSES)
    return {
        "webhook_type": webhook_type.value,
        "window_hours": hours,
        "total": total,
        "by_status": by_status,
        "failures": failures,
        "matched": int(matched or 0),
        "success_rate": round((total - failures) / total, 4) if total else None,
        "avg_processing_ms": round(float(avg_duration), 1) if avg_duration is not None else None,
    }


def _recent_failures_stmt(webhook_type: WebhookType, minutes: int):
    since = utcnow() - dt.timedelta(minutes=minutes)
    return select(WebhookLog).where(
        WebhookLog.webhook_type == webhook_type.value,
        WebhookLog.status.in_([s.value for s in FAILURE_STATUSES]),
        WebhookLog.received_at >= since,
    )


def get_recent_failure_count(db: Session, webhook_type: WebhookType, minutes: int = 5) -> int:
    stmt = _recent_failures_stmt(webhook_type, minutes)
    return int(db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one())


def get_recent_error_messages(db: Session, webhook_type: WebhookType, minutes: int = 5, limit: int = 5) -> list[str]:
    stmt = _recent_failures_stmt(webhook_type, minutes).order_by(WebhookLog.received_at.desc()).limit(limit)
    return [log.error_message or log.status for log in db.execute(stmt).scalars().all()]
