from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.domain.payments.enums import WebhookType
from app.domain.payments.models.webhook_logs import WebhookAlert
from app.domain.payments.services.webhook_logs import get_recent_error_messages, get_recent_failure_count
from app.services.notifications import PostCommitEffect
from app.shared.utils import ensure_utc, utcnow


logger = structlog.get_logger(__name__)

CONSECUTIVE_FAILURES = "consecutive_failures"
ALERT_ROLES = ("admin", "operations")


@dataclass(frozen=True)
class AlertCheck:
    should_alert: bool
    failure_count: int
    cooldown_until: dt.datetime | None = None


def _get_alert(db: Session, webhook_type: WebhookType, alert_type: str = CONSECUTIVE_FAILURES) -> WebhookAlert | None:
    return db.execute(
        select(WebhookAlert).where(WebhookAlert.webhook_type == webhook_type.value, WebhookAlert.alert_type == alert_type)
    ).scalar_one_or_none()


def check_webhook_alert(db: Session, webhook_type: WebhookType, *, now: dt.datetime | None = None) -> AlertCheck:
    now = now or utcnow()
    failures = get_recent_failure_count(db, webhook_type, minutes=settings.WEBHOOK_ALERT_WINDOW_MINUTES)

    alert = _get_alert(db, webhook_type)
    cooldown_until = ensure_utc(alert.alert_cooldown_until) if alert else None
    if cooldown_until is not None and cooldown_until > now:
        return AlertCheck(False, failures, cooldown_until)

    return AlertCheck(failures >= settings.WEBHOOK_ALERT_FAILURE_THRESHOLD, failures, cooldown_until)


def _record_alert_sent(db: Session, webhook_type: WebhookType, failure_count: int, errors: list[str], now: dt.datetime) -> None:
    alert = _get_alert(db, webhook_type)
    if alert is None:
        alert = WebhookAlert(webhook_type=webhook_type.value, alert_type=CONSECUTIVE_FAILURES)
        db.add(alert)
    alert.failure_count = failure_count
    alert.last_alert_sent_at = now
    alert.alert_cooldown_until = now + dt.timedelta(minutes=settings.WEBHOOK_ALERT_COOLDOWN_MINUTES)
    alert.alert_metadata = {"recent_errors": errors, "window_minutes": settings.WEBHOOK_ALERT_WINDOW_MINUTES}
    db.commit()


def check_and_alert_webhook_failure(
    db: Session,
    webhook_type: WebhookType,
    error_message: str | None = None,
) -> list[PostCommitEffect]:
    """Call after a failed delivery has been journaled.

    Returns the staff notifications to fan out; the cooldown is committed
    before they are returned so a burst of failures raises one alert.
    """
    now = utcnow()
    check = check_webhook_alert(db, webhook_type, now=now)
    if not check.should_alert:
        return []

    errors = get_recent_error_messages(db, webhook_type, minutes=settings.WEBHOOK_ALERT_WINDOW_MINUTES)
    _record_alert_sent(db, webhook_type, check.failure_count, errors, now)
    logger.error(
        "webhook.alert.raised",
        webhook_type=webhook_type.value,
        failure_count=check.failure_count,
        last_error=error_message,
    )

    data = {
        "webhook_type": webhook_type.value,
        "failure_count": check.failure_count,
        "window_minutes": settings.WEBHOOK_ALERT_WINDOW_MINUTES,
        "recent_errors": errors,
        "last_error": error_message,
    }
    return [PostCommitEffect.role(role, "webhook_failure_alert", data) for role in ALERT_ROLES]


def reset_webhook_alert(db: Session, webhook_type: WebhookType) -> bool:
    alert = _get_alert(db, webhook_type)
    if alert is None:
        return False
    alert.failure_count = 0
    alert.alert_cooldown_until = None
    db.commit()
    logger.info("webhook.alert.reset", webhook_type=webhook_type.value)
    return True


def _alert_out(alert: WebhookAlert, now: dt.datetime) -> dict[str, Any]:
    cooldown_until = ensure_utc(alert.alert_cooldown_until)
    last_sent = ensure_utc(alert.last_alert_sent_at)
    return {
        "webhook_type": alert.webhook_type,
        "alert_type": alert.alert_type,
        "failure_count": alert.failure_count,
        "last_alert_sent_at": last_sent.isoformat() if last_sent else None,
        "alert_cooldown_until": cooldown_until.isoformat() if cooldown_until else None,
        "in_cooldown": bool(cooldown_until and cooldown_until > now),
        "metadata": alert.alert_metadata or {},
    }


def get_all_webhook_alert_status(db: Session) -> list[dict[str, Any]]:
    now = utcnow()
    alerts = db.execute(select(WebhookAlert).order_by(WebhookAlert.webhook_type, WebhookAlert.alert_type)).scalars().all()
    return [_alert_out(alert, now) for alert in alerts]
