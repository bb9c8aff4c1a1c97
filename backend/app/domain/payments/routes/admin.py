from __future__ import annotations

import uuid

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session
from structlog.contextvars import bound_contextvars

from app.core.db.session import get_db
from app.core.http.platform_client import PlatformClient, get_platform_client
from app.core.security.auth import Actor
from app.core.security.dependencies import get_actor, require_staff
from app.domain.payments.enums import TransactionStatus, WebhookType
from app.domain.payments.models.transactions import IncomingTransaction
from app.domain.payments.schemas.admin import ManualMatchOut, ManualMatchRequest, SepayTransactionOut
from app.domain.payments.services.reconciliation import match_transaction_manually
from app.domain.payments.services.webhook_alerts import get_all_webhook_alert_status, reset_webhook_alert
from app.domain.payments.services.webhook_logs import get_webhook_stats
from app.services.notifications import run_post_commit_effects
from app.shared.exceptions import NotFound, TransactionAlreadyClaimed, ValidationError


router = APIRouter(prefix="/admin", tags=["Payments Admin"], dependencies=[Depends(require_staff())])


@router.get("/sepay-transactions", response_model=list[SepayTransactionOut])
def list_sepay_transactions(
    status: TransactionStatus | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    stmt = select(IncomingTransaction)
    if status is not None:
        stmt = stmt.where(IncomingTransaction.status == status)
    stmt = stmt.order_by(IncomingTransaction.transaction_date.desc()).limit(limit)
    return list(db.execute(stmt).scalars().all())


@router.post("/sepay-transactions/{transaction_id}/match", response_model=ManualMatchOut)
def match_sepay_transaction(
    transaction_id: uuid.UUID,
    payload: ManualMatchRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    client: PlatformClient = Depends(get_platform_client),
    actor: Actor = Depends(get_actor),
):
    try:
        # Sync routes run in a worker thread; rebind the actor so audit rows carry it.
        with bound_contextvars(actor_id=actor.actor_id, actor_roles=[r.value for r in actor.roles]):
            result = match_transaction_manually(
                db, transaction_id=transaction_id, booking_reference=payload.booking_reference
            )
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except TransactionAlreadyClaimed as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if result.effects:
        background_tasks.add_task(run_post_commit_effects, result.effects, client)

    return ManualMatchOut(
        transaction_id=transaction_id,
        transaction_code=result.transaction_code,
        booking_reference=result.booking_reference,
        booking_type=result.namespace,
        outcome=result.outcome.value,
        payment_type=result.payment_type.value if result.payment_type else None,
        payment_status=result.payment_status.value if result.payment_status else None,
        note=result.note,
    )


@router.get("/webhooks/alerts")
def list_webhook_alerts(db: Session = Depends(get_db)) -> list[dict]:
    return get_all_webhook_alert_status(db)


@router.get("/webhooks/{webhook_type}/stats")
def webhook_stats(
    webhook_type: WebhookType,
    hours: int = Query(default=24, ge=1, le=24 * 30),
    db: Session = Depends(get_db),
) -> dict:
    return get_webhook_stats(db, webhook_type, hours=hours)


@router.post("/webhooks/{webhook_type}/alerts/reset")
def reset_webhook_alerts(webhook_type: WebhookType, db: Session = Depends(get_db)) -> dict:
    reset = reset_webhook_alert(db, webhook_type)
    return {"success": True, "webhook_type": webhook_type.value, "reset": reset}
