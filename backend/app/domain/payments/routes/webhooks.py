from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.db.session import get_db
from app.core.http.platform_client import PlatformClient, get_platform_client
from app.domain.payments.services.sepay_webhook import DeliveryContext, handle_sepay_delivery
from app.domain.payments.services.webhook_logs import extract_client_ip, extract_headers
from app.services.notifications import run_post_commit_effects
from app.shared.utils import utcnow


router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/sepay")
async def sepay_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    client: PlatformClient = Depends(get_platform_client),
):
    # The signature covers the exact bytes; read them before anything parses the body.
    raw_body = await request.body()
    ctx = DeliveryContext(
        headers=extract_headers(request.headers),
        signature=request.headers.get(settings.SEPAY_SIGNATURE_HEADER),
        ip_address=extract_client_ip(request.headers, request.client.host if request.client else None),
        user_agent=request.headers.get("user-agent"),
    )
    outcome = await run_in_threadpool(handle_sepay_delivery, db, raw_body, ctx)
    if outcome.effects:
        background_tasks.add_task(run_post_commit_effects, outcome.effects, client)
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)


@router.get("/sepay")
def sepay_webhook_health() -> dict[str, str]:
    return {
        "status": "ok",
        "message": "Sepay webhook endpoint is active",
        "timestamp": utcnow().isoformat(),
    }
