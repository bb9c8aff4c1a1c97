from __future__ import annotations

from fastapi import FastAPI

from app.core.logging import configure_logging
from app.core.middleware.request_id import RequestIdMiddleware
from app.domain.bookings.routes import router as bookings_router
from app.domain.payments.routes.admin import router as payments_admin_router
from app.domain.payments.routes.webhooks import router as webhooks_router


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(title="Glamping Payments - Sepay Reconciliation", version="0.1.0")
    app.add_middleware(RequestIdMiddleware)

    @app.get("/health", tags=["admin"])
    def health() -> dict[str, str]:
        return {"status": "ok"}

    for router in (webhooks_router, payments_admin_router, bookings_router):
        app.include_router(router)
        # The platform's reverse proxy forwards under /api/*; keep both paths live.
        app.include_router(router, prefix="/api")

    return app


app = create_app()
