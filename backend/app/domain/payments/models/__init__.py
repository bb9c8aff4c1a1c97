from __future__ import annotations

from app.domain.payments.models.transactions import IncomingTransaction
from app.domain.payments.models.webhook_logs import WebhookAlert, WebhookLog

__all__ = ["IncomingTransaction", "WebhookAlert", "WebhookLog"]
