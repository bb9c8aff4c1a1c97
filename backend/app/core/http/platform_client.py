from __future__ import annotations

from typing import Any

import requests
import structlog

from app.core.config import settings


API_KEY_HEADER = "X-Api-Key"

logger = structlog.get_logger(__name__)


class PlatformClient:
    """Outbound calls to the booking platform (notifications, commissions).

    Every call here is best-effort from the caller's point of view; failures
    surface as ``requests.RequestException`` and are logged by the dispatcher.
    """

    def __init__(self, base_url: str | None = None, api_key: str | None = None, timeout: float | None = None) -> None:
        self.base_url = (base_url if base_url is not None else settings.PLATFORM_API_URL) or None
        self.api_key = api_key if api_key is not None else settings.PLATFORM_API_KEY
        self.timeout = timeout if timeout is not None else settings.PLATFORM_API_TIMEOUT_SECONDS

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers[API_KEY_HEADER] = self.api_key
        return headers

    def post(self, path: str, payload: dict[str, Any]) -> requests.Response | None:
        if not self.enabled:
            logger.info("platform.call.skipped", path=path, reason="PLATFORM_API_URL not configured")
            return None
        url = f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"
        response = requests.post(url, json=payload, headers=self._headers(), timeout=self.timeout)
        response.raise_for_status()
        return response

    def notify_customer(self, customer_id: str, event_type: str, data: dict[str, Any]) -> None:
        self.post("/notifications/customer", {"customer_id": customer_id, "event_type": event_type, "data": data})

    def notify_role(self, role: str, event_type: str, data: dict[str, Any]) -> None:
        self.post("/notifications/role", {"role": role, "event_type": event_type, "data": data})

    def recalculate_commission(self, booking_id: str) -> None:
        self.post(f"/bookings/{booking_id}/commission/recalculate", {})


def get_platform_client() -> PlatformClient:
    return PlatformClient()
