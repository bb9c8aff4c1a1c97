from __future__ import annotations

import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.middleware.audit import clear_request_context, set_request_id


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tags every request (and every log line it produces) with X-Request-ID."""

    def __init__(self, app, header_name: str = "X-Request-ID") -> None:
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        clear_request_context()
        request_id = request.headers.get(self.header_name) or str(uuid.uuid4())
        set_request_id(request_id)
        response = await call_next(request)
        response.headers[self.header_name] = request_id
        return response
