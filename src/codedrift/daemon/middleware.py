"""HTTP middleware binding a correlation id to every request."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from codedrift.core.logging import clear_request_id, set_request_id
from codedrift.events.webhooks import DELIVERY_HEADER

REQUEST_ID_HEADER = "X-Request-Id"

# Type alias for the call_next function
CallNext = Callable[[Request], Awaitable[Response]]


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Use the webhook delivery id (or X-Request-Id, or a fresh id) as the log correlation id."""

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        request_id = set_request_id(request.headers.get(DELIVERY_HEADER) or request.headers.get(REQUEST_ID_HEADER))
        try:
            response = await call_next(request)
        finally:
            clear_request_id()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
