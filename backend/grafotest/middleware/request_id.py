"""
Grafotest API — Request ID Middleware
======================================

What:  Assigns a short correlation ID to each request and echoes it back.
How:   Reuses the client's X-Request-ID header when it is a plain token,
       otherwise generates one; stores it in a ContextVar and request.state,
       and sets the X-Request-ID response header.
Who:   Applied to every request; read by the access log, the exception
       handlers and AnalysisService when they log.

Client-supplied IDs end up verbatim in log lines, so anything outside
[A-Za-z0-9._-] or longer than 64 characters is replaced, not echoed.
"""

import re
import uuid
from contextvars import ContextVar
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

_CLIENT_ID_PATTERN = re.compile(r"[A-Za-z0-9._-]{1,64}")

# Coroutine-local: concurrent requests on one event loop each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def resolve_request_id(header_value: Optional[str]) -> str:
    """The client's ID if it is a safe token, else the first 8 chars of a UUID4."""
    if header_value and _CLIENT_ID_PATTERN.fullmatch(header_value):
        return header_value
    return uuid.uuid4().hex[:8]


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Outermost middleware: every later log line can carry the ID."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))

        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = rid
        return response
