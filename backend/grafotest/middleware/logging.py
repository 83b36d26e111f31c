"""
Grafotest API — Request Logging Middleware
===========================================

What:  One access-log line per HTTP request: method, path, status, duration,
       and for analysis routes the operation and how it ended.
How:   Measures time around call_next and picks the level from the status
       class (5xx ERROR, 4xx WARNING, otherwise INFO). Route handlers and
       exception handlers leave the analysis outcome on request.state,
       which shares the ASGI scope with this middleware.
When:  Inside RequestIDMiddleware, so the request ID is already set.

Outcomes:
    ok        the model's JSON was returned (200)
    rejected  required input missing (400)
    fallback  the operation's fallback payload was returned (500); the
              failure kind (e.g. parse-error, LLMServiceError) is logged too

Request bodies are never logged: they carry the full base64 image.
"""

import logging
import time
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from grafotest.middleware.request_id import request_id_var

logger = logging.getLogger("grafotest.access")

OUTCOME_OK = "ok"
OUTCOME_REJECTED = "rejected"
OUTCOME_FALLBACK = "fallback"


def mark_outcome(request: Request, outcome: str, failure: Optional[str] = None) -> None:
    """
    Record how an analysis request ended, for the access log.

    The route handler names the operation (request.state.operation) before
    calling AnalysisService; the outcome is set by whoever builds the response.
    """
    request.state.outcome = outcome
    request.state.failure = failure


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Typical durations:
        - POST /analyze, /analyze-contextual: 2000-10000ms (Gemini dominates)
        - 400 rejections and 404s: under 5ms
    """

    # Probed every few seconds by load balancers
    SKIPPED_PATHS = {"/health"}

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in self.SKIPPED_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        rid = request_id_var.get("")
        client_ip = request.client.host if request.client else "unknown"
        operation = getattr(request.state, "operation", None)
        outcome = getattr(request.state, "outcome", None)
        failure = getattr(request.state, "failure", None)

        message = "%s %s %d %.1fms [%s] from %s"
        args = [request.method, path, status, duration_ms, rid, client_ip]
        if operation:
            message += " op=%s outcome=%s"
            args += [operation, outcome]
            if failure:
                message += " failure=%s"
                args.append(failure)

        logger.log(
            log_level,
            message,
            *args,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
                "operation": operation,
                "outcome": outcome,
                "failure": failure,
            },
        )

        return response
