"""
Grafotest API — OPTIONS Middleware
===================================

What:  Answers every OPTIONS request with 200 and the allowed methods.
How:   Sits inside CORSMiddleware. Real preflights (Origin plus
       Access-Control-Request-Method) never get here: CORSMiddleware
       answers those itself. Bare OPTIONS requests would otherwise reach
       the router and get 405.
"""

from typing import Dict, Sequence

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp


class OptionsMiddleware(BaseHTTPMiddleware):

    def __init__(
        self,
        app: ASGIApp,
        allow_methods: Sequence[str],
        allow_headers: Sequence[str],
        allow_any_origin: bool = False,
    ):
        super().__init__(app)
        methods = ", ".join(allow_methods)
        self.headers: Dict[str, str] = {
            "Allow": methods,
            "Access-Control-Allow-Methods": methods,
            "Access-Control-Allow-Headers": ", ".join(allow_headers),
        }
        if allow_any_origin:
            self.headers["Access-Control-Allow-Origin"] = "*"

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.method != "OPTIONS":
            return await call_next(request)
        return Response(status_code=200, headers=self.headers)
