"""
Grafotest API — FastAPI Application Factory
============================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn to start the server (uvicorn grafotest.main:app).
When:  Once at server startup; the returned app handles all subsequent requests.

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware Chain:                                  │
    │  ┌────────┐ ┌─────────┐ ┌──────┐ ┌──────┐ ┌───────┐ │
    │  │ Req ID │→│ Logging │→│ GZip │→│ CORS │→│OPTIONS│ │
    │  └────────┘ └─────────┘ └──────┘ └──────┘ └───────┘ │
    │                                                     │
    │  Routes:                                            │
    │  ┌──────────────┐ ┌─────────────────────┐ ┌───────┐ │
    │  │ POST /analyze│ │POST /analyze-context│ │/health│ │
    │  └──────────────┘ └─────────────────────┘ └───────┘ │
    │                                                     │
    │  Exception Handlers:                                │
    │  ┌──────────────────────────────────────────────┐   │
    │  │ ValidationError→400 │ AnalysisFailed→500     │   │
    │  └──────────────────────────────────────────────┘   │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Initialize logging
    2. Validate configuration (logged, not fatal: /health stays reachable)
    Shutdown:
    1. Log shutdown complete
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from grafotest import __version__
from grafotest.config import settings
from grafotest.exceptions import AnalysisFailedError, ValidationError
from grafotest.middleware.logging import (
    OUTCOME_FALLBACK,
    OUTCOME_REJECTED,
    RequestLoggingMiddleware,
    mark_outcome,
)
from grafotest.middleware.preflight import OptionsMiddleware
from grafotest.middleware.request_id import RequestIDMiddleware, request_id_var
from grafotest.routes import analyze, health

logger = logging.getLogger(__name__)

CORS_METHODS = ["GET", "POST", "OPTIONS"]
CORS_HEADERS = ["Content-Type"]


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the entire application.

    Called once during app startup, before any other initialization.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    """
    log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
        force=True,
    )

    # Third-party libraries that log every operation
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("google").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: logging and config validation. Shutdown: log only."""
    setup_logging()
    logger.info("=" * 60)
    logger.info("%s %s starting up...", settings.service_name, __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Not fatal: health checks keep answering and analysis requests
        # return their fallback payloads until the key is set.
        logger.error("Configuration error: %s", str(e))
        logger.error("Fix the configuration and restart the server.")

    logger.info("Gemini model: %s", settings.gemini_model)
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("API docs: http://%s:%d/docs", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("%s shutting down...", settings.service_name)
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

# Pydantic error types meaning the body as a whole is unusable
_BODY_ERROR_TYPES = {"json_invalid", "model_attributes_type", "model_type", "dict_type"}


def _is_body_level(error: Dict[str, Any]) -> bool:
    return error.get("type") in _BODY_ERROR_TYPES or tuple(error.get("loc", ())) == ("body",)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register global exception handlers for consistent error responses.

    Handler hierarchy:
        ValidationError         → 400 Bad Request (client can fix the input)
        RequestValidationError  → 400 Bad Request (not a JSON object, or a field
                                  has the wrong type)
        AnalysisFailedError     → 500, body is the operation's fallback payload
        HTTPException           → its own status (e.g. 404 for unknown paths)
        Exception (fallback)    → 500 Internal Server Error (unexpected errors)

    No handler exposes internal details (stack traces, upstream error text)
    in the response. Details are logged server-side.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        """Client sent invalid input; tell them what is wrong."""
        rid = request_id_var.get("")
        logger.warning("[%s] Validation error: %s", rid, exc.message)
        mark_outcome(request, OUTCOME_REJECTED, failure=exc.field)
        return JSONResponse(
            status_code=400,
            content={
                "error": "validation_error",
                "message": exc.message,
                "details": exc.context,
                "request_id": rid,
            },
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        """Body could not be parsed into the request model."""
        rid = request_id_var.get("")
        errors = exc.errors()
        logger.warning("[%s] Malformed request body: %d errors", rid, len(errors))

        if any(_is_body_level(error) for error in errors):
            return JSONResponse(
                status_code=400,
                content={
                    "error": "validation_error",
                    "message": "Request body must be a JSON object",
                    "request_id": rid,
                },
            )
        fields = sorted({".".join(str(part) for part in error["loc"][1:]) for error in errors})
        return JSONResponse(
            status_code=400,
            content={
                "error": "validation_error",
                "message": "Invalid request body",
                "details": {"fields": fields},
                "request_id": rid,
            },
        )

    @app.exception_handler(AnalysisFailedError)
    async def handle_analysis_failed(request: Request, exc: AnalysisFailedError):
        """Operation failed; already logged by AnalysisService."""
        mark_outcome(request, OUTCOME_FALLBACK, failure=exc.failure)
        return JSONResponse(status_code=500, content=exc.fallback)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        """Unknown path, wrong method, and other routing errors."""
        rid = request_id_var.get("")
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": "not_found" if exc.status_code == 404 else "http_error",
                "message": str(exc.detail),
                "request_id": rid,
            },
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        """Catch-all for truly unexpected errors. Stack trace is logged only."""
        rid = request_id_var.get("")
        logger.error(
            "[%s] Unexpected error: %s",
            rid,
            str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please try again or contact support.",
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns: Fully configured FastAPI instance ready to receive requests.
    """
    app = FastAPI(
        title="Grafotest API",
        description=(
            "Handwriting analysis using Google Gemini. Send a base64 image of a "
            "handwriting sample and receive a structured graphology report, "
            "optionally scored against a context."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Middleware executes in REVERSE order of addition:
    # RequestID → Logging → GZip → CORS → OPTIONS → route

    origins = settings.cors_origins_list
    app.add_middleware(
        OptionsMiddleware,
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
        allow_any_origin="*" in origins,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # Browsers reject credentials with a wildcard origin
        allow_credentials="*" not in origins,
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
        expose_headers=["X-Request-ID"],
    )

    # Don't compress small responses
    app.add_middleware(GZipMiddleware, minimum_size=500)

    app.add_middleware(RequestLoggingMiddleware)

    # Outermost: every log line below carries the request ID
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(analyze.router)
    app.include_router(health.router)

    return app


# uvicorn expects `grafotest.main:app` to be importable
app = create_app()
