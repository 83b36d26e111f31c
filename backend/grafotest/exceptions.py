"""
Grafotest API — Custom Exception Hierarchy
===========================================

What:  Application-specific exceptions for each failure mode of an analysis
       request.
How:   Each exception carries a message and optional context dict.
       Global exception handlers (registered in main.py) turn them into
       JSON responses; the context is logged, never returned.
Who:   Raised by services and the JSON extractor; caught by the analysis
       service or the global handlers.

Exception Hierarchy:
    GrafotestError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── LLMServiceError          → upstream Gemini call failed
    │   └── EmptyResponseError   → upstream returned no text
    ├── CircuitBreakerOpenError  → upstream short-circuited
    ├── ExtractionError          → no JSON found / JSON parse error
    ├── ResultValidationError    → JSON does not match the report schema
    └── AnalysisFailedError      → 500 with the operation's fallback body

Everything except ValidationError is absorbed by AnalysisService and
re-raised as AnalysisFailedError, so a client only ever sees the
operation-specific fallback payload.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class GrafotestError(Exception):
    """
    Base exception for all Grafotest application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(GrafotestError):
    """
    Raised when the request body is missing a required field.

    HTTP: 400 Bad Request

    Example response:
        {
            "error": "validation_error",
            "message": "Image is required",
            "details": {"field": "imageBase64"}
        }
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class LLMServiceError(GrafotestError):
    """
    Raised when the Gemini call fails: HTTP error, timeout, SDK error, or a
    missing API key. Raised after tenacity retries are exhausted.
    """

    def __init__(
        self,
        message: str = "AI analysis service is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class EmptyResponseError(LLMServiceError):
    """Gemini answered, but the joined candidate text is empty."""

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(message="Empty Gemini response", context=context)


class CircuitBreakerOpenError(GrafotestError):
    """
    Raised when the circuit breaker is in OPEN state.

    How circuit breaker works:
        CLOSED (normal) → failures increment counter
        → After N failures → OPEN (reject all calls for recovery_time seconds)
        → After recovery_time → HALF-OPEN (allow one test call)
        → If test succeeds → CLOSED
        → If test fails → OPEN again
    """

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"AI service is temporarily unavailable due to repeated failures. "
            f"The service will automatically retry in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class ExtractionFailureReason(str, Enum):
    """Why a structured value could not be recovered from model text."""
    NO_JSON_FOUND = "no-json-found"
    PARSE_ERROR = "parse-error"


class ExtractionError(GrafotestError):
    """
    Raised by extract_json() when model text holds no usable JSON.

    Attributes:
        reason:    NO_JSON_FOUND (no brace pair) or PARSE_ERROR (brace-delimited
                   substring is not valid JSON)
        raw_text:  The original model text, for server-side diagnostics only
    """

    def __init__(self, reason: ExtractionFailureReason, raw_text: str):
        if reason is ExtractionFailureReason.NO_JSON_FOUND:
            message = "No JSON found in Gemini output"
        else:
            message = "Invalid JSON in Gemini output"
        super().__init__(
            message=message,
            context={"reason": reason.value, "raw_length": len(raw_text)},
        )
        self.reason = reason
        self.raw_text = raw_text


class ResultValidationError(GrafotestError):
    """Extracted JSON does not match the expected report schema."""

    def __init__(self, schema: str, errors: List[Dict[str, Any]]):
        super().__init__(
            message=f"Gemini output does not match the {schema} schema",
            context={"schema": schema, "errors": errors},
        )
        self.schema = schema
        self.errors = errors


class AnalysisFailedError(GrafotestError):
    """
    Raised by AnalysisService when an operation cannot produce a result.

    HTTP: 500, body is exactly `fallback`.

    Attributes:
        operation:  "analyze" or "analyze-contextual"
        fallback:   The operation-specific degraded payload
        failure:    Short failure kind for the access log (e.g. "parse-error",
                    "upstream-empty", "circuit-open")
    """

    def __init__(
        self,
        operation: str,
        fallback: Dict[str, Any],
        failure: str = "unexpected",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = dict(context or {})
        ctx["operation"] = operation
        ctx["failure"] = failure
        super().__init__(message=f"{operation} failed", context=ctx)
        self.operation = operation
        self.fallback = fallback
        self.failure = failure
