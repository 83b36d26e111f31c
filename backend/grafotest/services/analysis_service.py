"""
Grafotest API — Analysis Service (Business Logic Orchestrator)
===============================================================

What:  Runs both analysis operations: validate input → build prompt → call
       the LLM → assemble text → extract JSON → (validate shape) → result.
How:   One shared pipeline (_run) used by analyze() and analyze_contextual().
       Every failure after input validation is logged with the request ID
       and re-raised as AnalysisFailedError carrying the operation's fallback.
Who:   Called by route handlers through FastAPI dependency injection.

Orchestration Flow:
    ┌──────────┐    ┌─────────────┐    ┌──────────────┐    ┌────────────┐
    │  Route   │───▶│  Validate   │───▶│  Gemini API  │───▶│  Extract   │
    │          │    │  & Prompt   │    │  (fragments) │    │  JSON      │
    └──────────┘    └─────────────┘    └──────────────┘    └────────────┘

Error Recovery:
    Missing fields        → ValidationError (400), Gemini is not called
    Gemini failure        → AnalysisFailedError (500, fallback)
    Empty Gemini text     → AnalysisFailedError (500, fallback), extractor skipped
    No / invalid JSON     → AnalysisFailedError (500, fallback)
    Schema mismatch       → AnalysisFailedError (500, fallback), strict mode only
    Anything unexpected   → AnalysisFailedError (500, fallback), stack trace logged
"""

import logging
from typing import Any, Callable, Dict, Optional, Type

from pydantic import BaseModel

from grafotest.exceptions import (
    AnalysisFailedError,
    CircuitBreakerOpenError,
    EmptyResponseError,
    ExtractionError,
    LLMServiceError,
    ResultValidationError,
    ValidationError,
)
from grafotest.middleware.request_id import request_id_var
from grafotest.schemas.analysis import (
    AnalysisReport,
    AnalyzeRequest,
    ContextualAssessment,
    ContextualRequest,
    analysis_fallback,
    contextual_fallback,
)
from grafotest.services.json_extractor import assemble_text, extract_json
from grafotest.services.llm_base import LLMService
from grafotest.services.prompts import build_analysis_prompt, build_contextual_prompt
from grafotest.services.result_validator import validate_result

logger = logging.getLogger(__name__)

# Longest slice of raw model text written to the log on extraction failure
RAW_TEXT_LOG_LIMIT = 500

ANALYZE = "analyze"
ANALYZE_CONTEXTUAL = "analyze-contextual"

_ABSORBED_ERRORS = (
    LLMServiceError,
    CircuitBreakerOpenError,
    ResultValidationError,
)


def failure_kind(error: Exception) -> str:
    """Short name of what went wrong, as reported in the access log."""
    if isinstance(error, ExtractionError):
        return error.reason.value
    if isinstance(error, EmptyResponseError):
        return "upstream-empty"
    if isinstance(error, LLMServiceError):
        return "upstream-error"
    if isinstance(error, CircuitBreakerOpenError):
        return "circuit-open"
    if isinstance(error, ResultValidationError):
        return "schema-mismatch"
    return "unexpected"


class AnalysisService:
    """
    Business logic for the two handwriting analysis operations.

    Stateless apart from its collaborators: the LLM service and the
    strict-validation switch are fixed at construction.
    """

    def __init__(self, llm: LLMService, strict_validation: bool = False):
        self.llm = llm
        self.strict_validation = strict_validation

    async def analyze(self, request: AnalyzeRequest) -> Any:
        """
        Unconditioned handwriting analysis.

        Returns:
            The JSON value Gemini produced (normally an AnalysisReport dict).

        Raises:
            ValidationError: imageBase64 missing or empty.
            AnalysisFailedError: Any later failure; fallback {"error": ...}.
        """
        if not request.imageBase64:
            raise ValidationError(message="Image is required", field="imageBase64")

        return await self._run(
            operation=ANALYZE,
            prompt=build_analysis_prompt(request.language),
            image_base64=request.imageBase64,
            schema=AnalysisReport,
            fallback=analysis_fallback,
        )

    async def analyze_contextual(self, request: ContextualRequest) -> Any:
        """
        Handwriting analysis scored against a caller-supplied context.

        Raises:
            ValidationError: imageBase64 or context missing or empty.
            AnalysisFailedError: Any later failure; fallback is a
                zero-score ContextualAssessment in the request language.
        """
        if not request.imageBase64 or not request.context:
            missing = "imageBase64" if not request.imageBase64 else "context"
            raise ValidationError(
                message="imageBase64 dan context wajib diisi",
                field=missing,
            )

        return await self._run(
            operation=ANALYZE_CONTEXTUAL,
            prompt=build_contextual_prompt(request.context, request.language),
            image_base64=request.imageBase64,
            schema=ContextualAssessment,
            fallback=lambda: contextual_fallback(request.language),
        )

    async def _run(
        self,
        operation: str,
        prompt: str,
        image_base64: str,
        schema: Type[BaseModel],
        fallback: Callable[[], Dict[str, Any]],
    ) -> Any:
        rid = request_id_var.get("")

        try:
            fragments = await self.llm.generate(prompt, image_base64)
            raw_text = assemble_text(fragments)
            if not raw_text:
                raise EmptyResponseError(context={"fragments": len(fragments)})

            result = extract_json(raw_text)
            if self.strict_validation:
                validate_result(result, schema)
            return result

        except ExtractionError as e:
            logger.warning(
                "[%s] %s: %s (%s); raw text: %r",
                rid,
                operation,
                e.message,
                e.reason.value,
                e.raw_text[:RAW_TEXT_LOG_LIMIT],
            )
            raise AnalysisFailedError(
                operation, fallback(), failure_kind(e), context=e.context
            ) from e

        except _ABSORBED_ERRORS as e:
            logger.error(
                "[%s] %s failed: %s | Context: %s",
                rid,
                operation,
                e.message,
                e.context,
            )
            raise AnalysisFailedError(
                operation, fallback(), failure_kind(e), context=e.context
            ) from e

        except Exception as e:
            logger.error(
                "[%s] Unexpected error in %s: %s",
                rid,
                operation,
                str(e),
                exc_info=True,
            )
            raise AnalysisFailedError(
                operation,
                fallback(),
                failure_kind(e),
                context={"error_type": type(e).__name__},
            ) from e


# ── Singleton Wiring ──────────────────────────────────────────────────────

_analysis_service: Optional[AnalysisService] = None


def get_analysis_service() -> AnalysisService:
    """
    FastAPI dependency returning the shared AnalysisService.

    Built on first use so that importing this module does not construct the
    Gemini client; tests replace it via app.dependency_overrides.
    """
    global _analysis_service
    if _analysis_service is None:
        from grafotest.config import settings
        from grafotest.services.gemini_service import gemini_service

        _analysis_service = AnalysisService(
            llm=gemini_service,
            strict_validation=settings.strict_result_validation,
        )
    return _analysis_service
