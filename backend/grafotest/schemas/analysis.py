"""
Grafotest API — Pydantic Request/Response Schemas
==================================================

What:  Pydantic models defining the API contract between clients and the backend.
How:   Request models validate incoming bodies; report models describe what
       Gemini is prompted to return and back the optional Result Validator;
       fallback builders produce the fixed payloads returned on failure.
Who:   Used by route handlers, AnalysisService, and the OpenAPI docs.

Field names are camelCase because they are the wire format shared with the
frontend and with the prompt templates.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class AnalyzeRequest(BaseModel):
    """
    Body of POST /analyze.

    imageBase64 is optional at the schema level so that a missing image is
    reported as a 400 validation_error by the service, not a 422.
    """
    imageBase64: Optional[str] = Field(
        default=None,
        description="Base64 image, raw or as a data: URL",
    )
    language: Optional[str] = Field(
        default="id",
        description="Output language: 'en' for English, anything else (or null) for Indonesian",
    )

    @field_validator("language", mode="before")
    @classmethod
    def default_language(cls, v: Any) -> Any:
        return "id" if v is None else v


class ContextualRequest(AnalyzeRequest):
    """Body of POST /analyze-contextual."""
    context: Optional[str] = Field(
        default=None,
        description="Situation the handwriting is scored against (e.g. a job role)",
    )


# ══════════════════════════════════════════════════════════════════════════
# Report Models: what Gemini is prompted to return
# ══════════════════════════════════════════════════════════════════════════


class Trait(BaseModel):
    """One observed handwriting feature and its interpretation."""
    feature: str
    observation: str
    interpretation: str
    confidence: float


class AnalysisReport(BaseModel):
    """Result of POST /analyze."""
    personalitySummary: str
    traits: List[Trait]
    strengths: List[str]
    weaknesses: List[str]
    graphologyBasis: List[str]


class ContextualAssessment(BaseModel):
    """Result of POST /analyze-contextual."""
    suitabilityScore: float
    relevanceExplanation: str
    actionableAdvice: List[str]
    specificRisks: List[str]


# ══════════════════════════════════════════════════════════════════════════
# Fallback Payloads: returned with HTTP 500 when an operation fails
# ══════════════════════════════════════════════════════════════════════════

CONTEXTUAL_FAILURE_MESSAGES = {
    "id": "Terjadi kegagalan analisis kontekstual.",
    "en": "Contextual analysis failed.",
}


def analysis_fallback() -> Dict[str, Any]:
    """Degraded body for POST /analyze."""
    return {"error": "AI analysis failed"}


def contextual_fallback(language: str = "id") -> Dict[str, Any]:
    """Degraded body for POST /analyze-contextual, in the requested language."""
    message = CONTEXTUAL_FAILURE_MESSAGES["en" if language == "en" else "id"]
    return {
        "suitabilityScore": 0,
        "relevanceExplanation": message,
        "actionableAdvice": [],
        "specificRisks": [],
    }


# ══════════════════════════════════════════════════════════════════════════
# Error / Health Models
# ══════════════════════════════════════════════════════════════════════════


class ErrorResponse(BaseModel):
    """
    Standardized error envelope for validation and unexpected errors.

    Fields:
        error: Machine-readable error code (e.g., "validation_error", "not_found")
        message: Human-readable description for display to users
        details: Optional extra context (e.g., which field failed validation)
        request_id: Correlation ID for tracing this error in server logs
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Returned by GET /health for monitoring and load balancer probes."""
    status: str = Field(description="Overall service status: ok, degraded")
    service: str = Field(description="Service name")
    version: str = Field(description="Application version")
    gemini: str = Field(description="Gemini status: available, unconfigured, circuit_open")
    uptime_seconds: float = Field(description="Seconds since service started")
