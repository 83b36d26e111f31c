"""
Grafotest API — Analysis Route Handlers
========================================

What:  POST /analyze and POST /analyze-contextual.
How:   Parse the JSON body, delegate to AnalysisService, return the
       extracted JSON unchanged with HTTP 200.
Who:   Called by the frontend with a base64 handwriting image.

Error responses (handled by global exception handlers):
    HTTP 400: Required field missing (ValidationError)
    HTTP 500: Operation fallback body (AnalysisFailedError)
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from grafotest.middleware.logging import OUTCOME_OK, mark_outcome
from grafotest.schemas.analysis import (
    AnalysisReport,
    AnalyzeRequest,
    ContextualAssessment,
    ContextualRequest,
    ErrorResponse,
)
from grafotest.services.analysis_service import (
    ANALYZE,
    ANALYZE_CONTEXTUAL,
    AnalysisService,
    get_analysis_service,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Analysis"])


@router.post(
    "/analyze",
    responses={
        200: {"description": "Graphology report", "model": AnalysisReport},
        400: {"description": "Image missing", "model": ErrorResponse},
        500: {"description": 'Analysis failed: {"error": "AI analysis failed"}'},
    },
    summary="Analyze a handwriting sample",
)
async def analyze(
    body: AnalyzeRequest,
    request: Request,
    service: AnalysisService = Depends(get_analysis_service),
) -> Any:
    logger.info(
        "Received analyze request: language=%s, image=%d chars",
        body.language,
        len(body.imageBase64 or ""),
    )
    request.state.operation = ANALYZE
    result = await service.analyze(body)
    mark_outcome(request, OUTCOME_OK)
    # JSONResponse keeps the model's payload exactly as extracted
    return JSONResponse(content=result)


@router.post(
    "/analyze-contextual",
    responses={
        200: {"description": "Suitability assessment", "model": ContextualAssessment},
        400: {"description": "Image or context missing", "model": ErrorResponse},
        500: {"description": "Analysis failed: zero-score assessment", "model": ContextualAssessment},
    },
    summary="Score a handwriting sample against a context",
)
async def analyze_contextual(
    body: ContextualRequest,
    request: Request,
    service: AnalysisService = Depends(get_analysis_service),
) -> Any:
    logger.info(
        "Received contextual request: language=%s, image=%d chars, context=%d chars",
        body.language,
        len(body.imageBase64 or ""),
        len(body.context or ""),
    )
    request.state.operation = ANALYZE_CONTEXTUAL
    result = await service.analyze_contextual(body)
    mark_outcome(request, OUTCOME_OK)
    return JSONResponse(content=result)
