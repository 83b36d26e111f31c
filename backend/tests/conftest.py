"""
Grafotest API — Test Configuration (conftest.py)
=================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixtures (function-scoped):
    ├── mock_llm: AsyncMock implementing LLMService.generate / health_check
    ├── analysis_service: AnalysisService wired to mock_llm
    ├── sample_image_base64: Tiny JPEG as a data: URL
    ├── sample_report / sample_assessment: Well-formed model answers
    └── test_client: HTTPX AsyncClient with AnalysisService overridden
"""

import os

# Override settings for testing BEFORE any grafotest imports
os.environ["GEMINI_API_KEY"] = "test-key-not-real"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RETRY_MAX_ATTEMPTS"] = "1"
os.environ["STRICT_RESULT_VALIDATION"] = "false"

import base64
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from grafotest.services.analysis_service import AnalysisService, get_analysis_service
from grafotest.services.llm_base import LLMService


@pytest.fixture
def mock_llm():
    """
    LLMService double. Set `mock_llm.generate.return_value` to the list of
    fragments the fake model should answer with, or `side_effect` to an
    exception.
    """
    llm = MagicMock(spec=LLMService)
    llm.generate = AsyncMock(return_value=[])
    llm.health_check = AsyncMock(return_value=True)
    return llm


@pytest.fixture
def analysis_service(mock_llm):
    return AnalysisService(llm=mock_llm)


@pytest.fixture
def sample_image_base64():
    """Minimal JPEG (SOI + JFIF header + EOI) as a data: URL."""
    jpeg = (
        b'\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00'
        b'\xff\xd9'
    )
    return "data:image/jpeg;base64," + base64.b64encode(jpeg).decode("ascii")


@pytest.fixture
def sample_report():
    return {
        "personalitySummary": "Teliti dan sistematis.",
        "traits": [
            {
                "feature": "slant",
                "observation": "Kemiringan ke kanan",
                "interpretation": "Ekspresif",
                "confidence": 0.7,
            }
        ],
        "strengths": ["teliti", "konsisten", "fokus"],
        "weaknesses": ["kaku", "lambat", "perfeksionis"],
        "graphologyBasis": ["slant", "pressure", "spacing"],
    }


@pytest.fixture
def sample_assessment():
    return {
        "suitabilityScore": 72,
        "relevanceExplanation": "ok",
        "actionableAdvice": ["a", "b"],
        "specificRisks": ["r"],
    }


@pytest_asyncio.fixture
async def test_client(analysis_service):
    """
    HTTPX AsyncClient talking to the FastAPI app through ASGITransport,
    with the AnalysisService dependency replaced by one using mock_llm.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    from grafotest.main import app

    app.dependency_overrides[get_analysis_service] = lambda: analysis_service
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
