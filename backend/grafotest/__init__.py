"""
Grafotest API — Application Package Initializer
================================================

Architecture Note:
    This backend follows a layered architecture:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← Orchestration, extraction
    ├─────────────────────────────────────┤
    │            Schemas (Data)           │  ← Pydantic request/report models
    ├─────────────────────────────────────┤
    │        Gemini (Upstream Model)      │  ← google-generativeai SDK
    └─────────────────────────────────────┘

    Nothing is persisted: every value lives for one request.
"""

__version__ = "1.0.0"
