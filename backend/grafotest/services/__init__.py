# Services package init
"""
Grafotest API — Services Layer
===============================

Service Inventory:
    - LLMService (abstract): Interface for the upstream generation call
    - GeminiService: Concrete implementation using Google Gemini
    - json_extractor: Recovers a JSON value from raw model text
    - result_validator: Optional schema check of the extracted value
    - prompts: Instruction templates for both operations
    - AnalysisService: Orchestrates validate → prompt → generate → extract
"""
