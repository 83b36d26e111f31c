# Routes package init
"""
Grafotest API — API Routes Package
===================================

Route Inventory:
    - analyze.py:  POST /analyze             (graphology report)
                   POST /analyze-contextual  (suitability against a context)
    - health.py:   GET  /health              (service health check)

Routes are thin: parse the body, call AnalysisService, return its result.
Errors are formatted by the global handlers in main.py.
"""
