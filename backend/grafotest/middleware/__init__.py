# Middleware package init
"""
Grafotest API — Middleware Package
===================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (order matters!):
    Request → [Request ID] → [Logging] → [GZip] → [CORS] → [OPTIONS] → Route Handler

    1. Request ID: Correlation ID for logging and tracing
    2. Logging: Access log line with status, duration and analysis outcome
    3. GZip / CORS: FastAPI built-ins (CORS answers real preflights)
    4. OPTIONS: 200 for any other OPTIONS request
"""
