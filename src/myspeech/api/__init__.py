"""
FastAPI REST API Layer for myspeech.

    - routes.py: /api/tts, catalog endpoints, /health, /metrics
    - schemas.py: Request/response Pydantic models
    - dependencies.py: FastAPI dependency injection
"""
