"""
FastAPI Dependency Injection Providers.

    get_settings()        - Loads and caches application configuration
    get_speech_service()  - Returns the singleton SpeechService

Tests replace the service with ``app.dependency_overrides[get_speech_service]``
or by passing one to ``create_app(service=...)``.
"""
from __future__ import annotations

from functools import lru_cache

from myspeech.core.config import Settings, load_settings_or_default
from myspeech.services.speech_service import SpeechService, get_service


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache application settings.

    Reads $MYSPEECH_SETTINGS or config/settings.yaml; defaults if absent.
    """
    return load_settings_or_default()


def get_speech_service() -> SpeechService:
    """The process-wide SpeechService, created on first use."""
    return get_service(get_settings())
