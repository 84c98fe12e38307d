"""
myspeech Services Layer.

Sits between the API/CLI and the engines, fallback and storage.

Components:
    - speech_service.py: SpeechService (dispatch and fallback orchestrator)
    - validators.py: Input validation functions
"""
from myspeech.errors import (
    ErrorCode,
    GenerationCancelled,
    InvalidInputError,
    SpeechError,
    StorageError,
    VoiceNotFoundError,
)

from .speech_service import GenerationResult, SpeechService, get_service, reset_service

__all__ = [
    "SpeechService",
    "GenerationResult",
    "get_service",
    "reset_service",
    "SpeechError",
    "InvalidInputError",
    "VoiceNotFoundError",
    "StorageError",
    "GenerationCancelled",
    "ErrorCode",
]
