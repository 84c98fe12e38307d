"""
Error Codes and Exceptions.

Every error that reaches a caller is a SpeechError carrying a stable code,
so the API can map it to an HTTP status and clients can branch on it:

    INVALID_INPUT    -> 400  text or voice failed validation
    VOICE_NOT_FOUND  -> 404  voice id not in the catalog
    STORAGE_ERROR    -> 500  output directory not writable / listable
    CANCELLED        -> 499  client went away during the engine attempt
    INTERNAL_ERROR   -> 500  anything else

Engine failures are not in this list: a missing, failing or slow engine is
absorbed by the fallback synthesizer and never surfaces as an error.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ErrorCode:
    """Standardized error codes for API responses."""
    INVALID_INPUT = "INVALID_INPUT"
    VOICE_NOT_FOUND = "VOICE_NOT_FOUND"
    STORAGE_ERROR = "STORAGE_ERROR"
    CANCELLED = "CANCELLED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


HTTP_STATUS = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.VOICE_NOT_FOUND: 404,
    ErrorCode.STORAGE_ERROR: 500,
    ErrorCode.CANCELLED: 499,
    ErrorCode.INTERNAL_ERROR: 500,
}


class SpeechError(Exception):
    """
    Base exception for myspeech errors.

    Attributes:
        message: Human-readable error message.
        code: Error code from ErrorCode.
        details: Optional dictionary with additional context.
    """
    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    @property
    def http_status(self) -> int:
        return HTTP_STATUS.get(self.code, 500)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the standardized error response body."""
        result: Dict[str, Any] = {
            "success": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class InvalidInputError(SpeechError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.INVALID_INPUT, details)


class VoiceNotFoundError(SpeechError):
    def __init__(self, voice_id: str, details: Optional[Dict] = None):
        self.voice_id = voice_id
        super().__init__(f"Voice not found: {voice_id}", ErrorCode.VOICE_NOT_FOUND, details)


class StorageError(SpeechError):
    """The output directory can't be written or listed."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.STORAGE_ERROR, details)


class GenerationCancelled(SpeechError):
    """The caller's cancel token fired while an engine was running."""
    def __init__(self, message: str = "Generation cancelled", details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.CANCELLED, details)
