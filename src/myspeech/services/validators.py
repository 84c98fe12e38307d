"""
Input Validation for the Speech Service.

Runs before the catalog lookup so a malformed request never touches the
filesystem.

Validation Rules:
    - Text: Required, non-blank, at most 5000 characters after trimming
    - Voice ID: Required, at most 100 characters

Error codes follow the {FIELD}_REQUIRED / {FIELD}_TOO_LONG pattern:
    TEXT_REQUIRED, TEXT_TOO_LONG, VOICE_REQUIRED, VOICE_TOO_LONG

Usage:
    from myspeech.services.validators import validate_text, ValidationError

    try:
        text = validate_text(request.text)
    except ValidationError as e:
        return error_response(e.code, e.message)
"""
from __future__ import annotations

from typing import Any

from myspeech.core.config import Defaults


class ValidationError(Exception):
    """
    Raised when input validation fails.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code.
    """

    def __init__(self, message: str, code: str = "VALIDATION_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


def validate_text(text: Any, max_length: int = Defaults.TEXT_MAX_CHARS) -> str:
    """
    Validate and trim text input.

    Length is counted in characters (code points) after trimming.

    Returns:
        The trimmed text.

    Raises:
        ValidationError: If text is missing, not a string, blank or too long.
    """
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("Text is required and must be a non-empty string", "TEXT_REQUIRED")

    text = text.strip()

    if len(text) > max_length:
        raise ValidationError(
            f"Text exceeds maximum length ({len(text)} > {max_length})",
            "TEXT_TOO_LONG",
        )

    return text


def validate_voice_id(voice_id: Any, max_length: int = Defaults.VOICE_ID_MAX_CHARS) -> str:
    """Validate a voice identifier. Existence is checked by the service."""
    if not isinstance(voice_id, str) or not voice_id.strip():
        raise ValidationError("Voice is required", "VOICE_REQUIRED")

    voice_id = voice_id.strip()

    if len(voice_id) > max_length:
        raise ValidationError(
            f"Voice ID exceeds maximum length ({len(voice_id)} > {max_length})",
            "VOICE_TOO_LONG",
        )

    return voice_id
