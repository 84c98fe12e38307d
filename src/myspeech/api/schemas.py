"""
API Request/Response Schemas.

Pydantic models for the /api endpoints. Field constraints are deliberately
loose: text length and voice checks live in services/validators.py so the
HTTP API and the CLI reject the same inputs with the same error codes.

Example Request:
    {
        "text": "Hello world",
        "voice": "piper_en_amy"
    }

Example Response:
    {
        "success": true,
        "audioUrl": "/audio/speech_3f9a0c12be47.wav",
        "duration": 0.77,
        "voice": {"id": "piper_en_amy", "name": "Amy", "engine": "piper",
                  "language": "en-US", "gender": "female", "quality": "high"},
        "metadata": {"textLength": 11, "sampleRate": 22050,
                     "generatedAt": "2026-01-01T12:00:00.000000Z", "source": "fallback"}
    }
"""
from __future__ import annotations

from pydantic import BaseModel, Field


class TTSRequest(BaseModel):
    """
    POST /api/tts body.

    Attributes:
        text: Text to synthesize, 1-5000 characters after trimming.
        voice: Catalog voice id. Omitted means the configured default voice.
    """
    text: str | None = Field(
        default=None,
        description="Text to synthesize (1-5000 characters)",
    )
    voice: str | None = Field(
        default=None,
        description="Voice ID from GET /api/voices",
    )


class VoiceSummary(BaseModel):
    id: str
    name: str
    engine: str
    language: str
    gender: str
    quality: str


class TTSMetadata(BaseModel):
    textLength: int
    sampleRate: int
    generatedAt: str
    source: str


class TTSResponse(BaseModel):
    success: bool = True
    audioUrl: str
    duration: float
    voice: VoiceSummary
    metadata: TTSMetadata


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    message: str
