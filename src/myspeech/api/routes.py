"""
myspeech API Routes.

Endpoints:
    POST /api/tts             - Generate speech, returns the artifact URL
    GET  /api/voices          - List voices (?language=&engine=&gender=)
    GET  /api/voices/{id}     - One voice with its engine and language info
    GET  /api/engines         - Engines with voice counts and handler status
    GET  /api/languages       - Languages with voice counts and engines
    GET  /health              - Service health for probes
    GET  /metrics             - Prometheus metrics

Error Handling:
    Errors are JSON with a stable code:
    {
        "success": false,
        "error": "<ERROR_CODE>",
        "message": "<human readable message>"
    }

    HTTP status codes are mapped from SpeechError codes:
        - INVALID_INPUT -> 400 Bad Request
        - VOICE_NOT_FOUND -> 404 Not Found
        - STORAGE_ERROR -> 500 Internal Server Error
        - CANCELLED -> 499 (client closed the connection)
        - INTERNAL_ERROR -> 500 Internal Server Error

Cancellation:
    Generation runs in the threadpool. While it runs, the route polls the
    connection; if the client disconnects the cancel token is set and the
    engine process is killed.

Example Usage:
    curl -X POST http://localhost:8000/api/tts \\
        -H "Content-Type: application/json" \\
        -d '{"text": "Hello world", "voice": "piper_en_amy"}'
"""
from __future__ import annotations

import asyncio
import threading
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from myspeech.api.dependencies import get_speech_service
from myspeech.api.schemas import ErrorResponse, TTSRequest, TTSResponse
from myspeech.core.logging import error, get_logger, set_request_id
from myspeech.core.metrics import metrics
from myspeech.errors import ErrorCode, SpeechError, VoiceNotFoundError
from myspeech.services.speech_service import SpeechService

router = APIRouter()

_LOG = get_logger("myspeech.api")

# Seconds between client-disconnect checks while a generation runs
DISCONNECT_POLL_S = 0.25


def _error_response(err: SpeechError) -> JSONResponse:
    return JSONResponse(status_code=err.http_status, content=err.to_dict())


@router.post(
    "/api/tts",
    response_model=TTSResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def create_speech(
    req: TTSRequest,
    request: Request,
    service: SpeechService = Depends(get_speech_service),
):
    """
    Generate speech for ``text`` with ``voice``.

    Always answers with an artifact URL for a valid request: when the voice's
    engine is missing or fails, the fallback synthesizer produces the audio
    and ``metadata.source`` says "fallback".
    """
    rid = str(uuid.uuid4())[:12]
    set_request_id(rid)

    voice_id = req.voice or service.config.synthesis.default_voice
    cancel = threading.Event()
    task = asyncio.ensure_future(run_in_threadpool(service.generate, req.text, voice_id, cancel))

    try:
        while not task.done():
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_S)
            if done:
                break
            if not cancel.is_set() and await request.is_disconnected():
                cancel.set()
        result = task.result()

    except SpeechError as e:
        return _error_response(e)

    except Exception as e:
        error(_LOG, "tts_unhandled", exc_info=True, error=str(e))
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": ErrorCode.INTERNAL_ERROR,
                "message": "Failed to generate audio",
                "request_id": rid,
            },
        )

    return result.to_response()


@router.get("/api/voices")
def list_voices(
    language: Optional[str] = None,
    engine: Optional[str] = None,
    gender: Optional[str] = None,
    service: SpeechService = Depends(get_speech_service),
):
    """Voices matching the filters; ``language=en`` also matches ``en-US``."""
    catalog = service.catalog
    voices = catalog.filter(language=language, engine=engine, gender=gender)
    return {
        "success": True,
        "total": len(voices),
        "voices": [v.to_dict() for v in voices],
        "languages": dict(catalog.languages),
        "engines": dict(catalog.engines),
    }


@router.get("/api/voices/{voice_id}")
def get_voice(voice_id: str, service: SpeechService = Depends(get_speech_service)):
    catalog = service.catalog
    voice = catalog.lookup(voice_id)
    if voice is None:
        return _error_response(VoiceNotFoundError(voice_id))
    return {
        "success": True,
        "voice": {
            **voice.to_dict(),
            "engineInfo": catalog.engine_info(voice.engine),
            "languageInfo": catalog.language_info(voice.language),
        },
    }


@router.get("/api/engines")
def list_engines(service: SpeechService = Depends(get_speech_service)):
    """
    Engines described in the catalog, with voice counts.

    ``available`` is true when a handler is registered for the engine; voices
    of unavailable engines are still served through the fallback.
    """
    stats = service.catalog.engine_stats()
    for engine_id, entry in stats.items():
        entry["available"] = service.registry.is_registered(engine_id)
    return {"success": True, "total": len(stats), "engines": stats}


@router.get("/api/languages")
def list_languages(service: SpeechService = Depends(get_speech_service)):
    stats = service.catalog.language_stats()
    return {"success": True, "total": len(stats), "languages": stats}


@router.get("/health")
def health(service: SpeechService = Depends(get_speech_service)):
    """Health check for load balancers and orchestration."""
    return service.get_health_info()


@router.get("/metrics")
def prometheus_metrics():
    """Prometheus text-format metrics."""
    content, content_type = metrics.get_metrics_response()
    return Response(content=content, media_type=content_type)
