"""
FastAPI Application Entry Point.

Creates the myspeech app: API routes, static serving of generated audio
under the configured public prefix (default /audio), and JSON error bodies
for malformed requests.

Usage:
    # Run with uvicorn
    uvicorn myspeech.main:app --host 0.0.0.0 --port 8000

    # Or the console script
    myspeech-server --port 8000
"""

from __future__ import annotations

import argparse
from contextlib import asynccontextmanager
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from myspeech import __version__
from myspeech.api.dependencies import get_speech_service
from myspeech.api.routes import router
from myspeech.core.logging import configure_logging, get_logger, info
from myspeech.errors import ErrorCode
from myspeech.services.speech_service import SpeechService

_LOG = get_logger("myspeech.main")


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies (wrong JSON types) get the same 400 shape as validator failures."""
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": ErrorCode.INVALID_INPUT,
            "message": "Invalid request body",
            "details": {"errors": [
                {"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()
            ]},
        },
    )


def create_app(service: Optional[SpeechService] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        service: Service to serve with. Defaults to the process singleton;
            tests pass their own.

    Returns:
        FastAPI: Configured application instance.
    """
    configure_logging()

    service = service or get_speech_service()
    service.store.ensure_dir()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        info(_LOG, "startup", version=__version__, voices=len(service.catalog),
             engines=service.registry.registered, output_dir=str(service.store.base_dir))
        yield
        info(_LOG, "shutdown")

    app = FastAPI(title="myspeech", version=__version__, lifespan=lifespan)
    app.include_router(router)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.dependency_overrides[get_speech_service] = lambda: service

    app.mount(
        service.config.output.public_prefix or "/audio",
        StaticFiles(directory=str(service.store.base_dir)),
        name="audio",
    )
    return app


def run(argv: Optional[List[str]] = None) -> None:
    """``myspeech-server`` console script."""
    parser = argparse.ArgumentParser(description="myspeech HTTP server")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args(argv)
    uvicorn.run("myspeech.main:app", host=args.host, port=args.port)


def __getattr__(name: str):
    # ``myspeech.main:app`` for ASGI servers, built on first access so that
    # importing this module (tests, the CLI) doesn't load the catalog.
    if name == "app":
        global app
        app = create_app()
        return app
    raise AttributeError(name)
