"""
SpeechService - Synthesis Dispatch and Fallback.

The single entry point for turning (text, voice id) into a playable WAV file.
The HTTP API and the CLI both go through it.

Architecture:
    Request → Validate → Resolve voice → Engine attempt ─┬→ Promote → Sweep → Result
                                                          └→ Fallback → Encode → Persist → Sweep → Result

Guarantee:
    Every valid request whose voice exists yields an artifact. A missing
    handler, a failing or slow engine and an empty output file are all
    recoverable: the procedural fallback synthesizer runs instead. Only
    invalid input, an unknown voice, a storage failure or a cancellation
    reach the caller as errors.

The engine path and the fallback path are mutually exclusive: fallback
runs only when the engine attempt produced no usable file.

Example:
    >>> from myspeech.core.config import Settings
    >>> service = SpeechService(Settings(raw={}))
    >>> result = service.generate("Hello world", "piper_en_amy")
    >>> result.url, result.source
    ('/audio/speech_....wav', 'fallback')
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np

from myspeech.catalog import CatalogError, Voice, VoiceCatalog, load_catalog
from myspeech.core.config import Settings, SpeechServiceConfig, load_settings_or_default
from myspeech.core.logging import debug, error, fail, get_logger, info, success, verbose, warn
from myspeech.core.metrics import metrics
from myspeech.engines.invoker import ProcessInvoker
from myspeech.engines.registry import EngineHandler, EngineRegistry
from myspeech.errors import (
    ErrorCode,
    GenerationCancelled,
    InvalidInputError,
    SpeechError,
    StorageError,
    VoiceNotFoundError,
)
from myspeech.services.validators import ValidationError, validate_text, validate_voice_id
from myspeech.storage.artifacts import ArtifactStore
from myspeech.synth.fallback import fallback_duration, synthesize_fallback
from myspeech.utils.audio import encode_wav, probe_duration
from myspeech.utils.timeit import timeit

_LOG = get_logger("myspeech.service")

SOURCE_ENGINE = "engine"
SOURCE_FALLBACK = "fallback"


@dataclass(frozen=True)
class GenerationResult:
    """
    Outcome of one successful generation.

    Attributes:
        filename: Artifact file name (speech_<12 hex>.wav).
        path: Absolute path of the artifact on disk.
        url: Public URL the artifact is served under.
        voice: The resolved voice.
        duration: Audio length in seconds.
        sample_rate: The voice's sample rate.
        source: "engine" or "fallback".
        generated_at: UTC ISO-8601 timestamp.
        text_length: Characters in the trimmed text.
        audio_bytes: Artifact size on disk.
    """
    filename: str
    path: Path
    url: str
    voice: Voice
    duration: float
    sample_rate: int
    source: str
    generated_at: str
    text_length: int
    audio_bytes: int

    def to_response(self) -> Dict[str, Any]:
        """The POST /api/tts success body."""
        return {
            "success": True,
            "audioUrl": self.url,
            "duration": self.duration,
            "voice": self.voice.summary(),
            "metadata": {
                "textLength": self.text_length,
                "sampleRate": self.sample_rate,
                "generatedAt": self.generated_at,
                "source": self.source,
            },
        }


class SpeechService:
    """
    Speech generation with engine dispatch and guaranteed fallback.

    Collaborators default to ones built from ``settings``; tests inject
    their own.

    Usage:
        service = SpeechService(load_settings_or_default())
        result = service.generate("Merhaba", "piper_tr_dfki")
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        catalog: Optional[VoiceCatalog] = None,
        registry: Optional[EngineRegistry] = None,
        invoker: Optional[ProcessInvoker] = None,
        store: Optional[ArtifactStore] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self._settings = settings or Settings(raw={})
        self._config = SpeechServiceConfig.from_settings(self._settings)

        # ─────────────────────────────────────────────────────────────────────
        # Voice catalog (swapped as a whole on reload)
        # ─────────────────────────────────────────────────────────────────────
        self._catalog_lock = threading.Lock()
        self._catalog = catalog if catalog is not None else self._load_initial_catalog()

        # ─────────────────────────────────────────────────────────────────────
        # Engines
        # ─────────────────────────────────────────────────────────────────────
        self._registry = registry or EngineRegistry(self._config.engines)
        self._invoker = invoker or ProcessInvoker(self._config.engines.max_processes)

        # ─────────────────────────────────────────────────────────────────────
        # Artifacts
        # ─────────────────────────────────────────────────────────────────────
        self._store = store or ArtifactStore(
            base_dir=self._config.output.dir,
            public_prefix=self._config.output.public_prefix,
            retention_limit=self._config.output.retention_limit,
        )

        self._rng = rng
        self._text_preview_chars = self._config.logging.text_preview_chars

    def _load_initial_catalog(self) -> VoiceCatalog:
        path = self._config.catalog.path
        try:
            return load_catalog(path, self._config.synthesis.default_sample_rate)
        except (FileNotFoundError, CatalogError) as e:
            # Serve with no voices rather than refuse to start; reload_catalog() can recover
            error(_LOG, "catalog_load_failed", path=path, error=str(e))
            return VoiceCatalog()

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def config(self) -> SpeechServiceConfig:
        return self._config

    @property
    def catalog(self) -> VoiceCatalog:
        """Current catalog snapshot. Take it once per operation."""
        return self._catalog

    @property
    def registry(self) -> EngineRegistry:
        return self._registry

    @property
    def store(self) -> ArtifactStore:
        return self._store

    # =========================================================================
    # Catalog
    # =========================================================================

    def reload_catalog(self, path: Optional[str] = None) -> int:
        """
        Load the catalog again and swap it in.

        In-flight generations keep the snapshot they started with. On error
        the current snapshot stays in place.

        Returns:
            Number of voices in the new snapshot.

        Raises:
            FileNotFoundError: If the catalog file is missing.
            CatalogError: If the catalog is invalid.
        """
        new_catalog = load_catalog(
            path or self._config.catalog.path,
            self._config.synthesis.default_sample_rate,
        )
        with self._catalog_lock:
            self._catalog = new_catalog
        info(_LOG, "catalog_reloaded", voices=len(new_catalog))
        return len(new_catalog)

    # =========================================================================
    # Generation
    # =========================================================================

    def generate(
        self,
        text: str,
        voice_id: str,
        cancel: Optional[threading.Event] = None,
    ) -> GenerationResult:
        """
        Generate speech for ``text`` with voice ``voice_id``.

        Args:
            text: Input text; trimmed, 1..text_max_chars characters.
            voice_id: Catalog voice id.
            cancel: Set by the caller to abandon the engine attempt.

        Returns:
            GenerationResult describing the new artifact.

        Raises:
            InvalidInputError: Text or voice id failed validation.
            VoiceNotFoundError: Voice id not in the catalog. Nothing is written.
            StorageError: The artifact couldn't be written.
            GenerationCancelled: ``cancel`` was set during the engine attempt.
            SpeechError: INTERNAL_ERROR for anything unexpected.
        """
        try:
            text = validate_text(text, self._config.synthesis.text_max_chars)
            voice_id = validate_voice_id(voice_id)
        except ValidationError as e:
            raise InvalidInputError(e.message, {"reason": e.code})

        catalog = self._catalog
        voice = catalog.lookup(voice_id)
        if voice is None:
            warn(_LOG, "voice_not_found", voice=voice_id)
            raise VoiceNotFoundError(voice_id)

        preview = text[:self._text_preview_chars] if self._text_preview_chars > 0 else ""
        info(_LOG, "request", voice=voice.id, engine=voice.engine, chars=len(text), text_preview=preview)
        debug(_LOG, "request_full", text=text, voice=voice.to_dict())

        try:
            with timeit("generate") as total_t:
                filename = self._store.make_filename(text, voice.id)
                path = self._attempt_engine(text, voice, filename, cancel)
                if path is not None:
                    source = SOURCE_ENGINE
                    duration = probe_duration(path)
                    if duration is None:
                        duration = fallback_duration(text)
                else:
                    source = SOURCE_FALLBACK
                    path = self._run_fallback(text, voice, filename)
                    duration = fallback_duration(text)

            audio_bytes = path.stat().st_size
        except SpeechError:
            raise
        except Exception as e:
            fail(_LOG, "request_failed", voice=voice.id, error=str(e), error_type=type(e).__name__)
            raise SpeechError(
                f"Unexpected error: {e}",
                ErrorCode.INTERNAL_ERROR,
                {"error_type": type(e).__name__},
            )

        metrics.record_generation(
            engine=voice.engine,
            source=source,
            duration=total_t.timing.seconds if total_t.timing else 0.0,
            audio_bytes=audio_bytes,
        )
        success(_LOG, "done", file=filename, source=source, bytes=audio_bytes, seconds=total_t.seconds)

        return GenerationResult(
            filename=filename,
            path=path,
            url=self._store.url_for(filename),
            voice=voice,
            duration=round(duration, 3),
            sample_rate=voice.sample_rate,
            source=source,
            generated_at=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            text_length=len(text),
            audio_bytes=audio_bytes,
        )

    def _attempt_engine(
        self,
        text: str,
        voice: Voice,
        filename: str,
        cancel: Optional[threading.Event],
    ) -> Optional[Path]:
        """
        Run the voice's engine into a staging file.

        Returns:
            Path of the promoted artifact, or None if the fallback must run.

        Raises:
            GenerationCancelled: If ``cancel`` fired.
            StorageError: If the output directory is unusable.
        """
        if cancel is not None and cancel.is_set():
            raise GenerationCancelled(details={"voice": voice.id})

        handler: Optional[EngineHandler] = self._registry.lookup(voice.engine)
        if handler is None:
            verbose(_LOG, "engine_skipped", engine=voice.engine, reason="no_handler")
            metrics.record_engine_failure(voice.engine, "no_handler")
            return None

        self._store.ensure_dir()
        staging = self._store.staging_path(filename)

        with timeit("engine") as t:
            ok = handler.synthesize(self._invoker, text, voice, staging, cancel)
        verbose(_LOG, "stage", event="engine", engine=handler.name, ok=ok, seconds=t.seconds)

        if cancel is not None and cancel.is_set():
            self._store.discard_staging(staging)
            info(_LOG, "cancelled", engine=handler.name, voice=voice.id)
            raise GenerationCancelled(details={"voice": voice.id, "engine": handler.name})

        if not ok:
            self._store.discard_staging(staging)
            warn(_LOG, "engine_fallback", engine=handler.name, reason="process_failed")
            metrics.record_engine_failure(handler.name, "process_failed")
            return None

        try:
            size = staging.stat().st_size
        except FileNotFoundError:
            size = 0
        if size == 0:
            self._store.discard_staging(staging)
            warn(_LOG, "engine_fallback", engine=handler.name, reason="empty_output")
            metrics.record_engine_failure(handler.name, "empty_output")
            return None

        return self._store.promote(staging, filename)

    def _run_fallback(self, text: str, voice: Voice, filename: str) -> Path:
        with timeit("fallback") as t:
            samples = synthesize_fallback(
                text,
                gender=voice.gender,
                engine=voice.engine,
                sample_rate=voice.sample_rate,
                rng=self._rng,
            )
            data = encode_wav(samples, voice.sample_rate)
        verbose(_LOG, "stage", event="fallback", samples=int(samples.size), seconds=t.seconds)
        return self._store.persist(filename, data)

    # =========================================================================
    # Maintenance
    # =========================================================================

    def sweep(self) -> int:
        """Run a retention sweep now. Returns files removed."""
        return self._store.sweep()

    def get_health_info(self) -> Dict[str, Any]:
        """Catalog size, registered engines and storage usage."""
        catalog = self._catalog
        try:
            storage: Dict[str, Any] = self._store.storage_info()
        except StorageError as e:
            storage = {"error": e.message}
        return {
            "success": True,
            "status": "ok" if "error" not in storage else "degraded",
            "voices": len(catalog),
            "engines": {
                "registered": self._registry.registered,
                "max_processes": self._invoker.max_processes,
            },
            "storage": storage,
        }


# =============================================================================
# Global Service Singleton
# =============================================================================

_service: Optional[SpeechService] = None
_service_lock = threading.Lock()


def get_service(settings: Optional[Settings] = None) -> SpeechService:
    """
    Get or create the global SpeechService instance.

    Thread-safe lazy singleton; ``settings`` is only used on first call.
    """
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = SpeechService(settings or load_settings_or_default())
    return _service


def reset_service() -> None:
    """Reset the global service instance (for testing)."""
    global _service
    with _service_lock:
        _service = None
