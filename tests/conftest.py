"""Shared fixtures: a small voice catalog, temp output dirs, fallback-only services."""
from __future__ import annotations

import json
import os

# Plain console output in captured test logs
os.environ.setdefault("MYSPEECH_NO_COLOR", "1")

import numpy as np
import pytest

from myspeech.catalog import VoiceCatalog
from myspeech.core.config import Settings
from myspeech.services.speech_service import SpeechService, reset_service
from myspeech.storage.artifacts import ArtifactStore

CATALOG_DOC = {
    "voices": [
        {"id": "test_piper_amy", "name": "Amy", "engine": "piper", "language": "en-US",
         "gender": "female", "model": "en_US-amy-medium", "quality": "high", "sampleRate": 22050},
        {"id": "test_espeak_en", "name": "eSpeak EN", "engine": "espeak", "language": "en",
         "model": "en", "quality": "low"},
        {"id": "test_coqui_de", "name": "Thorsten", "engine": "coqui", "language": "de-DE",
         "gender": "male", "model": "tts_models/de/thorsten/vits", "sampleRate": 16000},
        {"id": "test_festival", "name": "Festival", "engine": "festival", "language": "en-GB",
         "gender": "male", "model": "kal"},
    ],
    "engines": {
        "piper": {"name": "Piper"},
        "espeak": {"name": "eSpeak NG"},
        "coqui": {"name": "Coqui TTS"},
    },
    "languages": {
        "en": {"name": "English", "flag": "GB"},
        "de": {"name": "German", "flag": "DE"},
    },
}


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Keep developer env overrides out of tests and reset the service singleton."""
    for var in ("MYSPEECH_OUTPUT_DIR", "MYSPEECH_VOICES", "MYSPEECH_SETTINGS", "MYSPEECH_LOG_DIR"):
        monkeypatch.delenv(var, raising=False)
    reset_service()
    yield
    reset_service()


@pytest.fixture
def catalog() -> VoiceCatalog:
    return VoiceCatalog.from_dict(CATALOG_DOC)


@pytest.fixture
def output_dir(tmp_path):
    return tmp_path / "audio"


@pytest.fixture
def store(output_dir) -> ArtifactStore:
    return ArtifactStore(output_dir)


@pytest.fixture
def fallback_settings(output_dir) -> Settings:
    """No engines enabled: every request takes the fallback path."""
    return Settings(raw={
        "output": {"dir": str(output_dir)},
        "engines": {"enabled": []},
        "logging": {"level": 1},
    })


@pytest.fixture
def fallback_service(fallback_settings, catalog) -> SpeechService:
    return SpeechService(fallback_settings, catalog=catalog, rng=np.random.default_rng(0))


@pytest.fixture
def catalog_file(tmp_path):
    p = tmp_path / "voices.json"
    p.write_text(json.dumps(CATALOG_DOC), encoding="utf-8")
    return p
