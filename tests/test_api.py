"""
Tests for the HTTP API.

The app is built with create_app(service) around a fallback-only service,
so every generation runs without external engines.
"""
from __future__ import annotations

import asyncio
import json
import threading
import time
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from myspeech.api.routes import DISCONNECT_POLL_S, create_speech
from myspeech.api.schemas import TTSRequest
from myspeech.errors import GenerationCancelled, SpeechError
from myspeech.main import create_app
from myspeech.services.speech_service import SpeechService


@pytest.fixture
def client(fallback_service):
    with TestClient(create_app(fallback_service)) as c:
        yield c


class TestCreateSpeech:

    def test_generate_returns_audio_url(self, client, output_dir):
        resp = client.post("/api/tts", json={"text": "Hello world", "voice": "test_piper_amy"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["audioUrl"].startswith("/audio/speech_")
        assert body["duration"] == pytest.approx(0.77)
        assert body["voice"]["id"] == "test_piper_amy"
        assert body["voice"]["engine"] == "piper"
        assert body["metadata"]["textLength"] == 11
        assert body["metadata"]["sampleRate"] == 22050
        assert body["metadata"]["source"] == "fallback"

        filename = body["audioUrl"].rsplit("/", 1)[1]
        assert (output_dir / filename).stat().st_size == 34000

    def test_audio_is_served(self, client):
        body = client.post("/api/tts", json={"text": "Hello world", "voice": "test_piper_amy"}).json()

        audio = client.get(body["audioUrl"])

        assert audio.status_code == 200
        assert audio.content[:4] == b"RIFF"
        assert len(audio.content) == 34000

    def test_empty_text_is_400(self, client, output_dir):
        resp = client.post("/api/tts", json={"text": "   ", "voice": "test_piper_amy"})

        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert body["error"] == "INVALID_INPUT"
        assert body["details"] == {"reason": "TEXT_REQUIRED"}
        assert list(output_dir.iterdir()) == []

    def test_missing_text_is_400(self, client):
        resp = client.post("/api/tts", json={"voice": "test_piper_amy"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "INVALID_INPUT"

    def test_too_long_text_is_400(self, client):
        resp = client.post("/api/tts", json={"text": "a" * 5001, "voice": "test_piper_amy"})
        assert resp.status_code == 400
        assert resp.json()["details"]["reason"] == "TEXT_TOO_LONG"

    def test_wrong_type_is_400(self, client):
        resp = client.post("/api/tts", json={"text": ["not", "a", "string"], "voice": "test_piper_amy"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "INVALID_INPUT"

    def test_unknown_voice_is_404(self, client, output_dir):
        resp = client.post("/api/tts", json={"text": "Hello", "voice": "ghost"})

        assert resp.status_code == 404
        assert resp.json() == {"success": False, "error": "VOICE_NOT_FOUND", "message": "Voice not found: ghost"}
        assert list(output_dir.iterdir()) == []

    def test_omitted_voice_uses_default(self, fallback_settings, catalog):
        from myspeech.core.config import Settings
        from myspeech.services.speech_service import SpeechService

        raw = {**fallback_settings.raw, "synthesis": {"default_voice": "test_espeak_en"}}
        service = SpeechService(Settings(raw=raw), catalog=catalog)
        with TestClient(create_app(service)) as c:
            resp = c.post("/api/tts", json={"text": "Hello"})

        assert resp.status_code == 200
        assert resp.json()["voice"]["id"] == "test_espeak_en"

    def test_cancelled_generation_is_499(self, fallback_service, monkeypatch):
        def cancelled(text, voice_id, cancel=None):
            raise GenerationCancelled()

        monkeypatch.setattr(fallback_service, "generate", cancelled)
        with TestClient(create_app(fallback_service)) as c:
            resp = c.post("/api/tts", json={"text": "Hello", "voice": "test_piper_amy"})

        assert resp.status_code == 499
        assert resp.json()["error"] == "CANCELLED"

    def test_internal_error_is_500(self, fallback_service, monkeypatch):
        def broken(text, voice_id, cancel=None):
            raise SpeechError("Unexpected error: boom")

        monkeypatch.setattr(fallback_service, "generate", broken)
        with TestClient(create_app(fallback_service)) as c:
            resp = c.post("/api/tts", json={"text": "Hello", "voice": "test_piper_amy"})

        assert resp.status_code == 500
        assert resp.json()["error"] == "INTERNAL_ERROR"


class TestClientDisconnect:
    """The route polls the connection while the engine runs."""

    @staticmethod
    def _service(settings, catalog, synthesize):
        handler = MagicMock()
        handler.name = "piper"
        handler.synthesize.side_effect = synthesize
        registry = MagicMock()
        registry.lookup.return_value = handler
        registry.registered = ["piper"]
        return SpeechService(settings, catalog=catalog, registry=registry)

    @staticmethod
    def _request(disconnected):
        request = MagicMock()
        request.is_disconnected = AsyncMock(return_value=disconnected)
        return request

    def test_disconnect_cancels_running_engine(self, fallback_settings, catalog, output_dir):
        released = threading.Event()

        def synthesize(invoker, text, voice, output_path, cancel=None):
            output_path.write_bytes(b"partial")
            if cancel.wait(5):
                released.set()
            return False

        service = self._service(fallback_settings, catalog, synthesize)
        request = self._request(disconnected=True)

        resp = asyncio.run(create_speech(TTSRequest(text="Hello", voice="test_piper_amy"), request, service))

        assert released.is_set()
        assert request.is_disconnected.await_count >= 1
        assert resp.status_code == 499
        assert json.loads(resp.body)["error"] == "CANCELLED"
        assert not output_dir.exists() or list(output_dir.iterdir()) == []

    def test_connected_client_is_not_cancelled(self, fallback_settings, catalog):
        cancelled = threading.Event()

        def synthesize(invoker, text, voice, output_path, cancel=None):
            # Outlast one poll interval, then fail so the fallback answers
            time.sleep(DISCONNECT_POLL_S * 2)
            if cancel.is_set():
                cancelled.set()
            return False

        service = self._service(fallback_settings, catalog, synthesize)
        request = self._request(disconnected=False)

        body = asyncio.run(create_speech(TTSRequest(text="Hello", voice="test_piper_amy"), request, service))

        assert request.is_disconnected.await_count >= 1
        assert not cancelled.is_set()
        assert body["metadata"]["source"] == "fallback"


class TestCatalogEndpoints:

    def test_list_voices(self, client):
        body = client.get("/api/voices").json()

        assert body["success"] is True
        assert body["total"] == 4
        assert {v["id"] for v in body["voices"]} == {
            "test_piper_amy", "test_espeak_en", "test_coqui_de", "test_festival",
        }
        assert body["languages"]["de"]["name"] == "German"
        assert body["engines"]["piper"]["name"] == "Piper"

    def test_filter_voices(self, client):
        body = client.get("/api/voices", params={"language": "en", "gender": "male"}).json()
        assert [v["id"] for v in body["voices"]] == ["test_festival"]

        body = client.get("/api/voices", params={"engine": "coqui"}).json()
        assert body["total"] == 1
        assert body["voices"][0]["sampleRate"] == 16000

    def test_get_voice(self, client):
        body = client.get("/api/voices/test_coqui_de").json()

        assert body["voice"]["id"] == "test_coqui_de"
        assert body["voice"]["engineInfo"] == {"name": "Coqui TTS"}
        assert body["voice"]["languageInfo"]["name"] == "German"

    def test_get_unknown_voice(self, client):
        resp = client.get("/api/voices/ghost")
        assert resp.status_code == 404
        assert resp.json()["error"] == "VOICE_NOT_FOUND"

    def test_engines(self, client):
        body = client.get("/api/engines").json()

        assert body["total"] == 3
        assert body["engines"]["piper"]["voiceCount"] == 1
        # Fallback-only service: nothing registered
        assert body["engines"]["piper"]["available"] is False

    def test_languages(self, client):
        body = client.get("/api/languages").json()
        assert body["languages"]["en-US"]["engines"] == ["piper"]
        assert body["languages"]["en"]["voiceCount"] == 1


class TestOperationalEndpoints:

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["voices"] == 4

    def test_metrics(self, client):
        client.post("/api/tts", json={"text": "Hello", "voice": "test_piper_amy"})

        resp = client.get("/metrics")

        assert resp.status_code == 200
        assert "myspeech_generations_total" in resp.text
        assert "myspeech_audio_bytes_total" in resp.text
