"""
myspeech: Text-to-Speech Dispatch Service.

Turns text into a playable WAV file through one of several interchangeable
external synthesis engines, and always returns audio: when the requested
engine is missing, broken or slow, a procedural fallback synthesizer
produces a speech-shaped placeholder instead.

Supported Engines:
    - Coqui / Mozilla TTS (``tts`` CLI)
    - Piper
    - VITS, Glow-TTS, Tacotron2, FastPitch (Python inference modules)
    - Mimic3
    - eSpeak NG
    - OpenTTS (HTTP, via curl)

Key Features:
    - HTTP API (/api/tts) with a read-only voice catalog
    - Bounded, cancellable external processes
    - Retention-capped output directory
    - Structured logging and Prometheus metrics

Example Usage:
    >>> from myspeech.services import SpeechService
    >>> service = SpeechService()
    >>> result = service.generate("Hello world", "espeak_en")
    >>> result.url
    '/audio/speech_....wav'
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
