"""
Procedural Fallback Synthesizer.

When no external engine produces audio, myspeech still returns a playable
file. This module generates a speech-shaped waveform from the text and the
voice's traits. It is not speech: it is a pitched, harmonically rich tone
with a syllabic envelope, whose pitch wanders with the characters of the
input text.

Signal model (per sample at time t):
    c      = text[floor((t * 4) mod len(text))]      # 4 characters / second
    f      = base * (1 + (ord(c) - 65) / 100 * variation)
    tone   = sin(2πft) + h·sin(4πft) + (h/2)·sin(6πft)
    env    = 0.6 · sin(π · (t mod 0.12) / 0.12)      # syllable every 120 ms
    vib    = 1 + 0.08 · sin(2π · 5.5 · t)
    x      = tone · env · vib + (U[0,1) - 0.5) · noise
    pcm    = floor(clip(0.5 · x, -1, 1) · 32767)

``base``/``variation`` come from the voice gender, ``h``/``noise`` (the
timbre) from the voice's engine. Everything is vectorized with numpy.

Only the noise term is random. Pass a seeded ``numpy.random.Generator``
to make the output reproducible.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np

CHARS_PER_SECOND = 0.07         # seconds of audio per input character
MAX_DURATION_S = 30.0
CHAR_RATE_HZ = 4.0              # characters stepped through per second
SYLLABLE_S = 0.12
ENVELOPE_PEAK = 0.6
VIBRATO_HZ = 5.5
VIBRATO_DEPTH = 0.08
HEADROOM = 0.5


@dataclass(frozen=True)
class PitchProfile:
    base_hz: float
    variation: float


@dataclass(frozen=True)
class Timbre:
    harmonic: float
    noise: float


PITCH_PROFILES: Dict[str, PitchProfile] = {
    "female": PitchProfile(base_hz=220.0, variation=0.2),
    "male": PitchProfile(base_hz=120.0, variation=0.15),
    "neutral": PitchProfile(base_hz=170.0, variation=0.18),
}

TIMBRES: Dict[str, Timbre] = {
    "coqui": Timbre(harmonic=0.4, noise=0.02),
    "piper": Timbre(harmonic=0.35, noise=0.015),
    "vits": Timbre(harmonic=0.45, noise=0.018),
    "glowtts": Timbre(harmonic=0.38, noise=0.02),
    "tacotron2": Timbre(harmonic=0.42, noise=0.022),
    "mimic3": Timbre(harmonic=0.36, noise=0.02),
    "espeak": Timbre(harmonic=0.25, noise=0.03),
    "mozilla": Timbre(harmonic=0.4, noise=0.02),
    "fastpitch": Timbre(harmonic=0.43, noise=0.018),
    "opentts": Timbre(harmonic=0.38, noise=0.02),
}


def pitch_for(gender: str) -> PitchProfile:
    return PITCH_PROFILES.get((gender or "").lower(), PITCH_PROFILES["neutral"])


def timbre_for(engine: str) -> Timbre:
    return TIMBRES.get((engine or "").lower(), TIMBRES["coqui"])


def fallback_duration(text: str) -> float:
    """Seconds of audio generated for ``text`` (capped at 30s)."""
    return min(len(text) * CHARS_PER_SECOND, MAX_DURATION_S)


def fallback_num_samples(text: str, sample_rate: int) -> int:
    return int(math.floor(sample_rate * fallback_duration(text)))


def synthesize_fallback(
    text: str,
    gender: str,
    engine: str,
    sample_rate: int,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """
    Generate int16 mono PCM for ``text``.

    Args:
        text: Non-empty input text (already validated and trimmed).
        gender: female / male / neutral; anything else is neutral.
        engine: Engine id selecting the timbre; unknown ids use coqui's.
        sample_rate: Output rate in Hz.
        rng: Noise source; a fresh default_rng() when omitted.

    Returns:
        int16 array of ``fallback_num_samples(text, sample_rate)`` samples.

    Raises:
        ValueError: If text is empty or sample_rate is not positive.
    """
    if not text:
        raise ValueError("fallback synthesis needs non-empty text")
    if sample_rate <= 0:
        raise ValueError(f"sample_rate must be positive, got {sample_rate}")

    rng = rng if rng is not None else np.random.default_rng()
    pitch = pitch_for(gender)
    timbre = timbre_for(engine)

    n = fallback_num_samples(text, sample_rate)
    t = np.arange(n, dtype=np.float64) / sample_rate

    codes = np.array([ord(ch) or 65 for ch in text], dtype=np.float64)
    char_index = np.floor(np.mod(t * CHAR_RATE_HZ, len(text))).astype(np.int64)
    char_mod = (codes[char_index] - 65.0) / 100.0
    freq = pitch.base_hz * (1.0 + char_mod * pitch.variation)

    phase = 2.0 * np.pi * freq * t
    tone = (
        np.sin(phase)
        + np.sin(2.0 * phase) * timbre.harmonic
        + np.sin(3.0 * phase) * (timbre.harmonic * 0.5)
    )

    envelope = np.sin(np.pi * (np.mod(t, SYLLABLE_S) / SYLLABLE_S)) * ENVELOPE_PEAK
    vibrato = np.sin(2.0 * np.pi * VIBRATO_HZ * t) * VIBRATO_DEPTH

    signal = tone * envelope * (1.0 + vibrato)
    signal += (rng.random(n) - 0.5) * timbre.noise

    signal = np.clip(signal * HEADROOM, -1.0, 1.0)
    return np.floor(signal * 32767.0).astype(np.int16)
