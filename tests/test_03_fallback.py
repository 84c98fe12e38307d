"""
Tests for the procedural fallback synthesizer.

Tests cover:
- Duration formula and the 30 second cap
- Output dtype and sample count
- Seeded determinism
- Agreement with a per-sample reference computation
- Unknown gender / engine defaults
"""
import math

import numpy as np
import pytest

from myspeech.synth.fallback import (
    MAX_DURATION_S,
    PITCH_PROFILES,
    TIMBRES,
    fallback_duration,
    fallback_num_samples,
    pitch_for,
    synthesize_fallback,
    timbre_for,
)


def _reference_sample(i, text, base, variation, harmonic, noise_value, noise, sr):
    t = i / sr
    ch = text[int(math.floor((t * 4) % len(text)))]
    freq = base * (1 + (ord(ch) - 65) / 100 * variation)
    tone = (
        math.sin(2 * math.pi * freq * t)
        + harmonic * math.sin(4 * math.pi * freq * t)
        + harmonic / 2 * math.sin(6 * math.pi * freq * t)
    )
    env = 0.6 * math.sin(math.pi * (t % 0.12) / 0.12)
    vib = 1 + 0.08 * math.sin(2 * math.pi * 5.5 * t)
    x = tone * env * vib + (noise_value - 0.5) * noise
    x = max(-1.0, min(1.0, 0.5 * x))
    return math.floor(x * 32767)


class TestDuration:

    def test_hello_world_sample_count(self):
        assert fallback_num_samples("Hello world", 22050) == 16978

    def test_duration_is_linear_in_length(self):
        assert fallback_duration("abc") == pytest.approx(0.21)

    def test_duration_is_capped(self):
        assert fallback_duration("x" * 1000) == MAX_DURATION_S
        assert fallback_num_samples("x" * 1000, 22050) == 661500


class TestSynthesizeFallback:

    def test_output_shape_and_dtype(self):
        pcm = synthesize_fallback("Hello world", "female", "piper", 22050,
                                  rng=np.random.default_rng(1))
        assert pcm.dtype == np.int16
        assert pcm.shape == (16978,)

    def test_long_text_is_capped(self):
        pcm = synthesize_fallback("a" * 600, "male", "espeak", 8000,
                                  rng=np.random.default_rng(1))
        assert pcm.size == 240000

    def test_seeded_output_is_deterministic(self):
        a = synthesize_fallback("Determinism", "male", "coqui", 16000, rng=np.random.default_rng(7))
        b = synthesize_fallback("Determinism", "male", "coqui", 16000, rng=np.random.default_rng(7))
        assert np.array_equal(a, b)

    def test_matches_reference_computation(self):
        text, sr = "Hi there", 8000
        profile, timbre = PITCH_PROFILES["female"], TIMBRES["vits"]
        pcm = synthesize_fallback(text, "female", "vits", sr, rng=np.random.default_rng(3))

        noise = np.random.default_rng(3).random(pcm.size)
        for i in range(0, pcm.size, 37):
            expected = _reference_sample(i, text, profile.base_hz, profile.variation,
                                         timbre.harmonic, noise[i], timbre.noise, sr)
            assert abs(int(pcm[i]) - expected) <= 1

    def test_output_is_not_silent(self):
        pcm = synthesize_fallback("Some words", "neutral", "coqui", 22050,
                                  rng=np.random.default_rng(0))
        assert int(np.abs(pcm).max()) > 1000

    def test_headroom_keeps_samples_in_range(self):
        pcm = synthesize_fallback("~~~~~~~~", "female", "tacotron2", 22050,
                                  rng=np.random.default_rng(0))
        assert int(np.abs(pcm.astype(np.int32)).max()) <= 32767

    def test_empty_text_raises(self):
        with pytest.raises(ValueError):
            synthesize_fallback("", "female", "piper", 22050)

    def test_bad_sample_rate_raises(self):
        with pytest.raises(ValueError):
            synthesize_fallback("hi", "female", "piper", 0)


class TestProfiles:

    def test_unknown_gender_is_neutral(self):
        assert pitch_for("robot") == PITCH_PROFILES["neutral"]
        assert pitch_for("") == PITCH_PROFILES["neutral"]

    def test_gender_is_case_insensitive(self):
        assert pitch_for("FEMALE").base_hz == 220.0

    def test_unknown_engine_uses_coqui_timbre(self):
        assert timbre_for("festival") == TIMBRES["coqui"]

    def test_every_engine_has_a_timbre(self):
        from myspeech.engines.registry import EngineId

        assert {e.value for e in EngineId} == set(TIMBRES)
