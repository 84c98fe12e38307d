"""
Prometheus Metrics for myspeech.

Metrics Exposed:
    myspeech_generations_total              - Generations by engine and source (engine/fallback)
    myspeech_generation_duration_seconds    - Latency histogram by source
    myspeech_engine_failures_total          - External engine failures by engine and reason
    myspeech_artifacts_evicted_total        - Artifacts deleted by retention sweeps
    myspeech_audio_bytes_total              - Bytes of audio written

Usage:
    from myspeech.core.metrics import metrics

    metrics.record_generation(engine="piper", source="fallback", duration=0.2, audio_bytes=34000)
    metrics.record_engine_failure(engine="piper", reason="timeout")
    content, content_type = metrics.get_metrics_response()

A private CollectorRegistry keeps these metrics apart from anything else
registered in the same process (and from each other across test runs).
"""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


class SpeechMetrics:
    """Metric collection for the synthesis pipeline. Thread-safe."""

    def __init__(self):
        self._registry = CollectorRegistry()

        self._generations_total = Counter(
            "myspeech_generations_total",
            "Completed generations",
            ["engine", "source"],
            registry=self._registry,
        )
        self._generation_duration = Histogram(
            "myspeech_generation_duration_seconds",
            "Generation duration in seconds",
            ["source"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
            registry=self._registry,
        )
        self._engine_failures = Counter(
            "myspeech_engine_failures_total",
            "External engine attempts that fell back",
            ["engine", "reason"],
            registry=self._registry,
        )
        self._evicted_total = Counter(
            "myspeech_artifacts_evicted_total",
            "Artifacts removed by retention sweeps",
            registry=self._registry,
        )
        self._audio_bytes_total = Counter(
            "myspeech_audio_bytes_total",
            "Audio bytes written to the output directory",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_generation(self, engine: str, source: str, duration: float, audio_bytes: int = 0) -> None:
        self._generations_total.labels(engine=engine, source=source).inc()
        self._generation_duration.labels(source=source).observe(max(duration, 0.0))
        if audio_bytes > 0:
            self._audio_bytes_total.inc(audio_bytes)

    def record_engine_failure(self, engine: str, reason: str) -> None:
        """reason is one of: no_handler, process_failed, empty_output."""
        self._engine_failures.labels(engine=engine, reason=reason).inc()

    def record_evictions(self, count: int) -> None:
        if count > 0:
            self._evicted_total.inc(count)

    def get_metrics_response(self) -> tuple[bytes, str]:
        return generate_latest(self._registry), CONTENT_TYPE_LATEST


# Global singleton: from myspeech.core.metrics import metrics
metrics = SpeechMetrics()
