"""
Configuration Management for myspeech.

Configuration is layered (highest priority first):
    1. Environment variables (MYSPEECH_OUTPUT_DIR, MYSPEECH_VOICES, ...)
    2. YAML config file (config/settings.yaml)
    3. Defaults class values

Example settings.yaml:
    output:
      dir: public/audio
      public_prefix: /audio
      retention_limit: 200

    catalog:
      path: config/voices.json

    engines:
      enabled: [piper, espeak]
      default_timeout_s: 60
      espeak:
        timeout_s: 30

    logging:
      level: 2  # NORMAL
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


class ConfigValidationError(Exception):
    """Raised when a configuration value is out of bounds or of the wrong type."""
    pass


class Defaults:
    """
    Centralized default configuration values.

    Every section dataclass below reads its defaults from here so the
    YAML loader, the CLI and the tests agree on one set of numbers.
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Output directory and retention
    # ─────────────────────────────────────────────────────────────────────────
    OUTPUT_DIR = "public/audio"         # Where generated artifacts live
    OUTPUT_PUBLIC_PREFIX = "/audio"     # URL prefix the directory is served under
    RETENTION_LIMIT = 200               # Newest artifacts kept after a sweep

    # ─────────────────────────────────────────────────────────────────────────
    # Voice catalog
    # ─────────────────────────────────────────────────────────────────────────
    CATALOG_PATH = "config/voices.json"

    # ─────────────────────────────────────────────────────────────────────────
    # External engines
    # ─────────────────────────────────────────────────────────────────────────
    ENGINE_TIMEOUT_S = 60.0             # Per-invocation hard timeout
    ENGINE_LIGHT_TIMEOUT_S = 30.0       # espeak and other lightweight engines
    ENGINE_MAX_PROCESSES = 4            # Concurrent child processes
    ENGINE_MODELS_DIR = "models"        # Root for on-disk models (piper)
    OPENTTS_URL = "http://localhost:5500/api/tts"
    PYTHON_EXECUTABLE = "python"

    # ─────────────────────────────────────────────────────────────────────────
    # Synthesis
    # ─────────────────────────────────────────────────────────────────────────
    TEXT_MAX_CHARS = 5000
    DEFAULT_SAMPLE_RATE = 22050
    DEFAULT_VOICE_ID = "coqui_en_vits_ljspeech"   # Used when a request names no voice
    VOICE_ID_MAX_CHARS = 100

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_TEXT_PREVIEW_CHARS = 60


@dataclass
class OutputConfig:
    """Output directory, public URL prefix and retention cap."""
    dir: str = Defaults.OUTPUT_DIR
    public_prefix: str = Defaults.OUTPUT_PUBLIC_PREFIX
    retention_limit: int = Defaults.RETENTION_LIMIT


@dataclass
class CatalogConfig:
    path: str = Defaults.CATALOG_PATH


@dataclass
class EngineOverride:
    """Per-engine overrides (executable name and timeout)."""
    executable: Optional[str] = None
    timeout_s: Optional[float] = None


@dataclass
class EnginesConfig:
    """
    External engine configuration.

    ``enabled`` of None means every supported engine gets a handler.
    An empty list disables all engines and forces the fallback path.
    """
    enabled: Optional[List[str]] = None
    default_timeout_s: float = Defaults.ENGINE_TIMEOUT_S
    max_processes: int = Defaults.ENGINE_MAX_PROCESSES
    models_dir: str = Defaults.ENGINE_MODELS_DIR
    opentts_url: str = Defaults.OPENTTS_URL
    python_executable: str = Defaults.PYTHON_EXECUTABLE
    overrides: Dict[str, EngineOverride] = field(default_factory=dict)


@dataclass
class SynthesisConfig:
    text_max_chars: int = Defaults.TEXT_MAX_CHARS
    default_sample_rate: int = Defaults.DEFAULT_SAMPLE_RATE
    default_voice: str = Defaults.DEFAULT_VOICE_ID


@dataclass
class LoggingConfig:
    """
    Service-side logging options.

    The log level and file outputs are resolved by myspeech.core.logging
    from the same section (and MYSPEECH_LOG_* env vars).
    """
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS


@dataclass
class SpeechServiceConfig:
    """
    Validated configuration for SpeechService.

    Usage:
        settings = load_settings("config/settings.yaml")
        config = SpeechServiceConfig.from_settings(settings)
        print(config.output.retention_limit)
    """
    output: OutputConfig = field(default_factory=OutputConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    engines: EnginesConfig = field(default_factory=EnginesConfig)
    synthesis: SynthesisConfig = field(default_factory=SynthesisConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "SpeechServiceConfig":
        """
        Build a validated config from raw Settings.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        # ─────────────────────────────────────────────────────────────────────
        # Output
        # ─────────────────────────────────────────────────────────────────────
        output_raw = raw.get("output", {}) or {}
        output = OutputConfig(
            dir=str(os.getenv("MYSPEECH_OUTPUT_DIR") or output_raw.get("dir", Defaults.OUTPUT_DIR)),
            public_prefix=str(output_raw.get("public_prefix", Defaults.OUTPUT_PUBLIC_PREFIX)).rstrip("/"),
            retention_limit=int(output_raw.get("retention_limit", Defaults.RETENTION_LIMIT)),
        )
        cls._validate_positive("output.retention_limit", output.retention_limit)

        # ─────────────────────────────────────────────────────────────────────
        # Catalog
        # ─────────────────────────────────────────────────────────────────────
        catalog_raw = raw.get("catalog", {}) or {}
        catalog = CatalogConfig(
            path=str(os.getenv("MYSPEECH_VOICES") or catalog_raw.get("path", Defaults.CATALOG_PATH)),
        )

        # ─────────────────────────────────────────────────────────────────────
        # Engines
        # ─────────────────────────────────────────────────────────────────────
        engines_raw = raw.get("engines", {}) or {}
        enabled_raw = engines_raw.get("enabled")
        if enabled_raw is not None and not isinstance(enabled_raw, list):
            raise ConfigValidationError(f"engines.enabled must be a list, got {type(enabled_raw).__name__}")

        overrides: Dict[str, EngineOverride] = {}
        for name, value in engines_raw.items():
            if not isinstance(value, dict):
                continue
            timeout = value.get("timeout_s")
            overrides[str(name).lower()] = EngineOverride(
                executable=value.get("executable"),
                timeout_s=float(timeout) if timeout is not None else None,
            )
            if timeout is not None:
                cls._validate_positive(f"engines.{name}.timeout_s", float(timeout))

        engines = EnginesConfig(
            enabled=[str(e).lower() for e in enabled_raw] if enabled_raw is not None else None,
            default_timeout_s=float(engines_raw.get("default_timeout_s", Defaults.ENGINE_TIMEOUT_S)),
            max_processes=int(engines_raw.get("max_processes", Defaults.ENGINE_MAX_PROCESSES)),
            models_dir=str(engines_raw.get("models_dir", Defaults.ENGINE_MODELS_DIR)),
            opentts_url=str(engines_raw.get("opentts_url", Defaults.OPENTTS_URL)),
            python_executable=str(engines_raw.get("python_executable", Defaults.PYTHON_EXECUTABLE)),
            overrides=overrides,
        )
        cls._validate_positive("engines.default_timeout_s", engines.default_timeout_s)
        cls._validate_positive("engines.max_processes", engines.max_processes)

        # ─────────────────────────────────────────────────────────────────────
        # Synthesis
        # ─────────────────────────────────────────────────────────────────────
        synth_raw = raw.get("synthesis", {}) or {}
        synthesis = SynthesisConfig(
            text_max_chars=int(synth_raw.get("text_max_chars", Defaults.TEXT_MAX_CHARS)),
            default_sample_rate=int(synth_raw.get("default_sample_rate", Defaults.DEFAULT_SAMPLE_RATE)),
            default_voice=str(synth_raw.get("default_voice", Defaults.DEFAULT_VOICE_ID)),
        )
        cls._validate_positive("synthesis.text_max_chars", synthesis.text_max_chars)
        cls._validate_positive("synthesis.default_sample_rate", synthesis.default_sample_rate)

        # ─────────────────────────────────────────────────────────────────────
        # Logging
        # ─────────────────────────────────────────────────────────────────────
        logging_raw = raw.get("logging", {}) or {}
        logging_cfg = LoggingConfig(
            text_preview_chars=int(logging_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS)),
        )
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)

        return cls(
            output=output,
            catalog=catalog,
            engines=engines,
            synthesis=synthesis,
            logging=logging_cfg,
        )

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")


@dataclass(frozen=True)
class Settings:
    """
    Immutable settings container loaded from YAML.

    Use get_service_config() for the validated, typed view.
    """
    raw: Dict[str, Any]

    @property
    def output_dir(self) -> str:
        return str((self.raw.get("output", {}) or {}).get("dir", Defaults.OUTPUT_DIR))

    @property
    def catalog_path(self) -> str:
        return str((self.raw.get("catalog", {}) or {}).get("path", Defaults.CATALOG_PATH))

    def get_service_config(self) -> SpeechServiceConfig:
        return SpeechServiceConfig.from_settings(self)


def load_settings(path: str = "config/settings.yaml") -> Settings:
    """
    Load settings from a YAML configuration file.

    Raises:
        FileNotFoundError: If the settings file doesn't exist.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"settings file not found: {p.resolve()}")

    with p.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    return Settings(raw=raw)


def load_settings_or_default(path: Optional[str] = None) -> Settings:
    """
    Load settings, falling back to an empty (all-defaults) Settings.

    The path defaults to $MYSPEECH_SETTINGS, then config/settings.yaml.
    """
    path = path or os.getenv("MYSPEECH_SETTINGS", "config/settings.yaml")
    if not Path(path).exists():
        return Settings(raw={})
    return load_settings(path)
