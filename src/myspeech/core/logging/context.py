"""
Request correlation and logging state.

The request id lives in a ContextVar so it follows a request through
FastAPI's threadpool and asyncio tasks. Level and file settings are
process-wide module state.

Environment Variables:
    - MYSPEECH_LOG_LEVEL: Override log level (1-4 or a name)
    - MYSPEECH_LOG_DIR: Directory for the JSONL log file
    - MYSPEECH_JSONL_FILE: JSONL filename (default myspeech.jsonl)
    - MYSPEECH_LOG_ROTATE_BYTES: Max log file size before rotation
    - MYSPEECH_LOG_ROTATE_BACKUP: Rotated files to keep
"""
from __future__ import annotations

import os
from contextvars import ContextVar
from typing import Any, Dict

import yaml

from .levels import LEVEL_NAMES, LogLevel

# "-" marks records emitted outside a request
_request_id: ContextVar[str] = ContextVar("request_id", default="-")

_configured: bool = False
_log_config: Dict[str, Any] = {}
_current_level: LogLevel = LogLevel.NORMAL


def get_request_id() -> str:
    return _request_id.get()


def set_request_id(rid: str) -> None:
    """Tag every following record in this context with ``rid``."""
    _request_id.set(rid)


def get_level() -> LogLevel:
    return _current_level


def set_level(level: LogLevel) -> None:
    global _current_level
    _current_level = level


def get_level_name() -> str:
    return LEVEL_NAMES.get(_current_level, "NORMAL")


def is_configured() -> bool:
    return _configured


def set_configured(value: bool) -> None:
    global _configured
    _configured = value


def get_log_config() -> Dict[str, Any]:
    return _log_config


def set_log_config(config: Dict[str, Any]) -> None:
    global _log_config
    _log_config = config


def read_logging_config() -> Dict[str, Any]:
    """
    Resolve logging configuration.

    Priority (highest first): environment variables, the ``logging``
    section of the settings file, built-in defaults. A missing or broken
    settings file is not an error here; logging must come up regardless.
    """
    cfg: Dict[str, Any] = {}

    from myspeech.core.config import load_settings_or_default
    try:
        settings = load_settings_or_default()
        cfg.update(settings.raw.get("logging", {}) or {})
    except (OSError, yaml.YAMLError):
        pass

    if os.getenv("MYSPEECH_LOG_LEVEL"):
        cfg["level"] = os.environ["MYSPEECH_LOG_LEVEL"]
    if os.getenv("MYSPEECH_LOG_DIR"):
        cfg["log_dir"] = os.environ["MYSPEECH_LOG_DIR"]
    if os.getenv("MYSPEECH_JSONL_FILE"):
        cfg["jsonl_file"] = os.environ["MYSPEECH_JSONL_FILE"]
    for env, key in (
        ("MYSPEECH_LOG_ROTATE_BYTES", "rotate_max_bytes"),
        ("MYSPEECH_LOG_ROTATE_BACKUP", "rotate_backup_count"),
    ):
        value = os.getenv(env)
        if value and value.isdigit():
            cfg[key] = int(value)

    return cfg
