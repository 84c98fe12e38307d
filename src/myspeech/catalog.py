"""
Voice Catalog.

Read-only view of the voices the service can speak with, loaded from a JSON
document:

    {
      "voices": [
        {"id": "piper_en_amy", "name": "Amy", "engine": "piper",
         "language": "en-US", "gender": "female", "model": "en_US-amy-medium",
         "quality": "high", "sampleRate": 22050, "enabled": true}
      ],
      "engines":   {"piper": {"name": "Piper", "description": "..."}},
      "languages": {"en": {"name": "English", "flag": "🇬🇧"}}
    }

Missing voice fields take the same defaults the catalog editor writes:
gender "neutral", model "", quality "medium", enabled true. A missing
sampleRate takes synthesis.default_sample_rate (22050 unless configured).

A VoiceCatalog is an immutable snapshot. Reloading builds a new snapshot and
the service swaps its reference; callers holding the old one keep a
consistent view.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional

from myspeech.core.config import Defaults
from myspeech.core.logging import get_logger, info

_LOG = get_logger("myspeech.catalog")

GENDERS = ("female", "male", "neutral")
QUALITIES = ("low", "medium", "high", "premium")


class CatalogError(ValueError):
    """The catalog document is malformed (bad JSON, missing ids, duplicates)."""
    pass


@dataclass(frozen=True)
class Voice:
    id: str
    name: str
    engine: str
    language: str
    gender: str = "neutral"
    model: str = ""
    quality: str = "medium"
    sample_rate: int = Defaults.DEFAULT_SAMPLE_RATE
    enabled: bool = True
    speaker: str = ""

    @property
    def base_language(self) -> str:
        """Base language code, e.g. "en" for "en-US"."""
        return self.language.split("-")[0]

    def summary(self) -> Dict[str, Any]:
        """The voice block returned with a generation result."""
        return {
            "id": self.id,
            "name": self.name,
            "engine": self.engine,
            "language": self.language,
            "gender": self.gender,
            "quality": self.quality,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Catalog JSON shape (camelCase sampleRate)."""
        d: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "engine": self.engine,
            "language": self.language,
            "gender": self.gender,
            "model": self.model,
            "quality": self.quality,
            "sampleRate": self.sample_rate,
            "enabled": self.enabled,
        }
        if self.speaker:
            d["speaker"] = self.speaker
        return d

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], default_sample_rate: int = Defaults.DEFAULT_SAMPLE_RATE) -> "Voice":
        """
        Build a Voice from one catalog entry.

        ``default_sample_rate`` applies when the entry has no sampleRate.

        Raises:
            CatalogError: If a required field is missing or a value is invalid.
        """
        if not isinstance(data, Mapping):
            raise CatalogError(f"voice entry must be an object, got {type(data).__name__}: {data!r}")

        missing = [k for k in ("id", "name", "engine", "language") if not data.get(k)]
        if missing:
            raise CatalogError(f"voice entry missing {', '.join(missing)}: {dict(data)!r}")

        gender = str(data.get("gender") or "neutral").lower()
        if gender not in GENDERS:
            raise CatalogError(f"voice {data['id']}: unknown gender {gender!r}")

        quality = str(data.get("quality") or "medium").lower()
        if quality not in QUALITIES:
            raise CatalogError(f"voice {data['id']}: unknown quality {quality!r}")

        sample_rate = data.get("sampleRate", data.get("sample_rate")) or default_sample_rate
        try:
            sample_rate = int(sample_rate)
        except (TypeError, ValueError):
            raise CatalogError(f"voice {data['id']}: sampleRate must be an integer, got {sample_rate!r}")
        if sample_rate <= 0:
            raise CatalogError(f"voice {data['id']}: sampleRate must be positive, got {sample_rate}")

        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            engine=str(data["engine"]).lower(),
            language=str(data["language"]),
            gender=gender,
            model=str(data.get("model") or ""),
            quality=quality,
            sample_rate=sample_rate,
            enabled=data.get("enabled") is not False,
            speaker=str(data.get("speaker") or ""),
        )


def _descriptions(section: str, value: Optional[Mapping[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Copy an engines/languages section, each entry an object keyed by id."""
    if not value:
        return {}
    if not isinstance(value, Mapping):
        raise CatalogError(f"'{section}' must be an object, got {type(value).__name__}")
    copied = {}
    for key, entry in value.items():
        if not isinstance(entry, Mapping):
            raise CatalogError(f"{section}.{key} must be an object, got {type(entry).__name__}")
        copied[str(key)] = dict(entry)
    return copied


class VoiceCatalog:
    """Immutable snapshot of voices plus engine and language descriptions."""

    def __init__(
        self,
        voices: Iterable[Voice] = (),
        engines: Optional[Mapping[str, Mapping[str, Any]]] = None,
        languages: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ):
        by_id: Dict[str, Voice] = {}
        for voice in voices:
            if voice.id in by_id:
                raise CatalogError(f"duplicate voice id: {voice.id}")
            by_id[voice.id] = voice

        self._voices = MappingProxyType(by_id)
        self._engines = MappingProxyType(_descriptions("engines", engines))
        self._languages = MappingProxyType(_descriptions("languages", languages))

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        default_sample_rate: int = Defaults.DEFAULT_SAMPLE_RATE,
    ) -> "VoiceCatalog":
        if not isinstance(data, Mapping):
            raise CatalogError("catalog document must be a JSON object")
        voices_raw = data.get("voices", [])
        if not isinstance(voices_raw, list):
            raise CatalogError("'voices' must be a list")
        return cls(
            voices=[Voice.from_dict(v, default_sample_rate) for v in voices_raw],
            engines=data.get("engines") or {},
            languages=data.get("languages") or {},
        )

    @property
    def voices(self) -> Mapping[str, Voice]:
        return self._voices

    @property
    def engines(self) -> Mapping[str, Dict[str, Any]]:
        return self._engines

    @property
    def languages(self) -> Mapping[str, Dict[str, Any]]:
        return self._languages

    def __len__(self) -> int:
        return len(self._voices)

    def __contains__(self, voice_id: object) -> bool:
        return voice_id in self._voices

    def lookup(self, voice_id: str) -> Optional[Voice]:
        return self._voices.get(voice_id)

    def filter(
        self,
        language: Optional[str] = None,
        engine: Optional[str] = None,
        gender: Optional[str] = None,
    ) -> List[Voice]:
        """
        Voices matching every given filter, in catalog order.

        ``language`` matches exactly or as a prefix: "en" selects "en" and
        "en-US" but not "eng".
        """
        result = []
        for voice in self._voices.values():
            if language and not (voice.language == language or voice.language.startswith(language + "-")):
                continue
            if engine and voice.engine != engine:
                continue
            if gender and voice.gender != gender:
                continue
            result.append(voice)
        return result

    def engine_info(self, engine: str) -> Optional[Dict[str, Any]]:
        return self._engines.get(engine)

    def language_info(self, language: str) -> Optional[Dict[str, Any]]:
        """Info for "en-US", falling back to the base language "en"."""
        return self._languages.get(language) or self._languages.get(language.split("-")[0])

    def engine_stats(self) -> Dict[str, Dict[str, Any]]:
        """Per-engine info with voiceCount, for every engine in the document."""
        stats: Dict[str, Dict[str, Any]] = {}
        for engine_id, engine in self._engines.items():
            stats[engine_id] = {
                **engine,
                "id": engine_id,
                "voiceCount": sum(1 for v in self._voices.values() if v.engine == engine_id),
            }
        return stats

    def language_stats(self) -> Dict[str, Dict[str, Any]]:
        """Per-language (as tagged on voices) info with voiceCount and engines."""
        stats: Dict[str, Dict[str, Any]] = {}
        for voice in self._voices.values():
            lang = voice.language
            if lang not in stats:
                stats[lang] = {
                    **(self.language_info(lang) or {}),
                    "code": lang,
                    "voiceCount": 0,
                    "engines": [],
                }
            stats[lang]["voiceCount"] += 1
            if voice.engine not in stats[lang]["engines"]:
                stats[lang]["engines"].append(voice.engine)
        return stats


def load_catalog(path: str | Path, default_sample_rate: int = Defaults.DEFAULT_SAMPLE_RATE) -> VoiceCatalog:
    """
    Load a catalog snapshot from a JSON file.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        CatalogError: If the JSON is invalid or an entry fails validation.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"voice catalog not found: {p.resolve()}")

    try:
        with p.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise CatalogError(f"invalid catalog JSON in {p}: {e}") from e

    catalog = VoiceCatalog.from_dict(data, default_sample_rate)
    info(_LOG, "catalog_loaded", path=str(p), voices=len(catalog), engines=len(catalog.engines))
    return catalog
