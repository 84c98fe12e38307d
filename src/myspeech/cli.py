"""
Command-Line Interface for myspeech.

Generates speech through the same SpeechService the HTTP API uses, without
running the server, and exposes a few maintenance commands.

Usage Examples:
    # Generate with the default voice; prints the artifact path
    myspeech "Hello world"

    # Pick a voice and copy the artifact somewhere
    myspeech --text "Hello world" --voice piper_en_amy --out hello.wav

    # Batch: one line per item, artifacts copied into a directory
    myspeech --file lines.txt --voice espeak_en --out out/

    # Catalog and engines
    myspeech --voices --language en
    myspeech --engines

    # Inspect a WAV header, run a retention sweep
    myspeech --inspect public/audio/speech_3f9a0c12be47.wav
    myspeech --sweep

Environment Variables:
    MYSPEECH_SETTINGS: Settings YAML (default config/settings.yaml)
    MYSPEECH_OUTPUT_DIR: Output directory override
    MYSPEECH_VOICES: Voice catalog override
"""

from __future__ import annotations

import argparse
import json
import shutil
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from myspeech.core.config import load_settings_or_default
from myspeech.core.logging import configure_logging, get_logger, info, set_request_id
from myspeech.engines.registry import EngineId
from myspeech.errors import SpeechError
from myspeech.services.speech_service import SpeechService
from myspeech.utils.audio import parse_wav_header


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="myspeech CLI")

    # Input
    parser.add_argument("text_pos", nargs="?", help="Text to synthesize (positional)")
    parser.add_argument("--text", help="Text to synthesize")
    parser.add_argument("--file", help="Batch input file (1 line = 1 item)")
    parser.add_argument("--voice", help="Voice ID (default from settings)")

    # Output
    parser.add_argument("--out", help="Copy the artifact here (file, or dir in batch mode)")
    parser.add_argument("--json", action="store_true", help="Print machine-readable JSON")

    # Catalog / maintenance
    parser.add_argument("--voices", action="store_true", help="List voices and exit")
    parser.add_argument("--language", help="Language filter for --voices")
    parser.add_argument("--engine", help="Engine filter for --voices")
    parser.add_argument("--engines", action="store_true", help="List engines and exit")
    parser.add_argument("--inspect", metavar="FILE", help="Print the WAV header of FILE and exit")
    parser.add_argument("--sweep", action="store_true", help="Run a retention sweep and exit")
    return parser.parse_args(argv)


def _load_texts(args: argparse.Namespace) -> List[str]:
    """
    Texts to generate, from --file, --text or the positional argument.

    Raises:
        SystemExit: If no input is given or --file is combined with text.
    """
    text = args.text or args.text_pos

    if args.file:
        if text:
            raise SystemExit("Use --file without --text or positional text.")
        lines = Path(args.file).read_text(encoding="utf-8").splitlines()
        items = [line.strip() for line in lines if line.strip()]
        if not items:
            raise SystemExit("Input file is empty.")
        return items

    if not text:
        raise SystemExit("Provide --text or a positional text.")
    return [text]


def _resolve_copy_paths(args: argparse.Namespace, count: int) -> List[Optional[Path]]:
    if not args.out:
        return [None] * count
    if args.file:
        out_dir = Path(args.out)
        out_dir.mkdir(parents=True, exist_ok=True)
        return [out_dir / f"item_{i + 1:03d}.wav" for i in range(count)]
    out_path = Path(args.out)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    return [out_path]


def _emit(payload: Dict[str, Any], as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, ensure_ascii=False))
    else:
        print(payload)


def _inspect(path: str, as_json: bool) -> int:
    try:
        with open(path, "rb") as f:
            header = parse_wav_header(f.read(64))
    except (OSError, ValueError) as e:
        _emit({"success": False, "file": path, "message": str(e)}, as_json)
        return 1
    _emit({
        "success": True,
        "file": path,
        **asdict(header),
        "num_samples": header.num_samples,
        "duration_seconds": round(header.duration_seconds, 4),
    }, as_json)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = _parse_args(argv)

    # Needs no service
    if args.inspect:
        return _inspect(args.inspect, args.json)

    configure_logging()
    log = get_logger("myspeech.cli")
    set_request_id(str(uuid4())[:12])

    service = SpeechService(load_settings_or_default())

    if args.voices:
        voices = service.catalog.filter(language=args.language, engine=args.engine)
        if args.json:
            _emit({"success": True, "total": len(voices), "voices": [v.to_dict() for v in voices]}, True)
        else:
            for v in voices:
                print(f"{v.id:40s} {v.engine:10s} {v.language:8s} {v.gender:8s} {v.quality}")
            print(f"{len(voices)} voices")
        return 0

    if args.engines:
        rows = [
            {"id": e.value, "available": service.registry.is_registered(e.value),
             "voices": len(service.catalog.filter(engine=e.value))}
            for e in EngineId
        ]
        if args.json:
            _emit({"success": True, "engines": rows}, True)
        else:
            for row in rows:
                status = "OK" if row["available"] else "--"
                print(f"[{status}] {row['id']:10s} {row['voices']} voices")
        return 0

    if args.sweep:
        try:
            removed = service.sweep()
        except SpeechError as e:
            _emit(e.to_dict(), args.json)
            return 1
        _emit({"success": True, "removed": removed, **service.store.storage_info()}, args.json)
        return 0

    texts = _load_texts(args)
    copy_paths = _resolve_copy_paths(args, len(texts))
    voice_id = args.voice or service.config.synthesis.default_voice

    results = []
    for text, copy_path in zip(texts, copy_paths):
        info(log, "generate_start", chars=len(text), voice=voice_id)
        try:
            result = service.generate(text, voice_id)
        except SpeechError as e:
            _emit(e.to_dict(), args.json)
            return 1

        item: Dict[str, Any] = {
            "file": str(result.path),
            "url": result.url,
            "bytes": result.audio_bytes,
            "duration": result.duration,
            "sample_rate": result.sample_rate,
            "source": result.source,
        }
        if copy_path is not None:
            shutil.copyfile(result.path, copy_path)
            item["out"] = str(copy_path)
        results.append(item)

    _emit({"success": True, "voice": voice_id, "items": results}, args.json)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
