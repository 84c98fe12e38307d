"""
Engine Registry.

Maps a voice's engine id to a handler that knows how to build the external
command for that backend. Handlers are stateless: given (text, voice,
output path) they produce a CommandSpec, and ``synthesize()`` hands it to
the ProcessInvoker.

Supported engines (closed set, see EngineId):
    coqui, mozilla      tts --text=T --model_name M [--speaker_idx S] --out_path O
    piper               piper --model <models>/piper/M.onnx --output_file O   (text on stdin)
    vits, glowtts,
    tacotron2           python -m <pkg>.inference --text=T --model M --output O
    fastpitch           python -m nemo.collections.tts.models --text=T --model M --output O
    mimic3              mimic3 --voice M -- T   (stdout is the audio)
    espeak              espeak-ng -v <M or language> -w O -- T
    opentts             curl -sf -G --data-urlencode voice=M --data-urlencode text=T URL -o O

Every command is an argv list. User text is never a separate token an option
parser could take for a flag: it is glued to its option (--text=T), follows
"--", or travels on stdin. The model id is the only catalog value that
lands in a path or a flag value position, so it is checked against
MODEL_ID_PATTERN before any command is built.

Usage:
    registry = EngineRegistry(config.engines)
    handler = registry.lookup(voice.engine)
    if handler is None:
        ...  # go straight to fallback
    ok = handler.synthesize(invoker, text, voice, staging_path, cancel)
"""
from __future__ import annotations

import re
import threading
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from myspeech.catalog import Voice
from myspeech.core.config import Defaults, EngineOverride, EnginesConfig
from myspeech.core.logging import debug, get_logger, info, warn
from myspeech.engines.invoker import CommandSpec, ProcessInvoker

_LOG = get_logger("myspeech.engines")

MODEL_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.:/@+-]*$")


class EngineId(str, Enum):
    COQUI = "coqui"
    PIPER = "piper"
    MOZILLA = "mozilla"
    VITS = "vits"
    GLOWTTS = "glowtts"
    FASTPITCH = "fastpitch"
    TACOTRON2 = "tacotron2"
    MIMIC3 = "mimic3"
    ESPEAK = "espeak"
    OPENTTS = "opentts"

    @classmethod
    def parse(cls, value: str) -> Optional["EngineId"]:
        """EngineId for ``value`` (case-insensitive), or None if unsupported."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return None


class EngineUnavailable(Exception):
    """A handler refused to build a command (bad or missing model id)."""

    def __init__(self, engine: str, reason: str):
        self.engine = engine
        self.reason = reason
        super().__init__(f"{engine}: {reason}")


def validate_model_id(engine: str, model: str) -> str:
    """
    Check a catalog model id before it is put on a command line.

    Raises:
        EngineUnavailable: If the id is empty, contains a ``..`` segment or
            characters outside MODEL_ID_PATTERN.
    """
    if not model:
        raise EngineUnavailable(engine, "voice has no model")
    if not MODEL_ID_PATTERN.match(model):
        raise EngineUnavailable(engine, f"invalid model id {model!r}")
    if ".." in model:
        raise EngineUnavailable(engine, f"model id {model!r} contains '..'")
    return model


# =============================================================================
# Handlers
# =============================================================================

class EngineHandler:
    """
    Base class for engine handlers.

    Subclasses implement ``build_argv``; everything else (timeouts,
    executable override, invocation) is shared.
    """

    default_executable: str = ""

    def __init__(self, engine_id: EngineId, timeout: float, executable: Optional[str] = None):
        self.engine_id = engine_id
        self.timeout = timeout
        self.executable = executable or self.default_executable

    @property
    def name(self) -> str:
        return self.engine_id.value

    def build_argv(self, text: str, voice: Voice, output_path: Path) -> List[str]:
        raise NotImplementedError

    def command(self, text: str, voice: Voice, output_path: Path) -> CommandSpec:
        """
        Build the CommandSpec for one synthesis.

        Raises:
            EngineUnavailable: If the voice's model id is unusable.
        """
        return CommandSpec(argv=self.build_argv(text, voice, output_path), timeout=self.timeout)

    def synthesize(
        self,
        invoker: ProcessInvoker,
        text: str,
        voice: Voice,
        output_path: Path,
        cancel: Optional[threading.Event] = None,
    ) -> bool:
        """Run the engine into ``output_path``. False on any failure."""
        try:
            spec = self.command(text, voice, output_path)
        except EngineUnavailable as e:
            warn(_LOG, "engine_refused", engine=self.name, voice=voice.id, reason=e.reason)
            return False
        return invoker.invoke(spec, cancel=cancel)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(engine={self.name!r}, executable={self.executable!r}, timeout={self.timeout})"


class CoquiHandler(EngineHandler):
    """Coqui / Mozilla ``tts`` CLI. Both share the same command line."""
    default_executable = "tts"

    def build_argv(self, text: str, voice: Voice, output_path: Path) -> List[str]:
        model = validate_model_id(self.name, voice.model)
        argv = [self.executable, f"--text={text}", "--model_name", model]
        if voice.speaker:
            argv += ["--speaker_idx", voice.speaker]
        argv += ["--out_path", str(output_path)]
        return argv


class PiperHandler(EngineHandler):
    """Piper reads the text from stdin and loads ``<models_dir>/piper/<model>.onnx``."""
    default_executable = "piper"

    def __init__(self, engine_id: EngineId, timeout: float, models_dir: str,
                 executable: Optional[str] = None):
        super().__init__(engine_id, timeout, executable)
        self.models_dir = Path(models_dir)

    def build_argv(self, text: str, voice: Voice, output_path: Path) -> List[str]:
        model = validate_model_id(self.name, voice.model)
        model_path = self.models_dir / "piper" / f"{model}.onnx"
        return [self.executable, "--model", str(model_path), "--output_file", str(output_path)]

    def command(self, text: str, voice: Voice, output_path: Path) -> CommandSpec:
        return CommandSpec(
            argv=self.build_argv(text, voice, output_path),
            stdin_text=text,
            timeout=self.timeout,
        )


class PythonModuleHandler(EngineHandler):
    """Engines shipped as Python packages with an inference entry module."""

    def __init__(self, engine_id: EngineId, timeout: float, module: str,
                 executable: Optional[str] = None):
        super().__init__(engine_id, timeout, executable or Defaults.PYTHON_EXECUTABLE)
        self.module = module

    def build_argv(self, text: str, voice: Voice, output_path: Path) -> List[str]:
        model = validate_model_id(self.name, voice.model)
        return [
            self.executable, "-m", self.module,
            f"--text={text}",
            "--model", model,
            "--output", str(output_path),
        ]


class Mimic3Handler(EngineHandler):
    """Mimic3 writes WAV to stdout; the invoker redirects it into the output file."""
    default_executable = "mimic3"

    def build_argv(self, text: str, voice: Voice, output_path: Path) -> List[str]:
        model = validate_model_id(self.name, voice.model)
        # "--" ends option parsing so text starting with "-" stays text
        return [self.executable, "--voice", model, "--", text]

    def command(self, text: str, voice: Voice, output_path: Path) -> CommandSpec:
        return CommandSpec(
            argv=self.build_argv(text, voice, output_path),
            stdout_path=Path(output_path),
            timeout=self.timeout,
        )


class EspeakHandler(EngineHandler):
    default_executable = "espeak-ng"

    def build_argv(self, text: str, voice: Voice, output_path: Path) -> List[str]:
        # espeak voices are language codes; the model field overrides the language
        lang = validate_model_id(self.name, voice.model or voice.language)
        return [self.executable, "-v", lang, "-w", str(output_path), "--", text]


class OpenTTSHandler(EngineHandler):
    """OpenTTS HTTP server, fetched with curl so it runs under the same invoker."""
    default_executable = "curl"

    def __init__(self, engine_id: EngineId, timeout: float, url: str,
                 executable: Optional[str] = None):
        super().__init__(engine_id, timeout, executable)
        self.url = url

    def build_argv(self, text: str, voice: Voice, output_path: Path) -> List[str]:
        model = validate_model_id(self.name, voice.model)
        return [
            self.executable, "-sf", "-G",
            "--data-urlencode", f"voice={model}",
            "--data-urlencode", f"text={text}",
            self.url,
            "-o", str(output_path),
        ]


# =============================================================================
# Factory
# =============================================================================

def build_handler(engine_id: EngineId, config: Optional[EnginesConfig] = None) -> EngineHandler:
    """
    Create the handler for ``engine_id``.

    Args:
        engine_id: Engine to build a handler for.
        config: Engines config (timeouts, executables, models dir, URLs).

    Returns:
        Configured EngineHandler.

    Raises:
        ValueError: If engine_id has no handler.
    """
    config = config or EnginesConfig()
    override = config.overrides.get(engine_id.value, EngineOverride())
    timeout = override.timeout_s or config.default_timeout_s
    exe = override.executable

    if engine_id == EngineId.COQUI:
        return CoquiHandler(engine_id, timeout, exe)

    if engine_id == EngineId.MOZILLA:
        return CoquiHandler(engine_id, timeout, exe)

    if engine_id == EngineId.PIPER:
        return PiperHandler(engine_id, timeout, config.models_dir, exe)

    if engine_id == EngineId.VITS:
        return PythonModuleHandler(engine_id, timeout, "vits.inference", exe or config.python_executable)

    if engine_id == EngineId.GLOWTTS:
        return PythonModuleHandler(engine_id, timeout, "glowtts.inference", exe or config.python_executable)

    if engine_id == EngineId.TACOTRON2:
        return PythonModuleHandler(engine_id, timeout, "tacotron2.inference", exe or config.python_executable)

    if engine_id == EngineId.FASTPITCH:
        return PythonModuleHandler(
            engine_id, timeout, "nemo.collections.tts.models", exe or config.python_executable
        )

    if engine_id == EngineId.MIMIC3:
        return Mimic3Handler(engine_id, timeout, exe)

    if engine_id == EngineId.ESPEAK:
        # Formant synthesis is fast; it gets the short budget unless overridden
        return EspeakHandler(engine_id, override.timeout_s or Defaults.ENGINE_LIGHT_TIMEOUT_S, exe)

    if engine_id == EngineId.OPENTTS:
        return OpenTTSHandler(engine_id, timeout, config.opentts_url, exe)

    raise ValueError(f"No handler for engine: {engine_id}")


class EngineRegistry:
    """
    Handlers for every enabled engine, built once at startup.

    Construction fails if any EngineId member has no handler, so a new
    engine can't be added to the enum without also being wired up here.
    """

    def __init__(self, config: Optional[EnginesConfig] = None):
        self._config = config or EnginesConfig()

        # Build all handlers first: verifies the factory covers the whole enum
        all_handlers = {engine_id: build_handler(engine_id, self._config) for engine_id in EngineId}

        enabled = self._resolve_enabled(self._config.enabled)
        self._handlers: Dict[EngineId, EngineHandler] = {
            engine_id: handler for engine_id, handler in all_handlers.items() if engine_id in enabled
        }
        info(_LOG, "engine_registry_init",
             registered=[e.value for e in self._handlers],
             disabled=[e.value for e in EngineId if e not in self._handlers])

    @staticmethod
    def _resolve_enabled(enabled: Optional[List[str]]) -> set:
        if enabled is None:
            return set(EngineId)
        resolved = set()
        for name in enabled:
            engine_id = EngineId.parse(name)
            if engine_id is None:
                warn(_LOG, "engine_unknown_in_config", engine=name)
                continue
            resolved.add(engine_id)
        return resolved

    def lookup(self, engine: str) -> Optional[EngineHandler]:
        """Handler for a raw engine string, or None (unknown or disabled)."""
        engine_id = EngineId.parse(engine)
        if engine_id is None:
            debug(_LOG, "engine_lookup_unknown", engine=engine)
            return None
        return self._handlers.get(engine_id)

    def is_registered(self, engine: str) -> bool:
        return self.lookup(engine) is not None

    @property
    def registered(self) -> List[str]:
        return [engine_id.value for engine_id in self._handlers]

    def __len__(self) -> int:
        return len(self._handlers)
