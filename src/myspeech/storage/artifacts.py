"""
Generated Audio Artifact Store.

Every successful generation leaves exactly one file in the output directory,
served to clients under a public URL prefix:

    {base_dir}/
        speech_3f9a0c12be47.wav
        speech_a81c55d0e2f9.wav
        ...

Naming:
    "speech_" + first 12 hex chars of sha256(text | voice_id | time_ns | n)
    where n is a process-local counter, so identical requests issued in
    the same clock tick still get distinct names.

Writes:
    - Fallback audio is written to a temp file and renamed into place.
    - Engines write into a ``.part`` staging path; ``promote()`` renames it
      to the final name once the output has been checked.
    Either way a reader never sees a half-written artifact.

Retention:
    After every write, ``sweep()`` keeps only the newest ``retention_limit``
    audio files (*.wav, *.mp3) by modification time and deletes the rest.
    Files that vanish between listing and deletion (another sweep got
    there first, or an external cleanup) are ignored.

Usage:
    store = ArtifactStore("public/audio", public_prefix="/audio", retention_limit=200)
    name = store.make_filename("Hello", "piper_en_amy")
    path = store.persist(name, wav_bytes)
    url = store.url_for(name)       # "/audio/speech_....wav"
"""
from __future__ import annotations

import hashlib
import itertools
import os
import re
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from myspeech.core.config import Defaults
from myspeech.core.logging import debug, get_logger, info, verbose, warn
from myspeech.core.metrics import metrics
from myspeech.errors import StorageError
from myspeech.utils.timeit import timeit

_LOG = get_logger("myspeech.storage")

AUDIO_SUFFIXES = (".wav", ".mp3")
FILENAME_PATTERN = re.compile(r"^speech_[0-9a-f]{12}\.(wav|mp3)$")
STAGING_SUFFIX = ".part"


class ArtifactStore:
    """
    Names, writes and prunes generated audio files.

    Thread-safe: naming uses an atomic counter and each write goes to a
    unique temp path. Concurrent sweeps may race on the same files; the
    loser's unlink of an already-deleted file is a no-op.
    """

    def __init__(
        self,
        base_dir: str | Path,
        public_prefix: str = Defaults.OUTPUT_PUBLIC_PREFIX,
        retention_limit: int = Defaults.RETENTION_LIMIT,
    ):
        if retention_limit <= 0:
            raise ValueError(f"retention_limit must be positive, got {retention_limit}")
        # Resolved once so every path handed out is absolute
        self._base_dir = Path(base_dir).resolve()
        self._public_prefix = public_prefix.rstrip("/")
        self._retention_limit = retention_limit
        self._counter = itertools.count()
        self._counter_lock = threading.Lock()

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    @property
    def retention_limit(self) -> int:
        return self._retention_limit

    def ensure_dir(self) -> None:
        """
        Create the output directory if needed.

        Raises:
            StorageError: If the directory can't be created.
        """
        try:
            self._base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"cannot create output directory {self._base_dir}: {e}") from e

    # =========================================================================
    # Naming
    # =========================================================================

    def make_filename(self, text: str, voice_id: str) -> str:
        with self._counter_lock:
            n = next(self._counter)
        h = hashlib.sha256()
        h.update(text.encode("utf-8"))
        h.update(b"|")
        h.update(voice_id.encode("utf-8"))
        h.update(b"|")
        h.update(str(time.time_ns()).encode("ascii"))
        h.update(b"|")
        h.update(str(n).encode("ascii"))
        return f"speech_{h.hexdigest()[:12]}.wav"

    def path_for(self, filename: str) -> Path:
        return self._base_dir / filename

    def url_for(self, filename: str) -> str:
        return f"{self._public_prefix}/{filename}"

    # =========================================================================
    # Writing
    # =========================================================================

    def staging_path(self, filename: str) -> Path:
        """Where an engine should write before the output is accepted."""
        return self._base_dir / f"{filename}{STAGING_SUFFIX}"

    def discard_staging(self, staging: Path) -> None:
        try:
            staging.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            warn(_LOG, "staging_discard_failed", path=str(staging), error=str(e))

    def promote(self, staging: Path, filename: str) -> Path:
        """
        Move an engine's staging file to its final name, then sweep.

        Raises:
            StorageError: If the rename fails.
        """
        final = self.path_for(filename)
        try:
            os.replace(staging, final)
        except OSError as e:
            raise StorageError(f"cannot move {staging.name} into place: {e}") from e
        debug(_LOG, "artifact_promoted", file=filename)
        self.sweep()
        return final

    def persist(self, filename: str, data: bytes) -> Path:
        """
        Atomically write ``data`` as ``filename``, then sweep.

        Raises:
            StorageError: If the write fails.
        """
        self.ensure_dir()
        final = self.path_for(filename)
        tmp = self._base_dir / f".{filename}.{threading.get_ident()}.tmp"

        with timeit("storage_write") as t:
            try:
                tmp.write_bytes(data)
                os.replace(tmp, final)
            except OSError as e:
                self.discard_staging(tmp)
                raise StorageError(f"cannot write {filename}: {e}") from e

        verbose(_LOG, "artifact_saved", file=filename, bytes=len(data), seconds=t.seconds)
        self.sweep()
        return final

    # =========================================================================
    # Retention
    # =========================================================================

    def _list_artifacts(self) -> List[Tuple[int, str, Path, int]]:
        """(mtime_ns, name, path, size) for each audio file in the directory."""
        entries = []
        try:
            with os.scandir(self._base_dir) as it:
                for entry in it:
                    if not entry.name.endswith(AUDIO_SUFFIXES):
                        continue
                    try:
                        st = entry.stat()
                    except FileNotFoundError:
                        continue
                    entries.append((st.st_mtime_ns, entry.name, Path(entry.path), st.st_size))
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StorageError(f"cannot list {self._base_dir}: {e}") from e
        return entries

    def sweep(self, limit: Optional[int] = None) -> int:
        """
        Delete all but the newest ``limit`` artifacts.

        Args:
            limit: Files to keep; defaults to the store's retention limit.

        Returns:
            Number of files deleted by this call.

        Raises:
            StorageError: If the directory can't be listed.
        """
        keep = self._retention_limit if limit is None else limit
        entries = self._list_artifacts()
        if len(entries) <= keep:
            return 0

        entries.sort(key=lambda e: (e[0], e[1]), reverse=True)
        removed = 0
        for _, name, path, _ in entries[keep:]:
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                warn(_LOG, "sweep_unlink_failed", file=name, error=str(e))

        if removed:
            metrics.record_evictions(removed)
            info(_LOG, "sweep", removed=removed, kept=keep)
        return removed

    def delete(self, filename: str) -> bool:
        """
        Delete one artifact by name.

        Returns:
            True if a file was removed, False if it didn't exist.

        Raises:
            ValueError: If ``filename`` isn't an artifact name.
        """
        if not FILENAME_PATTERN.match(filename):
            raise ValueError(f"not an artifact name: {filename!r}")
        try:
            self.path_for(filename).unlink()
        except FileNotFoundError:
            return False
        info(_LOG, "artifact_deleted", file=filename)
        return True

    def storage_info(self) -> Dict[str, Any]:
        entries = self._list_artifacts()
        return {
            "dir": str(self._base_dir),
            "file_count": len(entries),
            "total_bytes": sum(e[3] for e in entries),
            "retention_limit": self._retention_limit,
        }
