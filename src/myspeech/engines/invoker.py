"""
External Process Invoker.

Runs one external synthesis command described by a CommandSpec and reports
plain success or failure. The invoker never raises: a missing executable,
a non-zero exit, a timeout or a cancellation all end up as ``False`` plus
a log line carrying the command's stderr tail.

Process Model:
    - argv list, never a shell string (shell=False)
    - stdin carries the text when the engine reads it there (UTF-8)
    - stdout is redirected into a file for engines that print audio
    - stderr is spooled to a temp file so a chatty child can't block on a
      full pipe while we wait on it

Concurrency:
    A BoundedSemaphore caps the number of live children. Time spent
    waiting for a slot counts against the same per-command timeout, so a
    request never waits longer than its engine's budget in total.

Usage:
    invoker = ProcessInvoker(max_processes=4)
    ok = invoker.invoke(CommandSpec(argv=["espeak-ng", "-w", out, "hi"], timeout=30.0))
"""
from __future__ import annotations

import subprocess
import tempfile
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import IO, List, Optional

from myspeech.core.config import Defaults
from myspeech.core.logging import debug, get_logger, verbose, warn

_LOG = get_logger("myspeech.invoker")

# How often a waiting invoke() wakes up to check its deadline and cancel token
POLL_INTERVAL_S = 0.05

STDERR_TAIL_CHARS = 500


@dataclass(frozen=True)
class CommandSpec:
    """
    A fully resolved external command.

    Attributes:
        argv: Program and arguments. argv[0] is looked up on PATH.
        stdin_text: Text written to the child's stdin, or None for no stdin.
        stdout_path: File receiving the child's stdout, or None to discard it.
        timeout: Hard limit in seconds for the whole invocation.
    """
    argv: List[str]
    stdin_text: Optional[str] = None
    stdout_path: Optional[Path] = None
    timeout: float = Defaults.ENGINE_TIMEOUT_S

    @property
    def program(self) -> str:
        return self.argv[0] if self.argv else ""


class ProcessInvoker:
    """Runs CommandSpecs with a timeout, cancellation and a process cap."""

    def __init__(self, max_processes: int = Defaults.ENGINE_MAX_PROCESSES):
        if max_processes <= 0:
            raise ValueError(f"max_processes must be positive, got {max_processes}")
        self._max_processes = max_processes
        self._slots = threading.BoundedSemaphore(max_processes)

    @property
    def max_processes(self) -> int:
        return self._max_processes

    def invoke(self, spec: CommandSpec, cancel: Optional[threading.Event] = None) -> bool:
        """
        Run ``spec`` to completion.

        Args:
            spec: Command to run.
            cancel: When set while the child runs, the child is killed.

        Returns:
            True only if the child exited with status 0 within the timeout.
        """
        if not spec.argv:
            warn(_LOG, "invoke_empty_argv")
            return False

        deadline = time.monotonic() + spec.timeout
        if not self._acquire_slot(deadline, cancel):
            warn(_LOG, "invoke_no_slot", program=spec.program, timeout=spec.timeout)
            return False

        try:
            return self._run(spec, deadline, cancel)
        finally:
            self._slots.release()

    def _acquire_slot(self, deadline: float, cancel: Optional[threading.Event]) -> bool:
        while True:
            if cancel is not None and cancel.is_set():
                return False
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            if self._slots.acquire(timeout=min(remaining, POLL_INTERVAL_S)):
                return True

    def _run(self, spec: CommandSpec, deadline: float, cancel: Optional[threading.Event]) -> bool:
        verbose(_LOG, "invoke", argv=spec.argv, timeout=spec.timeout,
                stdin=spec.stdin_text is not None,
                stdout_path=str(spec.stdout_path) if spec.stdout_path else None)
        t0 = time.perf_counter()

        try:
            stderr_file = tempfile.TemporaryFile()
        except OSError as e:
            warn(_LOG, "invoke_stderr_unavailable", program=spec.program,
                 error=str(e), error_type=type(e).__name__)
            return False

        stdout_file: Optional[IO[bytes]] = None
        with stderr_file:
            try:
                if spec.stdout_path is not None:
                    stdout_file = open(spec.stdout_path, "wb")
                proc = subprocess.Popen(
                    spec.argv,
                    stdin=subprocess.PIPE if spec.stdin_text is not None else subprocess.DEVNULL,
                    stdout=stdout_file if stdout_file is not None else subprocess.DEVNULL,
                    stderr=stderr_file,
                    shell=False,
                )
            except OSError as e:
                # FileNotFoundError / PermissionError for a missing or non-executable program
                if stdout_file is not None:
                    stdout_file.close()
                warn(_LOG, "invoke_spawn_failed", program=spec.program,
                     error=str(e), error_type=type(e).__name__)
                return False

            try:
                if spec.stdin_text is not None:
                    self._feed_stdin(proc, spec.stdin_text)

                outcome = self._wait(proc, deadline, cancel)
            finally:
                if proc.poll() is None:
                    proc.kill()
                    proc.wait()
                if stdout_file is not None:
                    stdout_file.close()

            seconds = round(time.perf_counter() - t0, 4)
            if outcome == "exited" and proc.returncode == 0:
                debug(_LOG, "invoke_ok", program=spec.program, seconds=seconds)
                return True

            warn(
                _LOG, "invoke_failed",
                program=spec.program,
                reason=outcome if outcome != "exited" else "exit_status",
                returncode=proc.returncode,
                stderr=_read_tail(stderr_file),
                seconds=seconds,
            )
            return False

    @staticmethod
    def _feed_stdin(proc: subprocess.Popen, text: str) -> None:
        if proc.stdin is None:
            debug(_LOG, "invoke_stdin_missing")
            return
        try:
            proc.stdin.write(text.encode("utf-8"))
        except BrokenPipeError:
            # Child exited before reading everything; its exit status decides
            debug(_LOG, "invoke_stdin_closed_early")
        finally:
            try:
                proc.stdin.close()
            except BrokenPipeError:
                pass

    @staticmethod
    def _wait(proc: subprocess.Popen, deadline: float, cancel: Optional[threading.Event]) -> str:
        """Returns "exited", "timeout" or "cancelled"."""
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return "exited" if proc.poll() is not None else "timeout"
            try:
                proc.wait(timeout=min(remaining, POLL_INTERVAL_S))
                return "exited"
            except subprocess.TimeoutExpired:
                pass
            if cancel is not None and cancel.is_set():
                return "cancelled"


def _read_tail(stream: IO[bytes]) -> str:
    stream.seek(0)
    data = stream.read()
    return data[-STDERR_TAIL_CHARS:].decode("utf-8", errors="replace").strip()
