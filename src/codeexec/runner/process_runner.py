from __future__ import annotations
import os
import shlex
import signal
import subprocess
import tempfile
import threading
import time
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import structlog

from ..core.errors import Internal, Timeout
from ..core.models import EXTENSIONS, ExecResult, LanguageKind, Limits, StageResult

log = structlog.get_logger(__name__)

# how long output may keep trickling in once the child is gone
DRAIN_GRACE_S = 0.5
CHUNK_SIZE = 65536


class ProcessRunner:
    """
    Runs one source unit per call as a child process of an external interpreter.

    Every call gets its own temp artifact and its own child; nothing is shared
    between concurrent calls.
    """

    def __init__(
        self,
        language: LanguageKind,
        candidates: Sequence[str],
        temp_dir: Optional[Path] = None,
    ):
        if not candidates:
            raise ValueError(f"no interpreter configured for {language.value}")
        self.language = language
        self.candidates: List[List[str]] = [shlex.split(c) for c in candidates]
        self.temp_dir = temp_dir

    @classmethod
    def from_settings(cls, settings) -> "ProcessRunner":
        return cls(settings.language, settings.candidates(), temp_dir=settings.temp_dir)

    def execute(
        self,
        source: str,
        args: Sequence[str] = (),
        env: Sequence[Tuple[str, str]] = (),
        stdin: Optional[str] = None,
        limits: Optional[Limits] = None,
    ) -> ExecResult:
        artifact = self._write_artifact(source)
        try:
            return self._run(artifact, list(args), env, stdin, limits)
        finally:
            self._cleanup(artifact)

    # ---------- artifact ----------

    def _write_artifact(self, source: str) -> Path:
        suffix = "." + EXTENSIONS[self.language]
        try:
            fd, name = tempfile.mkstemp(
                prefix="exec-",
                suffix=suffix,
                dir=str(self.temp_dir) if self.temp_dir else None,
            )
        except OSError as e:
            raise Internal(f"IO error: {e}") from e

        path = Path(name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(source)
                f.write("\n")
        except OSError as e:
            self._cleanup(path)
            raise Internal(f"IO error: {e}") from e
        return path

    @staticmethod
    def _cleanup(path: Path) -> None:
        # never masks the outcome of the run
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            log.warning("artifact_cleanup_failed", path=str(path), error=str(e))

    # ---------- process ----------

    def _spawn(self, artifact: Path, args: List[str], env: dict, with_stdin: bool) -> subprocess.Popen:
        failures = []
        for base in self.candidates:
            cmd = [*base, str(artifact), *args]
            try:
                return subprocess.Popen(
                    cmd,
                    stdin=subprocess.PIPE if with_stdin else subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    env=env,
                    # own process group so a timeout can take down grandchildren too
                    start_new_session=True,
                )
            except OSError as e:
                log.debug("interpreter_spawn_failed", interpreter=base[0], error=str(e))
                failures.append(f"{base[0]}: {e}")
        raise Internal("Failed to launch interpreter (" + "; ".join(failures) + ")")

    @staticmethod
    def _killpg(proc: subprocess.Popen) -> None:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        except PermissionError:
            proc.kill()

    def _kill(self, proc: subprocess.Popen) -> None:
        self._killpg(proc)
        # the child itself got SIGKILL, so this returns promptly
        proc.wait()

    @staticmethod
    def _settle(threads: List[threading.Thread]) -> None:
        # bounded: a descendant in its own session may still hold a pipe
        deadline = time.monotonic() + DRAIN_GRACE_S
        for t in threads:
            t.join(max(0.0, deadline - time.monotonic()))
            if t.is_alive():
                log.debug("pipe_still_held", thread=t.name)

    def _run(
        self,
        artifact: Path,
        args: List[str],
        env: Sequence[Tuple[str, str]],
        stdin: Optional[str],
        limits: Optional[Limits],
    ) -> ExecResult:
        time_ms = limits.time_ms if limits is not None else None
        child_env = {**os.environ, **dict(env)}

        start = time.monotonic()
        proc = self._spawn(artifact, args, child_env, with_stdin=stdin is not None)
        log.info("exec_started", pid=proc.pid, language=self.language.value, time_ms=time_ms)

        out: List[bytes] = []
        err: List[bytes] = []
        threads = [
            threading.Thread(target=_drain, args=(proc.stdout, out), name="exec-stdout", daemon=True),
            threading.Thread(target=_drain, args=(proc.stderr, err), name="exec-stderr", daemon=True),
        ]
        if stdin is not None:
            threads.append(threading.Thread(
                target=_feed, args=(proc.stdin, stdin.encode("utf-8")), name="exec-stdin", daemon=True,
            ))
        for t in threads:
            t.start()

        # the deadline races process exit, not pipe closure
        try:
            proc.wait(timeout=time_ms / 1000.0 if time_ms is not None else None)
        except subprocess.TimeoutExpired:
            self._kill(proc)
            self._settle(threads)
            log.warning("exec_timeout", pid=proc.pid, time_ms=time_ms)
            raise Timeout(time_ms)
        except BaseException:
            self._kill(proc)
            self._settle(threads)
            raise

        elapsed_ms = int((time.monotonic() - start) * 1000)
        # leftovers in the child's group would keep the pipes open
        self._killpg(proc)
        self._settle(threads)

        rc = proc.returncode
        log.info("exec_finished", pid=proc.pid, exit_code=rc, elapsed_ms=elapsed_ms)

        return ExecResult(
            compile=None,
            run=StageResult(
                stdout=b"".join(list(out)).decode("utf-8", errors="replace"),
                stderr=b"".join(list(err)).decode("utf-8", errors="replace"),
                # negative returncode == killed by a signal, no exit status
                exit_code=rc if rc is not None and rc >= 0 else None,
                signal=None,
            ),
            time_ms=elapsed_ms,
            memory_bytes=None,
        )


def _drain(stream, chunks: List[bytes]) -> None:
    """Collect a child pipe until EOF; the stream is closed by its reader."""
    try:
        while True:
            data = stream.read1(CHUNK_SIZE)
            if not data:
                break
            chunks.append(data)
    except OSError as e:
        log.debug("pipe_read_failed", error=str(e))
    finally:
        stream.close()


def _feed(stream, data: bytes) -> None:
    # a child that exits without reading stdin is not an error
    try:
        stream.write(data)
    except BrokenPipeError:
        pass
    finally:
        try:
            stream.close()
        except BrokenPipeError:
            pass
