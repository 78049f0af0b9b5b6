from __future__ import annotations
import itertools
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from ..core.decoder import decode_content
from ..core.errors import FileNotFound, Internal, SessionNotFound, UnsupportedLanguage
from ..core.models import ExecResult, File, Language, LanguageKind, Limits
from ..runner.process_runner import ProcessRunner

log = structlog.get_logger(__name__)


@dataclass
class ExecutionSession:
    handle: int
    language: Language
    files: Dict[str, bytes] = field(default_factory=dict)
    working_dir: str = "/"
    closed: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


def source_text(name: str, content: bytes) -> str:
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError as e:
        raise Internal(f"Invalid UTF-8 in '{name}': {e}") from e


class SessionRegistry:
    """
    Process-wide arena of live sessions.

    The registry lock guards the table and the handle counter; each session's
    own lock guards its file table, so distinct sessions never block each other.
    Handles start at 1 and are never reused.
    """

    def __init__(self, runner: ProcessRunner):
        self.runner = runner
        self.language: LanguageKind = runner.language
        self._sessions: Dict[int, ExecutionSession] = {}
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def handles(self) -> List[int]:
        with self._lock:
            return list(self._sessions)

    # ---------- internal accessors ----------

    def _get(self, handle: int) -> ExecutionSession:
        with self._lock:
            session = self._sessions.get(handle)
        if session is None:
            raise SessionNotFound(handle)
        return session

    def _locked(self, handle: int) -> ExecutionSession:
        """Return the session with its lock held; caller must release it."""
        session = self._get(handle)
        session.lock.acquire()
        if session.closed:
            session.lock.release()
            raise SessionNotFound(handle)
        return session

    # ---------- operations ----------

    def create(self, language: Language) -> int:
        if language.kind != self.language:
            raise UnsupportedLanguage(getattr(language.kind, "value", str(language.kind)))
        with self._lock:
            handle = next(self._counter)
            self._sessions[handle] = ExecutionSession(handle=handle, language=language)
        log.info("session_created", session=handle, language=self.language.value)
        return handle

    def upload(self, handle: int, file: File) -> None:
        # unknown handle wins over a bad payload
        self._get(handle)
        # decoded outside the lock; a bad payload never touches the file table
        content = decode_content(file.content, file.encoding)
        session = self._locked(handle)
        try:
            session.files[file.name] = content
        finally:
            session.lock.release()
        log.debug("file_uploaded", session=handle, name=file.name, size=len(content))

    def run(
        self,
        handle: int,
        entrypoint: str,
        args: Sequence[str] = (),
        stdin: Optional[str] = None,
        env: Sequence[Tuple[str, str]] = (),
        limits: Optional[Limits] = None,
    ) -> ExecResult:
        session = self._locked(handle)
        try:
            content = session.files.get(entrypoint)
        finally:
            session.lock.release()
        if content is None:
            raise FileNotFound(f"Entrypoint file '{entrypoint}' not found", entrypoint)

        # executes on a snapshot; close/upload meanwhile don't affect this run
        code = source_text(entrypoint, content)
        log.info("session_run", session=handle, entrypoint=entrypoint)
        return self.runner.execute(code, args=args, env=env, stdin=stdin, limits=limits)

    def download(self, handle: int, path: str) -> bytes:
        session = self._locked(handle)
        try:
            content = session.files.get(path)
        finally:
            session.lock.release()
        if content is None:
            raise FileNotFound(f"File '{path}' not found", path)
        return content

    def list_files(self, handle: int, dir: str = "/") -> List[str]:
        # flat namespace: dir is ignored
        session = self._locked(handle)
        try:
            return list(session.files)
        finally:
            session.lock.release()

    def set_working_dir(self, handle: int, path: str) -> None:
        session = self._locked(handle)
        try:
            session.working_dir = path
        finally:
            session.lock.release()

    def get_working_dir(self, handle: int) -> str:
        session = self._locked(handle)
        try:
            return session.working_dir
        finally:
            session.lock.release()

    def close(self, handle: int) -> None:
        with self._lock:
            session = self._sessions.pop(handle, None)
        if session is None:
            return
        with session.lock:
            session.closed = True
            session.files.clear()
        log.info("session_closed", session=handle)
