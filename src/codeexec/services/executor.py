from __future__ import annotations
from typing import Optional, Sequence, Tuple

import structlog

from ..core.decoder import decode_content
from ..core.errors import Internal, UnsupportedLanguage
from ..core.models import EXTENSIONS, ExecResult, File, Language, Limits
from ..runner.process_runner import ProcessRunner
from .session_registry import source_text

log = structlog.get_logger(__name__)


def select_entrypoint(files: Sequence[File], ext: str) -> File:
    """main.<ext> or index.<ext> if supplied, otherwise the first file."""
    if not files:
        raise Internal("No source files provided")
    conventional = (f"main.{ext}", f"index.{ext}")
    for f in files:
        if f.name in conventional:
            return f
    return files[0]


class Executor:
    """Stateless one-shot execution: no session is created."""

    def __init__(self, runner: ProcessRunner):
        self.runner = runner

    def run(
        self,
        language: Language,
        files: Sequence[File],
        stdin: Optional[str] = None,
        args: Sequence[str] = (),
        env: Sequence[Tuple[str, str]] = (),
        limits: Optional[Limits] = None,
    ) -> ExecResult:
        if language.kind != self.runner.language:
            raise UnsupportedLanguage(getattr(language.kind, "value", str(language.kind)))

        entry = select_entrypoint(files, EXTENSIONS[self.runner.language])
        code = source_text(entry.name, decode_content(entry.content, entry.encoding))
        log.info("oneshot_run", entrypoint=entry.name, files=len(files))
        return self.runner.execute(code, args=args, env=env, stdin=stdin, limits=limits)
