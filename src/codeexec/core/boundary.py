from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import (
    CompilationFailed,
    ExecError,
    FileNotFound,
    Internal,
    ResourceExceeded,
    RuntimeFailed,
    SessionNotFound,
    Timeout,
    UnsupportedLanguage,
)
from .models import StageResult


class ErrorKind(str, Enum):
    UNSUPPORTED_LANGUAGE = "unsupported-language"
    COMPILATION_FAILED = "compilation-failed"
    RUNTIME_FAILED = "runtime-failed"
    TIMEOUT = "timeout"
    RESOURCE_EXCEEDED = "resource-exceeded"
    INTERNAL = "internal"


@dataclass
class BoundaryError:
    kind: ErrorKind
    stage: Optional[StageResult] = None
    message: Optional[str] = None
    status_code: int = 500


def _failed_stage(message: str, stage: Optional[StageResult]) -> StageResult:
    if stage is not None:
        return stage
    return StageResult(stdout="", stderr=message, exit_code=1, signal=None)


def to_boundary(exc: BaseException) -> BoundaryError:
    """Flatten an internal failure into the fixed external error taxonomy."""
    if isinstance(exc, UnsupportedLanguage):
        return BoundaryError(ErrorKind.UNSUPPORTED_LANGUAGE, status_code=400)
    if isinstance(exc, CompilationFailed):
        return BoundaryError(
            ErrorKind.COMPILATION_FAILED,
            stage=_failed_stage(exc.message, exc.stage),
            status_code=422,
        )
    if isinstance(exc, RuntimeFailed):
        return BoundaryError(
            ErrorKind.RUNTIME_FAILED,
            stage=_failed_stage(exc.message, exc.stage),
            status_code=422,
        )
    if isinstance(exc, Timeout):
        return BoundaryError(ErrorKind.TIMEOUT, status_code=408)
    if isinstance(exc, ResourceExceeded):
        return BoundaryError(ErrorKind.RESOURCE_EXCEEDED, status_code=413)
    if isinstance(exc, (SessionNotFound, FileNotFound)):
        return BoundaryError(ErrorKind.INTERNAL, message=exc.message, status_code=404)
    if isinstance(exc, Internal):
        return BoundaryError(ErrorKind.INTERNAL, message=exc.message, status_code=500)
    if isinstance(exc, OSError):
        return BoundaryError(ErrorKind.INTERNAL, message=f"IO error: {exc}", status_code=500)
    if isinstance(exc, ExecError):
        return BoundaryError(ErrorKind.INTERNAL, message=str(exc), status_code=500)
    return BoundaryError(ErrorKind.INTERNAL, message=str(exc) or type(exc).__name__, status_code=500)
