from __future__ import annotations
from typing import Optional

from .models import StageResult


class ExecError(Exception):
    """Base of every failure the engine reports to its callers."""


class UnsupportedLanguage(ExecError):
    def __init__(self, kind: str):
        super().__init__(f"Unsupported language: {kind}")
        self.kind = kind


class CompilationFailed(ExecError):
    # only reachable by multi-stage languages
    def __init__(self, message: str, stage: Optional[StageResult] = None):
        super().__init__(f"Compilation failed: {message}")
        self.message = message
        self.stage = stage


class RuntimeFailed(ExecError):
    def __init__(self, message: str, stage: Optional[StageResult] = None):
        super().__init__(f"Runtime error: {message}")
        self.message = message
        self.stage = stage


class Timeout(ExecError):
    def __init__(self, time_ms: Optional[int] = None):
        super().__init__("Timeout")
        self.time_ms = time_ms


class ResourceExceeded(ExecError):
    def __init__(self):
        super().__init__("Resource exceeded")


class Internal(ExecError):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DecodeError(Internal):
    pass


class SessionNotFound(Internal):
    def __init__(self, handle: int):
        super().__init__("Session not found")
        self.handle = handle


class FileNotFound(Internal):
    def __init__(self, message: str, name: str):
        super().__init__(message)
        self.name = name
