from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional


class LanguageKind(str, Enum):
    JAVASCRIPT = "javascript"
    PYTHON = "python"


# file extension used for the temp artifact and the main.<ext>/index.<ext> convention
EXTENSIONS: Dict[LanguageKind, str] = {
    LanguageKind.JAVASCRIPT: "js",
    LanguageKind.PYTHON: "py",
}


class Encoding(str, Enum):
    UTF8 = "utf8"
    BASE64 = "base64"
    HEX = "hex"


@dataclass
class Language:
    kind: LanguageKind
    version: Optional[str] = None


@dataclass
class File:
    name: str
    content: bytes
    encoding: Optional[Encoding] = None  # None == utf8


@dataclass
class Limits:
    """Only time_ms is enforced; the rest are accepted and ignored."""
    time_ms: Optional[int] = None
    memory: Optional[int] = None
    file_size: Optional[int] = None
    processes: Optional[int] = None
    extra: Dict[str, object] = field(default_factory=dict)


@dataclass
class StageResult:
    stdout: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None  # None when the process was killed
    signal: Optional[str] = None


@dataclass
class ExecResult:
    run: StageResult
    compile: Optional[StageResult] = None
    time_ms: Optional[int] = None
    memory_bytes: Optional[int] = None
