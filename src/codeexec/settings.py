from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.models import LanguageKind


def _default_interpreters() -> Dict[str, List[str]]:
    return {
        LanguageKind.JAVASCRIPT.value: ["node", "nodejs"],
        LanguageKind.PYTHON.value: ["python3", "python"],
    }


class Settings(BaseSettings):
    # the one language kind this engine instance runs
    language: LanguageKind = LanguageKind.JAVASCRIPT

    # kind -> ordered launch commands, tried until one spawns
    interpreters: Dict[str, List[str]] = Field(default_factory=_default_interpreters)

    # where per-invocation source artifacts are written (None = system temp dir)
    temp_dir: Optional[Path] = None

    log_level: str = "INFO"

    # env prefix EXEC_*
    model_config = SettingsConfigDict(env_prefix="EXEC_", extra="ignore")

    def candidates(self) -> List[str]:
        return list(self.interpreters.get(self.language.value) or [])


def load_settings() -> Settings:
    # 0) base from EXEC_* env
    s = Settings()

    # 1) conf/exec.yaml (or EXEC_CONF)
    conf_yaml = os.environ.get("EXEC_CONF", "conf/exec.yaml")
    try:
        with open(conf_yaml, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        data = {}
    if not isinstance(data, dict):
        data = {}

    interpreters = data.get("interpreters") or {}
    if not isinstance(interpreters, dict):
        interpreters = {}

    # 2) env wins over the file; the file wins over defaults
    update: Dict[str, Any] = {}
    if "language" in data and "EXEC_LANGUAGE" not in os.environ:
        try:
            update["language"] = LanguageKind(str(data["language"]).lower())
        except ValueError:
            supported = ", ".join(k.value for k in LanguageKind)
            raise ValueError(
                f"{conf_yaml}: invalid 'language' value {data['language']!r} (expected one of: {supported})"
            ) from None
    if "temp_dir" in data and "EXEC_TEMP_DIR" not in os.environ:
        update["temp_dir"] = Path(str(data["temp_dir"])) if data["temp_dir"] else None
    if "log_level" in data and "EXEC_LOG_LEVEL" not in os.environ:
        update["log_level"] = str(data["log_level"])
    if interpreters:
        merged = dict(s.interpreters)
        for kind, cmds in interpreters.items():
            if isinstance(cmds, str):
                cmds = [cmds]
            merged[str(kind).lower()] = [str(c) for c in cmds]
        update["interpreters"] = merged

    return s.model_copy(update=update)
