from __future__ import annotations
from dataclasses import asdict
from typing import List, Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict

from .core.boundary import to_boundary
from .core.errors import ExecError
from .core.models import Encoding, File, Language, LanguageKind, Limits
from .logging import setup_logging
from .runner.process_runner import ProcessRunner
from .services.executor import Executor
from .services.session_registry import SessionRegistry
from .settings import Settings, load_settings


# --------- Schemas ---------
class LanguageIn(BaseModel):
    kind: LanguageKind
    version: Optional[str] = None

    def to_model(self) -> Language:
        return Language(kind=self.kind, version=self.version)


class FileIn(BaseModel):
    name: str
    content: str  # its UTF-8 bytes are the raw (possibly encoded) content
    encoding: Optional[Encoding] = None

    def to_model(self) -> File:
        return File(name=self.name, content=self.content.encode("utf-8"), encoding=self.encoding)


class LimitsIn(BaseModel):
    # unenforced and unknown limits are accepted, never rejected
    model_config = ConfigDict(extra="allow")

    time_ms: Optional[int] = None
    memory: Optional[int] = None
    file_size: Optional[int] = None
    processes: Optional[int] = None

    def to_model(self) -> Limits:
        return Limits(
            time_ms=self.time_ms,
            memory=self.memory,
            file_size=self.file_size,
            processes=self.processes,
            extra=dict(self.model_extra or {}),
        )


class RunReq(BaseModel):
    language: LanguageIn
    files: List[FileIn]
    stdin: Optional[str] = None
    args: List[str] = []
    env: List[Tuple[str, str]] = []
    limits: Optional[LimitsIn] = None


class CreateSessionReq(BaseModel):
    language: LanguageIn


class CreateSessionRes(BaseModel):
    handle: int


class SessionRunReq(BaseModel):
    entrypoint: str
    args: List[str] = []
    stdin: Optional[str] = None
    env: List[Tuple[str, str]] = []
    limits: Optional[LimitsIn] = None


class WorkingDirReq(BaseModel):
    path: str


class OkRes(BaseModel):
    ok: bool = True


def _limits(limits: Optional[LimitsIn]) -> Optional[Limits]:
    return limits.to_model() if limits is not None else None


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or load_settings()
    log = setup_logging(settings.log_level)

    runner = ProcessRunner.from_settings(settings)
    registry = SessionRegistry(runner)
    executor = Executor(runner)

    app = FastAPI(title="Code Exec API")
    app.state.settings = settings
    app.state.registry = registry
    app.state.executor = executor

    @app.exception_handler(ExecError)
    async def exec_error_handler(request: Request, exc: ExecError):
        err = to_boundary(exc)
        log.info("request_failed", path=request.url.path, kind=err.kind.value, message=err.message)
        return JSONResponse(
            status_code=err.status_code,
            content={
                "error": {
                    "kind": err.kind.value,
                    "stage": asdict(err.stage) if err.stage is not None else None,
                    "message": err.message,
                }
            },
        )

    # --------- Endpoints ---------

    @app.get("/health")
    def health():
        return {"ok": True, "language": settings.language.value}

    @app.post("/run")
    def run_oneshot(req: RunReq):
        result = executor.run(
            req.language.to_model(),
            [f.to_model() for f in req.files],
            stdin=req.stdin,
            args=req.args,
            env=req.env,
            limits=_limits(req.limits),
        )
        return asdict(result)

    @app.post("/sessions", response_model=CreateSessionRes)
    def create_session(req: CreateSessionReq):
        return CreateSessionRes(handle=registry.create(req.language.to_model()))

    @app.post("/sessions/{handle}/files", response_model=OkRes)
    def upload(handle: int, req: FileIn):
        registry.upload(handle, req.to_model())
        return OkRes()

    @app.get("/sessions/{handle}/files")
    def list_files(handle: int, dir: str = "/"):
        return {"files": registry.list_files(handle, dir)}

    @app.get("/sessions/{handle}/files/{path:path}")
    def download(handle: int, path: str):
        return Response(content=registry.download(handle, path), media_type="application/octet-stream")

    @app.post("/sessions/{handle}/run")
    def run_session(handle: int, req: SessionRunReq):
        result = registry.run(
            handle,
            req.entrypoint,
            args=req.args,
            stdin=req.stdin,
            env=req.env,
            limits=_limits(req.limits),
        )
        return asdict(result)

    @app.put("/sessions/{handle}/working-dir", response_model=OkRes)
    def set_working_dir(handle: int, req: WorkingDirReq):
        registry.set_working_dir(handle, req.path)
        return OkRes()

    @app.delete("/sessions/{handle}", response_model=OkRes)
    def close(handle: int):
        registry.close(handle)
        return OkRes()

    return app


_app: Optional[FastAPI] = None


def __getattr__(name: str):
    # `codeexec.api:app` is built on first access, not on import
    global _app
    if name == "app":
        if _app is None:
            _app = create_app()
        return _app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
