"""FastAPI application entrypoint for sitegen service mode."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, List, Optional

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config import load_config
from ..errors import BuildFailedError, SiteGenError
from ..models import BuildReport
from ..orchestrator import BuildOrchestrator


class RebuildRequest(BaseModel):
    paths: List[str]


class BuildErrorModel(BaseModel):
    unit: str
    message: str


class BuildResponse(BaseModel):
    status: str
    mode: str
    pages: List[str]
    errors: List[BuildErrorModel]
    duration: float


class StatusResponse(BaseModel):
    status: str
    root: str
    output_dir: str
    pages: int
    tracked_pages: int
    last_build: Optional[BuildResponse] = None


class HealthResponse(BaseModel):
    status: str


def _default_orchestrator() -> BuildOrchestrator:
    return BuildOrchestrator(load_config(Path.cwd()))


def _to_response(report: BuildReport) -> BuildResponse:
    data = report.to_dict()
    return BuildResponse(
        status="ok" if report.ok else "errors",
        mode=data["mode"],
        pages=data["pages"],
        errors=[BuildErrorModel(**error) for error in data["errors"]],
        duration=data["duration"],
    )


def create_app(
    orchestrator_factory: Callable[[], BuildOrchestrator] = _default_orchestrator,
) -> FastAPI:
    """Create the FastAPI application exposing sitegen build operations.

    One orchestrator serves every request so incremental rebuilds can use the
    dependency graph left by earlier builds; requests that build are
    serialized.
    """

    app = FastAPI(title="Sitegen Service", version="1.0.0")
    app.state.orchestrator = None
    app.state.build_lock = asyncio.Lock()

    async def get_orchestrator(request: Request) -> BuildOrchestrator:
        state = request.app.state
        if state.orchestrator is None:
            state.orchestrator = orchestrator_factory()
        return state.orchestrator

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/build", response_model=BuildResponse)
    async def build_site(
        request: Request,
        orchestrator: BuildOrchestrator = Depends(get_orchestrator),
    ) -> BuildResponse:
        async with request.app.state.build_lock:
            report = await orchestrator.build()
        return _to_response(report)

    @app.post("/rebuild", response_model=BuildResponse)
    async def rebuild_site(
        payload: RebuildRequest,
        request: Request,
        orchestrator: BuildOrchestrator = Depends(get_orchestrator),
    ) -> BuildResponse:
        async with request.app.state.build_lock:
            report = await orchestrator.rebuild([Path(path) for path in payload.paths])
        return _to_response(report)

    @app.get("/status", response_model=StatusResponse)
    async def status(
        orchestrator: BuildOrchestrator = Depends(get_orchestrator),
    ) -> StatusResponse:
        report = orchestrator.last_report
        return StatusResponse(
            status="idle" if report is None else ("ok" if report.ok else "errors"),
            root=str(orchestrator.config.root),
            output_dir=str(orchestrator.config.output_root),
            pages=len(orchestrator.session.registry),
            tracked_pages=len(orchestrator.session.graph),
            last_build=_to_response(report) if report is not None else None,
        )

    @app.exception_handler(BuildFailedError)
    async def build_failed_handler(_: Any, exc: BuildFailedError) -> JSONResponse:
        content = exc.to_dict()
        if isinstance(exc.report, BuildReport):
            content["report"] = exc.report.to_dict()
        return JSONResponse(status_code=422, content=content)

    @app.exception_handler(SiteGenError)
    async def sitegen_error_handler(_: Any, exc: SiteGenError) -> JSONResponse:
        return JSONResponse(status_code=400, content=exc.to_dict())

    return app


def run_service(
    orchestrator: Optional[BuildOrchestrator] = None,
    host: str = "127.0.0.1",
    port: int = 8000,
) -> None:  # pragma: no cover - integration path
    if orchestrator is None:
        app = create_app()
    else:
        app = create_app(lambda: orchestrator)
    uvicorn.run(app, host=host, port=port)
