from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from lift_feed.config import AppConfig, app_config
from lift_feed.logging import get_logger, setup_logging
from lift_feed.models import LIFTS, WEBCAMS, utcnow
from lift_feed.orchestrator import RefreshOrchestrator
from lift_feed.scheduler import build_scheduler

logger = get_logger(__name__)

AVAILABLE_ENDPOINTS: List[str] = [
    "GET /health",
    "GET /api/lifts",
    "POST /api/lifts/refresh",
    "GET /api/webcams",
    "POST /api/webcams/refresh",
    "GET /api/all",
    "GET /api/status",
    "GET /api/lifts/log",
    "GET /api/webcams/log",
]


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    service: str
    version: str


class FetchLogPayload(BaseModel):
    timestamp: datetime
    level: str
    message: str


class FetchLogResponse(BaseModel):
    kind: str
    entries: List[FetchLogPayload]


class StatusResponse(BaseModel):
    timestamp: datetime
    service: str
    version: str
    kinds: Dict[str, Dict[str, Any]]


def create_app(
    config: Optional[AppConfig] = None,
    orchestrator: Optional[RefreshOrchestrator] = None,
    *,
    enable_scheduler: Optional[bool] = None,
) -> FastAPI:
    """Build the HTTP facade around an explicitly constructed orchestrator.

    With no orchestrator given, the configuration is validated first so a
    missing credential stops the process at startup.
    """
    config = config or app_config
    setup_logging(config.logging)
    if orchestrator is None:
        config.validate()
        orchestrator = RefreshOrchestrator.from_config(config)

    app = FastAPI(title=config.service.name, version=config.service.version)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.config = config
    app.state.orchestrator = orchestrator

    def _refresh(kind: str):
        try:
            snapshot = orchestrator.force_refresh(kind)
        except Exception as exc:
            logger.error("api.refresh_failed", kind=kind, error=str(exc))
            return JSONResponse(
                status_code=500,
                content={"error": f"Failed to refresh {kind}", "message": str(exc)},
            )
        return {
            "success": True,
            "message": f"Refreshed {snapshot.count} {kind}",
            "data": snapshot.to_dict(),
        }

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(
            status="ok",
            timestamp=utcnow(),
            service=config.service.name,
            version=config.service.version,
        )

    @app.get("/api/lifts")
    def get_lifts() -> Dict[str, Any]:
        return orchestrator.serve(LIFTS).to_dict()

    @app.post("/api/lifts/refresh")
    def refresh_lifts():
        return _refresh(LIFTS)

    @app.get("/api/webcams")
    def get_webcams() -> Dict[str, Any]:
        return orchestrator.serve(WEBCAMS).to_dict()

    @app.post("/api/webcams/refresh")
    def refresh_webcams():
        return _refresh(WEBCAMS)

    @app.get("/api/all")
    def get_all() -> Dict[str, Any]:
        return {
            "lastUpdated": utcnow().isoformat(),
            "lifts": orchestrator.latest(LIFTS).to_dict(),
            "webcams": orchestrator.latest(WEBCAMS).to_dict(),
        }

    @app.get("/api/status", response_model=StatusResponse)
    def get_status() -> StatusResponse:
        return StatusResponse(
            timestamp=utcnow(),
            service=config.service.name,
            version=config.service.version,
            kinds=orchestrator.status(),
        )

    @app.get("/api/{kind}/log", response_model=FetchLogResponse)
    def get_fetch_log(kind: str) -> FetchLogResponse:
        if kind not in orchestrator.kinds:
            raise HTTPException(status_code=404, detail=f"Unknown data kind: {kind}")
        entries = orchestrator.fetch_log(kind).entries()
        return FetchLogResponse(
            kind=kind,
            entries=[FetchLogPayload(timestamp=e.timestamp, level=e.level, message=e.message) for e in entries],
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            return JSONResponse(
                status_code=404,
                content={
                    "error": "Endpoint not found",
                    "path": request.url.path,
                    "message": str(exc.detail),
                    "availableEndpoints": AVAILABLE_ENDPOINTS,
                },
            )
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)

    scheduler_config = config.scheduler
    if enable_scheduler is not None:
        scheduler_config = replace(scheduler_config, enabled=enable_scheduler)
    scheduler = build_scheduler(orchestrator.scheduled_refresh, scheduler_config)

    @app.on_event("startup")
    async def _start() -> None:
        if scheduler and not scheduler.running:
            logger.info("scheduler.start")
            scheduler.start()
        for kind in orchestrator.kinds:
            if orchestrator.store.read(kind) is None:
                orchestrator.refresh_in_background(kind)

    @app.on_event("shutdown")
    async def _stop() -> None:
        if scheduler and scheduler.running:
            logger.info("scheduler.stop")
            scheduler.shutdown(wait=False)
        orchestrator.shutdown()

    return app
