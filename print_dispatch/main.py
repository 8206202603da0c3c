from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from print_dispatch.config import Settings, get_settings
from print_dispatch.routers import health, printers, prints, registry
from print_dispatch.services import spooler
from print_dispatch.services.executor import DispatchExecutor
from print_dispatch.services.idempotency import IdempotencyCache
from print_dispatch.services.registry import DeviceRegistry
from print_dispatch.services.renderer import FormatRenderer
from print_dispatch.services.supervisor import QueueSupervisor

logging.basicConfig(level=logging.INFO, format="%(name)s %(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = app.state.settings
    if settings.is_local and settings.reconcile_on_startup:
        # Clear jobs left over from a previous run so they cannot wedge new prints
        states = await app.state.supervisor.reconcile_all()
        logger.info("Startup reconciliation: %s", states)
    yield


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    logger.info("=== Print Dispatch settings ===")
    logger.info("  mode:          %s", settings.mode)
    logger.info("  registry_path: %s", settings.registry_path)
    logger.info("  upload_dir:    %s", settings.upload_dir)
    logger.info("  timeout:       %ss", settings.submit_timeout_s)
    if settings.is_local:
        logger.info("  cups_server:   %r", settings.cups_server)
    else:
        logger.info("  gateway_url:   %s", settings.gateway_url)
    logger.info("  auth:          %s", "enabled" if settings.auth_token else "disabled")

    if settings.is_local:
        spooler.configure(settings.cups_server, settings.cups_user, settings.cups_password)

    app = FastAPI(title="Print Dispatch", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.registry = DeviceRegistry(settings.registry_path)
    app.state.registry_state = app.state.registry.load()
    app.state.renderer = FormatRenderer(settings.upload_dir)
    app.state.supervisor = QueueSupervisor()
    app.state.executor = DispatchExecutor(settings, supervisor=app.state.supervisor)
    app.state.idempotency = IdempotencyCache(settings.idempotency_cache_size)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info("%s %s", request.method, request.url.path)
        response = await call_next(request)
        return response

    @app.exception_handler(HTTPException)
    async def error_body(request: Request, exc: HTTPException):
        # Gateway clients read the "error" key
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=exc.headers,
        )

    app.include_router(health.router)
    app.include_router(printers.router)
    app.include_router(prints.router)
    app.include_router(registry.router)

    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("print_dispatch.main:create_app", factory=True, host=settings.host, port=settings.port)
