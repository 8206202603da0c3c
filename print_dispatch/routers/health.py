import asyncio

from fastapi import APIRouter, Depends, Request

from print_dispatch.routers.deps import require_token
from print_dispatch.services import spooler

router = APIRouter(tags=["health"])


@router.get("/")
async def root():
    return {"status": "Print server running"}


@router.get("/api/health")
async def health():
    return {"status": "ok"}


@router.get("/api/debug", dependencies=[Depends(require_token)])
async def debug(request: Request):
    """Diagnose configuration issues."""
    settings = request.app.state.settings
    printers = []
    error = None
    if settings.is_local:
        try:
            printers = await asyncio.to_thread(spooler.get_available_printers)
        except Exception as exc:
            error = str(exc)
    return {
        "settings": {
            "mode": settings.mode,
            "registry_path": str(settings.registry_path),
            "cups_server": settings.cups_server,
            "gateway_url": settings.gateway_url if not settings.is_local else None,
            "gateway_token": "set" if settings.gateway_token else None,
            "auth_token": "set" if settings.auth_token else None,
            "submit_timeout_s": settings.submit_timeout_s,
        },
        "pycups": spooler._HAS_PYCUPS,
        "printers": printers,
        "reconcile": request.app.state.supervisor.states(),
        "error": error,
    }
