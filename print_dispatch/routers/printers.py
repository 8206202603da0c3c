from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from print_dispatch.errors import DispatchError, TransportFailure
from print_dispatch.routers.deps import require_token
from print_dispatch.services import spooler
from print_dispatch.services.resolver import resolve

logger = logging.getLogger(__name__)
router = APIRouter(tags=["printers"], dependencies=[Depends(require_token)])


class ReconcilePayload(BaseModel):
    printers: list[str] = []


@router.get("/printers")
async def list_printers(request: Request):
    app_state = request.app.state
    if not app_state.settings.is_local:
        try:
            printers = await app_state.executor.list_remote_printers()
        except TransportFailure as exc:
            raise HTTPException(status_code=502, detail=f"Failed to get printers: {exc}")
        return {"printers": printers}

    printers = await asyncio.to_thread(spooler.list_device_names)
    return {"printers": printers}


@router.get("/printers/details")
async def list_printer_details(request: Request):
    """CUPS info for each printer plus which one resolution would pick."""
    printers = await asyncio.to_thread(spooler.get_available_printers)
    state = request.app.state.registry_state
    resolution = resolve([p["name"] for p in printers], state)
    return {
        "printers": printers,
        "default": state.default_device_name,
        "selected": resolution.device_name if resolution else None,
        "reconcile": request.app.state.supervisor.states(),
    }


@router.get("/printer-details")
async def printer_details(request: Request, printer: Optional[str] = None):
    """``lpoptions -l`` output, to find the option values a driver accepts."""
    if printer is None:
        available = await asyncio.to_thread(spooler.list_device_names)
        resolution = resolve(available, request.app.state.registry_state)
        if resolution is None:
            raise HTTPException(status_code=503, detail="No printers found")
        printer = resolution.device_name

    logger.info("Selected printer for details: %s", printer)
    try:
        details = await asyncio.to_thread(spooler.get_printer_details, printer)
    except DispatchError as exc:
        raise HTTPException(status_code=500, detail=str(exc))
    return {"success": True, "printer": printer, "details": details}


@router.post("/reconcile")
async def reconcile(request: Request, payload: Optional[ReconcilePayload] = None):
    """Flush and re-enable the named printers, or every reported printer."""
    supervisor = request.app.state.supervisor
    if payload is not None and payload.printers:
        states = await supervisor.reconcile(payload.printers)
    else:
        states = await supervisor.reconcile_all()
    return {"printers": states}
