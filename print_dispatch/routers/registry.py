"""Administrative endpoints for the printer profile registry."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from print_dispatch.models import DeviceProfile
from print_dispatch.routers.deps import require_token

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/config", tags=["config"], dependencies=[Depends(require_token)])


class DefaultPayload(BaseModel):
    name: Optional[str] = None


def _describe(request: Request) -> dict:
    state = request.app.state.registry_state
    return {
        **state.to_document(),
        "profiles": [p.model_dump(by_alias=True) for p in state.by_priority()],
    }


@router.get("/printers")
async def get_registry(request: Request):
    return _describe(request)


@router.put("/printers")
async def upsert_profile(request: Request, profile: DeviceProfile):
    registry = request.app.state.registry
    try:
        request.app.state.registry_state = await asyncio.to_thread(registry.upsert, profile)
    except OSError as exc:
        logger.exception("Error saving printer configuration")
        raise HTTPException(status_code=500, detail=f"Failed to save configuration: {exc}")
    return _describe(request)


@router.put("/default")
async def set_default(request: Request, payload: DefaultPayload):
    registry = request.app.state.registry
    try:
        request.app.state.registry_state = await asyncio.to_thread(registry.set_default, payload.name)
    except OSError as exc:
        logger.exception("Error saving printer configuration")
        raise HTTPException(status_code=500, detail=f"Failed to save configuration: {exc}")
    return _describe(request)


@router.post("/reload")
async def reload_registry(request: Request):
    request.app.state.registry_state = await asyncio.to_thread(request.app.state.registry.load)
    return _describe(request)
