from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from print_dispatch.models import JobResult
from print_dispatch.routers.deps import error_status, require_token
from print_dispatch.services.pipeline import dispatch_print, dispatch_test_page
from print_dispatch.services.source import ImageSource

logger = logging.getLogger(__name__)

router = APIRouter(tags=["print"], dependencies=[Depends(require_token)])


class PrintUrlPayload(BaseModel):
    """Body of ``POST /print-url``, the print gateway contract."""
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    use_high_quality: bool = Field(default=True, alias="useHighQuality")


async def _print(
    request: Request,
    source: ImageSource,
    use_high_quality: bool,
    idempotency_key: Optional[str],
):
    app_state = request.app.state
    settings = app_state.settings

    async with app_state.idempotency.reserve(idempotency_key):
        cached = app_state.idempotency.get(idempotency_key)
        if cached is not None:
            logger.info("Replaying accepted print for idempotency key %s", idempotency_key)
            return {**cached, "replayed": True}

        outcome = await dispatch_print(
            source,
            state=app_state.registry_state,
            renderer=app_state.renderer,
            executor=app_state.executor,
            prefer_high_fidelity=use_high_quality,
            idempotency_key=idempotency_key,
            fetch_timeout_s=settings.fetch_timeout_s,
            public_base_url=settings.public_base_url,
            keep_renditions=settings.keep_renditions,
        )
        result = JobResult.model_validate(outcome["result"])
        body = {**result.to_gateway_response(), "stages": outcome["stages"]}

        if not result.success:
            body["errorKind"] = result.error_kind
            body["highQualityRequested"] = result.high_fidelity_requested
            return JSONResponse(status_code=error_status(result.error_kind), content=body)

        app_state.idempotency.put(idempotency_key, body)
        return body


@router.post("/print-url")
async def print_url(
    request: Request,
    payload: PrintUrlPayload,
    idempotency_key: Optional[str] = Header(None),
):
    if not payload.image_url:
        raise HTTPException(status_code=400, detail="No image URL provided")
    return await _print(request, payload.image_url, payload.use_high_quality, idempotency_key)


@router.post("/print-upload")
async def print_upload(
    request: Request,
    image: UploadFile = File(...),
    use_high_quality: bool = Form(True, alias="useHighQuality"),
    idempotency_key: Optional[str] = Header(None),
):
    contents = await image.read()
    if not contents:
        raise HTTPException(status_code=400, detail="No image uploaded")
    logger.info("Upload print: %s (%d bytes)", image.filename, len(contents))
    return await _print(request, contents, use_high_quality, idempotency_key)


@router.post("/debug-print")
async def debug_print(request: Request):
    """Print a generated test image with minimal options to the resolved printer."""
    app_state = request.app.state
    if not app_state.settings.is_local:
        raise HTTPException(status_code=400, detail="Debug printing needs local mode")

    result = await dispatch_test_page(
        app_state.registry_state, app_state.renderer, app_state.executor
    )
    if not result.success:
        return JSONResponse(
            status_code=error_status(result.error_kind),
            content=result.to_gateway_response(),
        )
    return {
        **result.to_gateway_response(),
        "message": "Debug print job sent with minimal options",
    }
