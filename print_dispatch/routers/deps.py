from __future__ import annotations

import logging
from typing import Optional

from fastapi import Header, HTTPException, Request

logger = logging.getLogger(__name__)

# HTTP status for each failure kind surfaced to a print caller
ERROR_STATUS = {
    "SourceError": 400,
    "RenderError": 422,
    "NoDeviceAvailable": 503,
    "SubmissionTimeout": 504,
    "SubmissionFailed": 502,
    "TransportFailure": 502,
}


def error_status(kind: Optional[str]) -> int:
    return ERROR_STATUS.get(kind or "", 500)


async def require_token(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> None:
    """Bearer-token guard; a no-op when no auth token is configured."""
    token = request.app.state.settings.auth_token
    if not token:
        return
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Authentication required")
    if authorization.split(" ", 1)[1] != token:
        logger.warning("Rejected request with invalid token: %s %s", request.method, request.url.path)
        raise HTTPException(status_code=403, detail="Invalid authentication token")
