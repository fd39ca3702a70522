"""Shared-token authentication for the push service endpoints.

The bot bridge sends ``SERVICE_AUTH_TOKEN`` either as
``Authorization: Bearer <token>`` or, like OneBot HTTP clients do, as an
``access_token`` query parameter::

    @app.post("/execute")
    async def execute(call: ToolCall, _=Depends(require_service_auth)):
        ...
"""

from __future__ import annotations

import secrets

import structlog
from fastapi import HTTPException, Request

from shared.config import get_settings

logger = structlog.get_logger()

_BEARER_PREFIX = "Bearer "


def _presented_token(request: Request) -> str | None:
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith(_BEARER_PREFIX):
        return auth_header[len(_BEARER_PREFIX):]
    return request.query_params.get("access_token")


async def require_service_auth(request: Request) -> None:
    """FastAPI dependency rejecting calls without the shared token (401).

    An empty ``service_auth_token`` disables the check (dev mode).
    """
    expected = get_settings().service_auth_token
    if not expected:
        logger.debug("service_auth_disabled", path=request.url.path)
        return

    token = _presented_token(request)
    if token is None:
        raise HTTPException(status_code=401, detail="Missing service auth token")
    if not secrets.compare_digest(token, expected):
        logger.warning(
            "service_auth_failed",
            path=request.url.path,
            remote=request.client.host if request.client else "unknown",
        )
        raise HTTPException(status_code=401, detail="Invalid service auth token")
