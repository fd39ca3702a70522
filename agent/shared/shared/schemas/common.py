"""Common schemas used across services."""

from __future__ import annotations

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Standard health check response."""

    status: str = "ok"


class ServiceStatus(BaseModel):
    """Runtime status of a long-running module service."""

    service: str
    enabled: bool
    debug: bool
    uptime_seconds: float
    uptime: str  # human-readable, e.g. "2d 3h"
    active_jobs: int
