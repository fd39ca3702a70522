"""Pydantic schemas shared across services."""

from shared.schemas.common import HealthResponse, ServiceStatus
from shared.schemas.notifications import Notification
from shared.schemas.tools import (
    CallerContext,
    ModuleManifest,
    ToolCall,
    ToolDefinition,
    ToolParameter,
    ToolResult,
)

__all__ = [
    "CallerContext",
    "HealthResponse",
    "ModuleManifest",
    "Notification",
    "ServiceStatus",
    "ToolCall",
    "ToolDefinition",
    "ToolParameter",
    "ToolResult",
]
