"""Epic push module - FastAPI service hosting the daily push scheduler."""

from __future__ import annotations

import logging

import structlog
from fastapi import Depends, FastAPI, HTTPException

from modules.epic_push.manifest import MANIFEST
from modules.epic_push.state import AppState
from modules.epic_push.tools import EpicPushTools
from shared.auth import require_service_auth
from shared.config import get_settings
from shared.schemas.common import HealthResponse, ServiceStatus
from shared.schemas.tools import ModuleManifest, ToolCall, ToolDefinition, ToolResult

structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
)

logger = structlog.get_logger()
app = FastAPI(title="Epic Push Module", version="1.0.0")

state: AppState | None = None
tools: EpicPushTools | None = None


@app.on_event("startup")
async def startup():
    global state, tools
    settings = get_settings()
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if settings.debug else logging.INFO
        ),
    )

    state = AppState(settings)
    tools = EpicPushTools(state)
    restored = state.start()
    logger.info("epic_push_module_ready", restored_jobs=restored, enabled=settings.enabled)


@app.on_event("shutdown")
async def shutdown():
    global state, tools
    if state is not None:
        await state.aclose()
    state = None
    tools = None
    logger.info("epic_push_module_shutdown")


@app.get("/manifest", response_model=ModuleManifest)
async def manifest(_=Depends(require_service_auth)):
    """Return the module manifest."""
    return MANIFEST


def _caller_denial(tool: ToolDefinition, call: ToolCall) -> str | None:
    """Why a chat caller may not run ``tool``, or None when allowed."""
    caller = call.caller
    if tool.targets_chat:
        target = (call.arguments.get("subscriber_type"), call.arguments.get("subject_id"))
        if not caller.owns_target(*target):
            return "Commands can only act on the chat they were sent from"
    elif tool.required_permission == "admin":
        # Covers every chat, so only trusted service calls may run it
        return "This command is not available from a chat"

    if tool.required_permission == "admin" and not caller.may_administer():
        return "Only group admins can manage the subscription"
    return None


@app.post("/execute", response_model=ToolResult)
async def execute(call: ToolCall, _=Depends(require_service_auth)):
    """Execute a tool call."""
    if tools is None or state is None:
        return ToolResult(tool_name=call.tool_name, success=False, error="Module not ready")
    if not state.settings.enabled:
        return ToolResult(tool_name=call.tool_name, success=False, error="Epic push is disabled")

    tool = MANIFEST.get_tool(call.tool_name)
    if tool is None:
        return ToolResult(
            tool_name=call.tool_name,
            success=False,
            error=f"Unknown tool: {call.tool_name}",
        )
    if call.caller is not None:
        denied = _caller_denial(tool, call)
        if denied:
            logger.info(
                "tool_permission_denied",
                tool=call.tool_name,
                message_type=call.caller.message_type,
                user_id=call.caller.user_id,
                group_id=call.caller.group_id,
                role=call.caller.role,
                reason=denied,
            )
            return ToolResult(tool_name=call.tool_name, success=False, error=denied)

    tool_name = call.tool_name.split(".")[-1]
    try:
        result = await getattr(tools, tool_name)(**call.arguments)
        return ToolResult(tool_name=call.tool_name, success=True, result=result)
    except Exception as e:
        logger.error("tool_execution_error", tool=call.tool_name, error=str(e), exc_info=True)
        return ToolResult(tool_name=call.tool_name, success=False, error=str(e))


@app.get("/status", response_model=ServiceStatus)
async def status():
    if state is None:
        raise HTTPException(status_code=503, detail="Module not ready")
    return ServiceStatus(
        service=MANIFEST.module_name,
        enabled=state.settings.enabled,
        debug=state.settings.debug,
        uptime_seconds=state.uptime_seconds,
        uptime=state.uptime_formatted(),
        active_jobs=len(state.scheduler),
    )


@app.get("/subscriptions")
async def subscriptions(_=Depends(require_service_auth)):
    if tools is None:
        raise HTTPException(status_code=503, detail="Module not ready")
    return await tools.list_subscriptions()


@app.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="ok")


def run():
    """Serve the module over HTTP."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port, log_level="info")


if __name__ == "__main__":
    run()
