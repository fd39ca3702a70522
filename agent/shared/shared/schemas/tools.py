"""Command manifest and invocation schemas.

A chat bot bridge reads the manifest, maps chat commands onto tool calls and
posts them to ``/execute`` with the caller context it saw on the message.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Permission = Literal["guest", "admin"]

_ADMIN_ROLES = ("owner", "admin")


class ToolParameter(BaseModel):
    """Parameter definition for a tool."""

    name: str
    type: str  # string, integer, boolean
    description: str
    required: bool = True
    enum: list[str] | None = None


class ToolDefinition(BaseModel):
    """A command exposed by a module."""

    name: str  # e.g. "epic_push.subscribe"
    description: str
    parameters: list[ToolParameter]
    # "admin" tools need a group owner/admin when called from a group chat
    required_permission: Permission = "guest"

    @property
    def targets_chat(self) -> bool:
        """Whether the tool acts on one subscriber chat."""
        return any(p.name == "subscriber_type" for p in self.parameters)


class ModuleManifest(BaseModel):
    module_name: str
    description: str
    tools: list[ToolDefinition]

    def get_tool(self, tool_name: str) -> ToolDefinition | None:
        """Look a tool up by short or qualified name."""
        short = tool_name.split(".")[-1]
        for tool in self.tools:
            if tool.name.split(".")[-1] == short:
                return tool
        return None


class CallerContext(BaseModel):
    """Who issued a command, as reported by the chat platform.

    A chat command may only act on the chat it was sent from: the group for
    group messages, the sender's own direct chat for private messages.
    """

    model_config = ConfigDict(coerce_numbers_to_str=True)

    message_type: Literal["group", "private"] = "private"
    user_id: str | None = None
    group_id: str | None = None  # set for group messages
    role: str | None = None  # OneBot sender role: owner | admin | member

    @property
    def chat_id(self) -> str | None:
        return self.group_id if self.message_type == "group" else self.user_id

    def may_administer(self) -> bool:
        if self.message_type == "private":
            return True
        return self.role in _ADMIN_ROLES

    def owns_target(self, subscriber_type: Any, subject_id: Any) -> bool:
        if subscriber_type != self.message_type or self.chat_id is None:
            return False
        return str(subject_id).strip() == self.chat_id


class ToolCall(BaseModel):
    """A tool call request. ``caller`` is omitted for trusted service calls."""

    tool_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    caller: CallerContext | None = None


class ToolResult(BaseModel):
    tool_name: str
    success: bool
    result: Any = None
    error: str | None = None
