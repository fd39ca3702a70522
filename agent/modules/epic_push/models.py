"""Pydantic models for the Epic push module."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class SubscriberType(str, Enum):
    """Kind of delivery target. Values are the OneBot message types."""

    CHANNEL = "group"
    DIRECT = "private"


class Subscriber(BaseModel):
    """A delivery target: a group chat or a direct recipient."""

    type: SubscriberType
    subject_id: str

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return f"{self.type.value}:{self.subject_id}"


class MessageSegment(BaseModel):
    """One OneBot message segment, e.g. ``{"type": "text", "data": {"text": ...}}``."""

    type: str
    data: dict


class NodeData(BaseModel):
    nickname: str
    user_id: str | None = None
    content: list[MessageSegment]


class ForwardNode(BaseModel):
    """A merged-forward message node as accepted by OneBot forward actions."""

    type: str = "node"
    data: NodeData

    def text(self) -> str:
        """Plain-text rendering of this node, images shown by URL."""
        parts = []
        for segment in self.data.content:
            if segment.type == "text":
                parts.append(str(segment.data.get("text", "")))
            elif segment.type == "image":
                parts.append(f"[image] {segment.data.get('file', '')}")
        return "\n".join(parts)


class SubscriptionDocument(BaseModel):
    """On-disk shape of ``subscriptions.json``."""

    group: list[str] = Field(default_factory=list)
    private: list[str] = Field(default_factory=list)

    def members(self, subscriber_type: SubscriberType) -> list[str]:
        return getattr(self, subscriber_type.value)


def render_text(payload: list[ForwardNode]) -> str:
    """Join a payload into a single plain-text message."""
    return "\n\n".join(node.text() for node in payload)
