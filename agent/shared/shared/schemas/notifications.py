"""Notification schemas for proactive messages via Redis pub/sub."""

from __future__ import annotations

from pydantic import BaseModel


class Notification(BaseModel):
    """A proactive message to send to a subscriber on a specific platform."""

    platform: str  # e.g. "onebot"
    platform_channel_id: str  # group id or user id
    channel_type: str  # "group" | "private"
    content: str  # plain-text rendering of the message
    nodes: list[dict] = []  # merged-forward nodes, when the platform supports them
