"""Delivery transports, how a rendered payload reaches a subscriber."""

from __future__ import annotations

from typing import Protocol

import httpx
import redis.asyncio as aioredis
import structlog

from modules.epic_push.models import ForwardNode, SubscriberType, render_text
from shared.config import Settings
from shared.redis import close_redis, get_redis
from shared.schemas.notifications import Notification

logger = structlog.get_logger()

# OneBot v11 forward actions per subscriber type, with the id field each expects
_ONEBOT_ACTIONS: dict[SubscriberType, tuple[str, str]] = {
    SubscriberType.CHANNEL: ("send_group_forward_msg", "group_id"),
    SubscriberType.DIRECT: ("send_private_forward_msg", "user_id"),
}
_ONEBOT_OK_RETCODES = (0, 1)


class DeliveryError(Exception):
    """Raised when a transport fails to hand a payload over."""


class Transport(Protocol):
    async def send(
        self,
        subscriber_type: SubscriberType,
        subject_id: str,
        payload: list[ForwardNode],
    ) -> None: ...

    async def aclose(self) -> None: ...


class OneBotTransport:
    """Sends merged-forward messages through a OneBot v11 HTTP API."""

    def __init__(self, base_url: str, access_token: str = "", timeout: float = 15.0):
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.timeout = timeout

    def _headers(self) -> dict[str, str]:
        if not self.access_token:
            return {}
        return {"Authorization": f"Bearer {self.access_token}"}

    async def send(
        self,
        subscriber_type: SubscriberType,
        subject_id: str,
        payload: list[ForwardNode],
    ) -> None:
        action, id_field = _ONEBOT_ACTIONS[subscriber_type]
        body = {
            id_field: subject_id,
            "messages": [node.model_dump(exclude_none=True) for node in payload],
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    f"{self.base_url}/{action}",
                    json=body,
                    headers=self._headers(),
                )
                resp.raise_for_status()
                result = resp.json()
        except httpx.HTTPStatusError as e:
            raise DeliveryError(f"OneBot {action} returned HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise DeliveryError(f"Failed to reach OneBot API: {e}") from e
        except ValueError as e:
            raise DeliveryError(f"OneBot {action} returned invalid JSON") from e

        if not isinstance(result, dict):
            raise DeliveryError(f"OneBot {action} returned an unexpected response")
        # retcode 1 means the action was queued asynchronously
        retcode = result.get("retcode", 0)
        if retcode not in _ONEBOT_OK_RETCODES:
            message = result.get("message") or result.get("wording")
            raise DeliveryError(f"OneBot {action} failed (retcode={retcode}): {message}")

        logger.debug("onebot_message_sent", action=action, subject_id=subject_id)

    async def aclose(self) -> None:
        return None


class RedisTransport:
    """Publishes a Notification for a bot process to relay."""

    def __init__(self, redis_client: aioredis.Redis, platform: str = "onebot"):
        self.redis = redis_client
        self.platform = platform

    @property
    def channel(self) -> str:
        return f"notifications:{self.platform}"

    async def send(
        self,
        subscriber_type: SubscriberType,
        subject_id: str,
        payload: list[ForwardNode],
    ) -> None:
        notification = Notification(
            platform=self.platform,
            platform_channel_id=subject_id,
            channel_type=subscriber_type.value,
            content=render_text(payload),
            nodes=[node.model_dump(exclude_none=True) for node in payload],
        )
        try:
            receivers = await self.redis.publish(self.channel, notification.model_dump_json())
        except Exception as e:
            raise DeliveryError(f"Failed to publish notification: {e}") from e

        logger.info(
            "notification_published",
            channel=self.channel,
            subject_id=subject_id,
            receivers=receivers,
        )

    async def aclose(self) -> None:
        await close_redis(self.redis)


def build_transport(settings: Settings) -> Transport:
    """Create the transport selected by ``settings.delivery_transport``."""
    kind = settings.delivery_transport.lower()
    if kind == "onebot":
        return OneBotTransport(
            settings.onebot_url,
            access_token=settings.onebot_access_token,
            timeout=settings.http_timeout_seconds,
        )
    if kind == "redis":
        return RedisTransport(
            get_redis(settings.redis_url), platform=settings.notification_platform
        )
    raise ValueError(f"Unknown delivery transport: {settings.delivery_transport!r}")
