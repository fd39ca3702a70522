"""Delivery orchestrator: what happens when a job's time comes."""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import Protocol

import structlog

from modules.epic_push.fingerprint import PushHistory
from modules.epic_push.models import ForwardNode, Subscriber
from modules.epic_push.subscriptions import SubscriptionRegistry
from modules.epic_push.transport import Transport

logger = structlog.get_logger()


class ContentProvider(Protocol):
    async def fetch(self) -> list[ForwardNode]: ...


class DeliveryOutcome(str, Enum):
    DELIVERED = "delivered"
    UNCHANGED = "unchanged"  # same content as the last push, transport not called
    ORPHANED = "orphaned"  # subscriber gone, job removed
    FAILED = "failed"  # transport error, fingerprint kept


class DeliveryOrchestrator:
    """Re-validates the subscriber, fetches content, dedups and sends."""

    def __init__(
        self,
        registry: SubscriptionRegistry,
        provider: ContentProvider,
        history: PushHistory,
        transport: Transport,
        remove_job: Callable[[str], object],
    ):
        self.registry = registry
        self.provider = provider
        self.history = history
        self.transport = transport
        self.remove_job = remove_job

    async def execute_delivery(self, job_id: str, subscriber: Subscriber) -> DeliveryOutcome:
        """Scheduled push for one job.

        A transport failure is logged and reported as FAILED; the fingerprint
        recorded before sending stays, so the same content is not retried.
        """
        logger.info("delivery_started", job_id=job_id, subscriber=str(subscriber))

        if not self.registry.is_subscribed(subscriber.type, subscriber.subject_id):
            logger.warning("delivery_orphaned_job_removed", job_id=job_id, subscriber=str(subscriber))
            self.remove_job(job_id)
            return DeliveryOutcome.ORPHANED

        payload = await self.provider.fetch()

        if not self.history.should_deliver(job_id, payload):
            logger.info("delivery_skipped_unchanged", job_id=job_id)
            return DeliveryOutcome.UNCHANGED

        if not await self._send(subscriber, payload):
            return DeliveryOutcome.FAILED

        logger.info("delivery_succeeded", job_id=job_id, nodes=len(payload))
        return DeliveryOutcome.DELIVERED

    async def deliver_now(self, subscriber: Subscriber) -> bool:
        """On-demand push: no time gate, no dedup history. Returns send success."""
        payload = await self.provider.fetch()
        return await self._send(subscriber, payload)

    async def _send(self, subscriber: Subscriber, payload: list[ForwardNode]) -> bool:
        try:
            await self.transport.send(subscriber.type, subscriber.subject_id, payload)
        except Exception as e:
            logger.error("delivery_failed", subscriber=str(subscriber), error=str(e))
            return False
        return True
