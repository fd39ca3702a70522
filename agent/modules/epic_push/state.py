"""Application state: built once at startup and handed to every component."""

from __future__ import annotations

import time

import structlog

from modules.epic_push.delivery import ContentProvider, DeliveryOrchestrator, DeliveryOutcome
from modules.epic_push.epic import EpicClient
from modules.epic_push.fingerprint import PushHistory
from modules.epic_push.models import Subscriber
from modules.epic_push.scheduler import Clock, JobScheduler, utc_now
from modules.epic_push.stores import open_stores
from modules.epic_push.subscriptions import SubscriptionRegistry
from modules.epic_push.transport import Transport, build_transport
from shared.config import Settings

logger = structlog.get_logger()


class AppState:
    """Owns the stores, registry, scheduler, orchestrator and transport."""

    def __init__(
        self,
        settings: Settings,
        *,
        provider: ContentProvider | None = None,
        transport: Transport | None = None,
        clock: Clock = utc_now,
    ):
        self.settings = settings
        self.started_at = time.monotonic()

        subscription_store, schedule_store, history_store = open_stores(settings.data_dir)
        self.registry = SubscriptionRegistry(subscription_store)
        self.history = PushHistory(history_store)
        self.transport = transport or build_transport(settings)

        self.scheduler = JobScheduler(
            schedule_store,
            self._deliver,
            utc_offset_hours=settings.reference_utc_offset_hours,
            check_interval=settings.check_interval_seconds,
            clock=clock,
        )
        self.provider = provider or EpicClient(settings, reference_tz=self.scheduler.tz)
        self.orchestrator = DeliveryOrchestrator(
            self.registry,
            self.provider,
            self.history,
            self.transport,
            remove_job=self.scheduler.remove_job,
        )

    async def _deliver(self, job_id: str, subscriber: Subscriber) -> DeliveryOutcome:
        return await self.orchestrator.execute_delivery(job_id, subscriber)

    def start(self) -> int:
        """Restore persisted jobs. Must run inside the event loop."""
        self.settings.data_dir.mkdir(parents=True, exist_ok=True)
        return self.scheduler.restore_all()

    async def aclose(self) -> None:
        await self.scheduler.aclose()
        await self.transport.aclose()
        logger.info("epic_push_state_closed")

    @property
    def uptime_seconds(self) -> float:
        return time.monotonic() - self.started_at

    def uptime_formatted(self) -> str:
        return format_duration(self.uptime_seconds)


def format_duration(seconds: float) -> str:
    """Two most significant units, e.g. ``2d 3h``, ``5h 12m``, ``42s``."""
    s = int(seconds)
    m, h, d = s // 60, s // 3600, s // 86400
    if d > 0:
        return f"{d}d {h % 24}h"
    if h > 0:
        return f"{h}h {m % 60}m"
    if m > 0:
        return f"{m}m {s % 60}s"
    return f"{s}s"
