"""Epic push tool implementations: subscription and schedule commands."""

from __future__ import annotations

import re

import structlog

from modules.epic_push.models import Subscriber, SubscriberType
from modules.epic_push.scheduler import build_job_id
from modules.epic_push.state import AppState
from modules.epic_push.subscriptions import SubscriptionStatus

logger = structlog.get_logger()

_TIME_RE = re.compile(r"^\s*(\d{1,2})\s*[:：]\s*(\d{1,2})\s*$")


def parse_time(value: str) -> tuple[int, int]:
    """Parse ``H:MM`` / ``HH:MM`` into ``(hour, minute)``.

    Raises:
        ValueError: If the format or range is wrong.
    """
    match = _TIME_RE.match(value or "")
    if not match:
        raise ValueError(f"Invalid time {value!r}, expected HH:MM such as 8:30")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"Invalid time {value!r}, expected HH:MM such as 8:30")
    return hour, minute


def _subscriber(subscriber_type: str, subject_id: str) -> Subscriber:
    subject_id = str(subject_id).strip()
    if not subject_id:
        raise ValueError("subject_id is required")
    return Subscriber(type=SubscriberType(subscriber_type), subject_id=subject_id)


class EpicPushTools:
    """Commands for subscribing groups/users to the daily free-games push."""

    def __init__(self, state: AppState):
        self.state = state

    async def subscribe(self, subscriber_type: str, subject_id: str, time: str) -> dict:
        """Enable the daily push for a subscriber at ``time`` (reference timezone)."""
        subscriber = _subscriber(subscriber_type, subject_id)
        hour, minute = parse_time(time)

        result = self.state.registry.subscribe(subscriber.type, subscriber.subject_id)
        if result.status == SubscriptionStatus.SAVE_FAILED:
            raise RuntimeError(result.message)

        job_id = build_job_id(subscriber)
        job = self.state.scheduler.add_job(job_id, hour, minute, subscriber)
        return {
            "job_id": job_id,
            "time": job.time_label,
            "status": result.status.value,
            "message": f"Daily Epic push enabled for {subscriber.type.value} "
            f"{subscriber.subject_id} at {job.time_label}",
        }

    async def unsubscribe(self, subscriber_type: str, subject_id: str) -> dict:
        """Disable the daily push and forget what was last sent."""
        subscriber = _subscriber(subscriber_type, subject_id)
        result = self.state.registry.unsubscribe(subscriber.type, subscriber.subject_id)
        if result.status == SubscriptionStatus.SAVE_FAILED:
            raise RuntimeError(result.message)

        job_id = build_job_id(subscriber)
        self.state.scheduler.remove_job(job_id)
        self.state.history.forget(job_id)
        return {
            "job_id": job_id,
            "status": result.status.value,
            "message": result.message,
        }

    async def subscription_status(self, subscriber_type: str, subject_id: str) -> dict:
        subscriber = _subscriber(subscriber_type, subject_id)
        if not self.state.registry.is_subscribed(subscriber.type, subscriber.subject_id):
            return {
                "subscribed": False,
                "time": None,
                "message": f"{subscriber.type.value} {subscriber.subject_id} is not subscribed",
            }

        scheduled = self.state.scheduler.scheduled_time(build_job_id(subscriber))
        if scheduled is None:
            return {
                "subscribed": True,
                "time": None,
                "message": "Subscribed, but no push time is set. "
                "Unsubscribe and subscribe again with a time.",
            }

        hour, minute = scheduled
        label = f"{hour:02d}:{minute:02d}"
        return {
            "subscribed": True,
            "time": label,
            "message": f"Subscribed, daily push at {label}",
        }

    async def free_games(self, subscriber_type: str, subject_id: str) -> dict:
        """Push the current free games right away."""
        subscriber = _subscriber(subscriber_type, subject_id)
        sent = await self.state.orchestrator.deliver_now(subscriber)
        if not sent:
            raise RuntimeError("Failed to send the Epic free games, please try again later")
        return {"sent": True}

    async def list_subscriptions(self) -> dict:
        return {
            "subscriptions": self.state.registry.list_all().model_dump(),
            "scheduler": self.state.scheduler.store.load(),
            "active_jobs": self.state.scheduler.active_job_ids,
        }
