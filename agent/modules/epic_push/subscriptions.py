"""Subscription registry: which groups and users receive daily pushes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import structlog

from modules.epic_push.models import Subscriber, SubscriberType, SubscriptionDocument
from modules.epic_push.stores import SubscriptionStore

logger = structlog.get_logger()


class SubscriptionStatus(str, Enum):
    SUBSCRIBED = "subscribed"
    ALREADY_SUBSCRIBED = "already_subscribed"
    UNSUBSCRIBED = "unsubscribed"
    NOT_SUBSCRIBED = "not_subscribed"
    SAVE_FAILED = "save_failed"


_MESSAGES = {
    SubscriptionStatus.SUBSCRIBED: "{target} is now subscribed to Epic free game news",
    SubscriptionStatus.ALREADY_SUBSCRIBED: "{target} is already subscribed to Epic free game news",
    SubscriptionStatus.UNSUBSCRIBED: "{target} is no longer subscribed to Epic free game news",
    SubscriptionStatus.NOT_SUBSCRIBED: "{target} was not subscribed to Epic free game news",
    SubscriptionStatus.SAVE_FAILED: "Could not save the subscription change for {target}",
}


@dataclass(frozen=True)
class SubscriptionResult:
    status: SubscriptionStatus
    subscriber: Subscriber

    @property
    def changed(self) -> bool:
        return self.status in (SubscriptionStatus.SUBSCRIBED, SubscriptionStatus.UNSUBSCRIBED)

    @property
    def message(self) -> str:
        target = f"{self.subscriber.type.value} {self.subscriber.subject_id}"
        return _MESSAGES[self.status].format(target=target)


class SubscriptionRegistry:
    """Add/remove/query membership against the subscriptions document.

    Every operation is a whole-document read-modify-write.
    """

    def __init__(self, store: SubscriptionStore):
        self.store = store

    def list_all(self) -> SubscriptionDocument:
        return self.store.load()

    def is_subscribed(self, subscriber_type: SubscriberType, subject_id: str) -> bool:
        return subject_id in self.store.load().members(subscriber_type)

    def subscribe(self, subscriber_type: SubscriberType, subject_id: str) -> SubscriptionResult:
        subscriber = Subscriber(type=subscriber_type, subject_id=subject_id)
        doc = self.store.load()
        members = doc.members(subscriber_type)
        if subject_id in members:
            return SubscriptionResult(SubscriptionStatus.ALREADY_SUBSCRIBED, subscriber)

        members.append(subject_id)
        return self._commit(doc, SubscriptionStatus.SUBSCRIBED, subscriber)

    def unsubscribe(self, subscriber_type: SubscriberType, subject_id: str) -> SubscriptionResult:
        subscriber = Subscriber(type=subscriber_type, subject_id=subject_id)
        doc = self.store.load()
        members = doc.members(subscriber_type)
        if subject_id not in members:
            return SubscriptionResult(SubscriptionStatus.NOT_SUBSCRIBED, subscriber)

        members.remove(subject_id)
        return self._commit(doc, SubscriptionStatus.UNSUBSCRIBED, subscriber)

    def _commit(
        self,
        doc: SubscriptionDocument,
        status: SubscriptionStatus,
        subscriber: Subscriber,
    ) -> SubscriptionResult:
        if not self.store.save(doc):
            return SubscriptionResult(SubscriptionStatus.SAVE_FAILED, subscriber)
        logger.info("subscription_changed", subscriber=str(subscriber), status=status.value)
        return SubscriptionResult(status, subscriber)
