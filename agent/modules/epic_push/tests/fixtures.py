"""Test fixtures and mock data for epic push module tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from modules.epic_push.models import ForwardNode, MessageSegment, NodeData
from modules.epic_push.transport import DeliveryError

REFERENCE_TZ = timezone(timedelta(hours=8))


def ref_time(hour: int, minute: int, day: int = 1, second: int = 0) -> datetime:
    """An aware datetime in the UTC+8 reference timezone (March 2026)."""
    return datetime(2026, 3, day, hour, minute, second, tzinfo=REFERENCE_TZ)


def text_node(text: str) -> ForwardNode:
    return ForwardNode(
        data=NodeData(
            nickname="EpicGameStore",
            user_id="2854196320",
            content=[MessageSegment(type="text", data={"text": text})],
        )
    )


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class MutableClock:
    """Clock callable whose current time tests can move."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeProvider:
    def __init__(self, *texts: str):
        self.payload = [text_node(t) for t in (texts or ("Game A is free",))]
        self.calls = 0

    def set_texts(self, *texts: str) -> None:
        self.payload = [text_node(t) for t in texts]

    async def fetch(self) -> list[ForwardNode]:
        self.calls += 1
        return list(self.payload)


class FakeTransport:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[tuple] = []
        self.closed = False

    async def send(self, subscriber_type, subject_id, payload) -> None:
        if self.fail:
            raise DeliveryError("transport down")
        self.sent.append((subscriber_type, subject_id, payload))

    async def aclose(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Epic API responses
# ---------------------------------------------------------------------------

FREE_GAME = {
    "title": "Cozy Farm",
    "description": "Grow things.",
    "seller": {"name": "Cozy Studio"},
    "customAttributes": [
        {"key": "developerName", "value": "Tiny Dev"},
        {"key": "publisherName", "value": "Cozy Studio"},
    ],
    "keyImages": [
        {"type": "Thumbnail", "url": "https://cdn.example.com/cozy.jpg"},
    ],
    "offerMappings": [{"pageSlug": "cozy-farm", "pageType": "productHome"}],
    "price": {
        "totalPrice": {
            "fmtPrice": {"originalPrice": "¥70.00", "discountPrice": "0"},
        }
    },
    "promotions": {
        "promotionalOffers": [
            {"promotionalOffers": [{"endDate": "2026-03-05T15:00:00.000Z"}]}
        ],
        "upcomingPromotionalOffers": [],
    },
}

DISCOUNTED_GAME = {
    "title": "Half Price Racer",
    "seller": {"name": "Racer Co"},
    "price": {
        "totalPrice": {
            "fmtPrice": {"originalPrice": "¥100.00", "discountPrice": "¥50.00"},
        }
    },
    "promotions": {
        "promotionalOffers": [
            {"promotionalOffers": [{"endDate": "2026-03-05T15:00:00.000Z"}]}
        ],
        "upcomingPromotionalOffers": [],
    },
}

UPCOMING_GAME = {
    "title": "Next Week",
    "seller": {"name": "Later Inc"},
    "price": {
        "totalPrice": {
            "fmtPrice": {"originalPrice": "¥30.00", "discountPrice": "¥30.00"},
        }
    },
    "promotions": {
        "promotionalOffers": [],
        "upcomingPromotionalOffers": [
            {"promotionalOffers": [{"startDate": "2026-03-05T15:00:00.000Z"}]}
        ],
    },
}

NO_PROMOTION_GAME = {
    "title": "Mystery Box",
    "promotions": None,
}


def epic_response(*games: dict) -> dict:
    return {"data": {"Catalog": {"searchStore": {"elements": list(games)}}}}
