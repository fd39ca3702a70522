"""Epic Games Store free-games client.

Queries the store's promotions endpoint and renders the currently free games
as merged-forward nodes. Request failures never propagate: they are logged
and rendered as a placeholder message, which is itself a valid payload.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any

import httpx
import structlog

from modules.epic_push.models import ForwardNode, MessageSegment, NodeData
from shared.config import Settings

logger = structlog.get_logger()

STORE_URL = "https://store.epicgames.com/zh-CN"

REQUEST_HEADERS = {
    "Referer": "https://www.epicgames.com/store/zh-CN/",
    "Content-Type": "application/json; charset=utf-8",
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/98.0.4758.80 Safari/537.36"
    ),
}

# Key image types usable as a preview, in no particular priority
PREVIEW_IMAGE_TYPES = ("Thumbnail", "VaultOpened", "DieselStoreFrontWide", "OfferImageWide")

PLACEHOLDER_TEXT = "Epic seems to be having a moment, please try again later."
NO_FREE_GAMES_TEXT = "No free promotions found right now..."

_UNKNOWN = "Unknown"
_TEST_PUBLISHER = "Epic Dev Test Account"


class EpicClient:
    """Async client for the Epic Store promotions API."""

    def __init__(self, settings: Settings, reference_tz: tzinfo | None = None):
        self.settings = settings
        self.reference_tz = reference_tz or timezone(
            timedelta(hours=settings.reference_utc_offset_hours)
        )

    async def fetch(self) -> list[ForwardNode]:
        """Fetch and render the current free games."""
        games = await self._query()
        return self.build_nodes(games)

    async def _query(self) -> list[dict]:
        """Return raw catalog elements, or an empty list on any failure."""
        params = {
            "locale": self.settings.epic_locale,
            "country": self.settings.epic_country,
            "allowCountries": self.settings.epic_country,
        }
        proxy = self.settings.proxy_url()
        if proxy:
            logger.info("epic_using_proxy", proxy_type=self.settings.proxy_type)

        try:
            async with httpx.AsyncClient(
                timeout=self.settings.http_timeout_seconds,
                proxy=proxy,
            ) as client:
                resp = await client.get(
                    self.settings.epic_api_url,
                    params=params,
                    headers=REQUEST_HEADERS,
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.error("epic_http_error", status=e.response.status_code)
            return []
        except httpx.RequestError as e:
            logger.error("epic_request_error", error=str(e))
            return []
        except ValueError as e:
            logger.error("epic_invalid_json", error=str(e))
            return []

        try:
            elements = data["data"]["Catalog"]["searchStore"]["elements"]
        except (KeyError, TypeError):
            logger.error("epic_unexpected_response")
            return []
        if not isinstance(elements, list):
            return []
        return elements

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def build_nodes(self, games: list[dict]) -> list[ForwardNode]:
        if not games:
            return [self._text_node(PLACEHOLDER_TEXT)]

        logger.debug(
            "epic_games_fetched",
            count=len(games),
            titles=[g.get("title") for g in games if isinstance(g, dict)],
        )

        nodes: list[ForwardNode] = []
        free_count = 0
        for game in games:
            try:
                rendered = self._render_game(game)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                title = game.get("title") if isinstance(game, dict) else None
                logger.debug("epic_game_render_error", title=title, error=str(e))
                continue
            if rendered:
                nodes.extend(rendered)
                free_count += 1

        header = f"{free_count} games are free right now!" if free_count else NO_FREE_GAMES_TEXT
        return [self._text_node(header), *nodes]

    def _render_game(self, game: dict) -> list[ForwardNode]:
        """Nodes for one game, or an empty list if it is not free right now."""
        name = game.get("title") or _UNKNOWN
        promotions = game.get("promotions")
        if not promotions:
            return []

        current_offers = promotions.get("promotionalOffers") or []
        upcoming_offers = promotions.get("upcomingPromotionalOffers") or []
        fmt_price = ((game.get("price") or {}).get("totalPrice") or {}).get("fmtPrice") or {}
        original_price = fmt_price.get("originalPrice", _UNKNOWN)
        discount_price = fmt_price.get("discountPrice", _UNKNOWN)

        if not current_offers:
            if upcoming_offers:
                logger.info("epic_skip_upcoming", title=name, price=discount_price)
            return []
        if discount_price != "0":
            logger.info("epic_skip_not_free", title=name, price=discount_price)
            return []

        nodes: list[ForwardNode] = []
        for image in game.get("keyImages") or []:
            if image.get("url") and image.get("type") in PREVIEW_IMAGE_TYPES:
                nodes.append(self._image_node(image["url"]))
                break

        end_date_raw = (current_offers[0].get("promotionalOffers") or [{}])[0].get("endDate")
        info = (
            f"{name} ({original_price})\n\n"
            f"{game.get('description', '')}\n\n"
            f"{_credits(game)}Free until {self._format_end_date(end_date_raw)}, "
            "grab it from the link above!"
        )
        nodes.append(self._text_node(_store_url(game)))
        nodes.append(self._text_node(info))
        return nodes

    def _format_end_date(self, value: str | None) -> str:
        if not value:
            return _UNKNOWN
        try:
            end = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return _UNKNOWN
        if end.tzinfo is None:
            end = end.replace(tzinfo=timezone.utc)
        local = end.astimezone(self.reference_tz)
        return f"{local.month}/{local.day} {local:%H:%M}"

    def _node(self, segment: MessageSegment) -> ForwardNode:
        return ForwardNode(
            data=NodeData(
                nickname=self.settings.forward_nickname,
                user_id=self.settings.forward_user_id,
                content=[segment],
            )
        )

    def _text_node(self, text: str) -> ForwardNode:
        return self._node(MessageSegment(type="text", data={"text": text}))

    def _image_node(self, url: str) -> ForwardNode:
        return self._node(MessageSegment(type="image", data={"file": url}))


def _credits(game: dict[str, Any]) -> str:
    seller = (game.get("seller") or {}).get("name") or _UNKNOWN
    developer = publisher = seller
    for pair in game.get("customAttributes") or []:
        if pair.get("key") == "developerName":
            developer = pair.get("value")
        elif pair.get("key") == "publisherName":
            publisher = pair.get("value")

    if publisher == _TEST_PUBLISHER:
        return ""
    if developer != publisher:
        return f"Developed by {developer}, published by {publisher}. "
    return f"Published by {publisher}. "


def _store_url(game: dict[str, Any]) -> str:
    if game.get("url"):
        return game["url"]

    slugs = [
        m.get("pageSlug")
        for m in (game.get("offerMappings") or [])
        if m.get("pageType") == "productHome"
    ]
    slugs += [
        m.get("pageSlug")
        for m in ((game.get("catalogNs") or {}).get("mappings") or [])
        if m.get("pageType") == "productHome"
    ]
    slugs += [
        a.get("value")
        for a in (game.get("customAttributes") or [])
        if "productSlug" in (a.get("key") or "")
    ]
    slugs = [s for s in slugs if s]
    return f"{STORE_URL}/p/{slugs[0]}" if slugs else STORE_URL
