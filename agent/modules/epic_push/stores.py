"""JSON document stores for subscriptions, job schedule and push history.

Each store persists one whole document. ``load`` never raises: a missing,
unreadable or malformed file yields the store's empty default. ``save``
replaces the file through a temporary sibling and reports success instead of
raising.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Generic, TypeVar

import structlog
from pydantic import ValidationError

from modules.epic_push.models import SubscriptionDocument

logger = structlog.get_logger()

SUBSCRIPTIONS_FILE = "subscriptions.json"
SCHEDULE_FILE = "scheduler.json"
PUSH_HISTORY_FILE = "push_history.json"

DocT = TypeVar("DocT")


class JsonDocumentStore(Generic[DocT]):
    """Whole-document JSON persistence with a well-defined empty default."""

    name = "document"

    def __init__(self, path: Path):
        self.path = Path(path)

    def default(self) -> DocT:
        raise NotImplementedError

    def parse(self, raw: Any) -> DocT:
        """Convert decoded JSON into the document type. Raise ValueError if invalid."""
        raise NotImplementedError

    def dump(self, doc: DocT) -> Any:
        return doc

    def load(self) -> DocT:
        if not self.path.exists():
            return self.default()
        try:
            with open(self.path, encoding="utf-8") as handle:
                raw = json.load(handle)
            return self.parse(raw)
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(
                "store_load_failed",
                store=self.name,
                path=str(self.path),
                error=str(e),
            )
            return self.default()

    def save(self, doc: DocT) -> bool:
        temp_path = self.path.with_name(f"{self.path.name}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as handle:
                json.dump(self.dump(doc), handle, ensure_ascii=False, indent=2)
            temp_path.replace(self.path)
        except (OSError, TypeError, ValueError) as e:
            logger.error(
                "store_save_failed",
                store=self.name,
                path=str(self.path),
                error=str(e),
            )
            return False
        return True


class SubscriptionStore(JsonDocumentStore[SubscriptionDocument]):
    """``{"group": [...], "private": [...]}``: subscribed subject ids per type."""

    name = "subscriptions"

    def default(self) -> SubscriptionDocument:
        return SubscriptionDocument()

    def parse(self, raw: Any) -> SubscriptionDocument:
        if not isinstance(raw, dict):
            raise ValueError("subscriptions document must be a JSON object")
        members: dict[str, list[str]] = {}
        for key in ("group", "private"):
            value = raw.get(key) or []
            if not isinstance(value, list):
                raise ValueError(f"subscriptions.{key} must be a list")
            # Set semantics, insertion order kept
            members[key] = list(dict.fromkeys(str(s) for s in value))
        return SubscriptionDocument.model_validate(members)

    def dump(self, doc: SubscriptionDocument) -> Any:
        return doc.model_dump()


class StringMapStore(JsonDocumentStore[dict[str, str]]):
    """A flat ``{key: value}`` document of strings."""

    def default(self) -> dict[str, str]:
        return {}

    def parse(self, raw: Any) -> dict[str, str]:
        if not isinstance(raw, dict):
            raise ValueError(f"{self.name} document must be a JSON object")
        parsed: dict[str, str] = {}
        for key, value in raw.items():
            if isinstance(value, (dict, list)) or value is None:
                logger.warning("store_entry_ignored", store=self.name, key=key)
                continue
            parsed[str(key)] = str(value)
        return parsed


class ScheduleStore(StringMapStore):
    """``{job_id: "minute hour"}``."""

    name = "scheduler"


class PushHistoryStore(StringMapStore):
    """``{job_id: fingerprint}``."""

    name = "push_history"


def open_stores(data_dir: Path) -> tuple[SubscriptionStore, ScheduleStore, PushHistoryStore]:
    """Create the three stores under a data directory."""
    data_dir = Path(data_dir)
    return (
        SubscriptionStore(data_dir / SUBSCRIPTIONS_FILE),
        ScheduleStore(data_dir / SCHEDULE_FILE),
        PushHistoryStore(data_dir / PUSH_HISTORY_FILE),
    )
