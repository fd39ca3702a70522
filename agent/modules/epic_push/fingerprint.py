"""Content fingerprinting and per-job push history dedup."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping, Sequence
from typing import Any

import structlog
from pydantic import BaseModel

from modules.epic_push.stores import PushHistoryStore

logger = structlog.get_logger()


def _plain(value: Any) -> Any:
    """Reduce pydantic models and containers to JSON-ready data."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return [_plain(v) for v in value]
    return value


def fingerprint(payload: Any) -> str:
    """Stable MD5 hex digest of a rendered payload.

    Keys are sorted before hashing, so payloads that are structurally equal
    hash the same regardless of how they were built.
    """
    serialized = json.dumps(
        _plain(payload),
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.md5(serialized.encode("utf-8")).hexdigest()


class PushHistory:
    """Remembers the fingerprint of the last evaluated payload per job."""

    def __init__(self, store: PushHistoryStore):
        self.store = store

    def last_fingerprint(self, job_id: str) -> str | None:
        return self.store.load().get(job_id)

    def should_deliver(self, job_id: str, payload: Any) -> bool:
        """Return False if the payload is unchanged for this job.

        Otherwise record its fingerprint (persisted immediately) and return True.
        """
        current = fingerprint(payload)
        history = self.store.load()
        if history.get(job_id) == current:
            return False

        history[job_id] = current
        self.store.save(history)
        logger.debug("push_history_updated", job_id=job_id, fingerprint=current)
        return True

    def forget(self, job_id: str) -> None:
        history = self.store.load()
        if history.pop(job_id, None) is not None:
            self.store.save(history)
