"""Shared fixtures for the epic push tests.

Everything runs against a temporary data directory with fake content and
transport, so no network or Redis is needed.
"""

from __future__ import annotations

import pytest

from modules.epic_push.state import AppState
from modules.epic_push.stores import open_stores
from modules.epic_push.tests.fixtures import FakeProvider, FakeTransport, MutableClock, ref_time
from shared.config import Settings


@pytest.fixture
def settings(tmp_path):
    return Settings(data_dir=tmp_path, service_auth_token="", delivery_transport="onebot")


@pytest.fixture
def stores(tmp_path):
    """``(subscription_store, schedule_store, history_store)`` in tmp_path."""
    return open_stores(tmp_path)


@pytest.fixture
def clock():
    return MutableClock(ref_time(7, 0))


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def make_state(settings, provider, transport, clock):
    """Factory for AppState wired to the fakes. Callers must ``await state.aclose()``."""

    def _make(**overrides) -> AppState:
        kwargs = dict(provider=provider, transport=transport, clock=clock)
        kwargs.update(overrides)
        return AppState(settings, **kwargs)

    return _make
