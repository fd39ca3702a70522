"""Tests for the daily job scheduler.

Covers: job id and schedule parsing, restore fidelity, replace semantics,
removal, the once-per-day trigger guard and checker resilience.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from modules.epic_push.models import Subscriber, SubscriberType
from modules.epic_push.scheduler import (
    JobScheduler,
    build_job_id,
    format_schedule,
    parse_job_id,
    parse_schedule,
)
from modules.epic_push.tests.fixtures import MutableClock, ref_time

GROUP_1 = Subscriber(type=SubscriberType.CHANNEL, subject_id="1")


# ---------------------------------------------------------------------------
# Job ids and persisted times
# ---------------------------------------------------------------------------


class TestJobIds:
    def test_build_job_id(self):
        assert build_job_id(GROUP_1) == "epic_group_1"
        assert build_job_id(Subscriber(type=SubscriberType.DIRECT, subject_id="7")) == "epic_private_7"

    @pytest.mark.parametrize(
        "job_id, expected_type, expected_subject",
        [
            ("epic_group_123", SubscriberType.CHANNEL, "123"),
            ("epic_private_456", SubscriberType.DIRECT, "456"),
            ("epic_private_a_b", SubscriberType.DIRECT, "a_b"),
            ("grp_1", SubscriberType.CHANNEL, "1"),
            ("ch_42", SubscriberType.CHANNEL, "42"),
            ("dm_5", SubscriberType.DIRECT, "5"),
        ],
    )
    def test_parse_job_id(self, job_id, expected_type, expected_subject):
        subscriber = parse_job_id(job_id)
        assert subscriber.type == expected_type
        assert subscriber.subject_id == expected_subject

    @pytest.mark.parametrize("job_id", ["group", "epic_unknown_1", "epic_group_", "foo_bar_baz"])
    def test_parse_job_id_rejects_malformed(self, job_id):
        with pytest.raises(ValueError):
            parse_job_id(job_id)

    def test_built_ids_parse_back(self):
        sub = Subscriber(type=SubscriberType.DIRECT, subject_id="user_with_underscores")
        assert parse_job_id(build_job_id(sub)) == sub


class TestSchedules:
    def test_format_is_minute_first(self):
        assert format_schedule(8, 30) == "30 8"

    def test_parse(self):
        assert parse_schedule("30 8") == (8, 30)
        assert parse_schedule("0 0") == (0, 0)

    @pytest.mark.parametrize("value", ["8:30", "30", "60 8", "0 24", "a b", ""])
    def test_parse_rejects_malformed(self, value):
        with pytest.raises(ValueError):
            parse_schedule(value)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_add_job_persists_and_starts_checker(stores):
    _, schedule, _ = stores
    scheduler = JobScheduler(schedule, AsyncMock())
    try:
        job = scheduler.add_job("epic_group_1", 8, 30, GROUP_1)

        assert "epic_group_1" in scheduler
        assert job.time_label == "08:30"
        assert job.task is not None and not job.task.done()
        assert schedule.load() == {"epic_group_1": "30 8"}
    finally:
        await scheduler.aclose()


@pytest.mark.asyncio
async def test_add_job_rejects_invalid_time(stores):
    _, schedule, _ = stores
    scheduler = JobScheduler(schedule, AsyncMock())

    with pytest.raises(ValueError):
        scheduler.add_job("epic_group_1", 24, 0, GROUP_1)

    assert len(scheduler) == 0
    assert schedule.load() == {}


@pytest.mark.asyncio
async def test_add_job_replaces_existing(stores):
    _, schedule, _ = stores
    scheduler = JobScheduler(schedule, AsyncMock())
    try:
        first = scheduler.add_job("epic_group_1", 8, 0, GROUP_1)
        scheduler.add_job("epic_group_1", 10, 0, GROUP_1)

        await asyncio.gather(first.task, return_exceptions=True)
        assert first.task.cancelled()
        assert len(scheduler) == 1
        assert scheduler.get_job("epic_group_1").hour == 10
        assert schedule.load() == {"epic_group_1": "0 10"}
    finally:
        await scheduler.aclose()


@pytest.mark.asyncio
async def test_remove_job_cancels_and_unpersists(stores):
    _, schedule, _ = stores
    scheduler = JobScheduler(schedule, AsyncMock())
    job = scheduler.add_job("epic_group_1", 8, 0, GROUP_1)

    assert scheduler.remove_job("epic_group_1") is True

    await asyncio.gather(job.task, return_exceptions=True)
    assert job.task.cancelled()
    assert "epic_group_1" not in scheduler
    assert schedule.load() == {}


@pytest.mark.asyncio
async def test_remove_job_cleans_stale_entry(stores):
    _, schedule, _ = stores
    schedule.save({"epic_group_9": "0 9", "epic_group_1": "0 8"})
    scheduler = JobScheduler(schedule, AsyncMock())

    assert scheduler.remove_job("epic_group_9") is False
    assert schedule.load() == {"epic_group_1": "0 8"}


@pytest.mark.asyncio
async def test_restore_short_form_job(stores):
    _, schedule, _ = stores
    schedule.save({"grp_1": "30 8"})
    before = schedule.path.read_text(encoding="utf-8")
    scheduler = JobScheduler(schedule, AsyncMock())
    try:
        assert scheduler.restore_all() == 1

        job = scheduler.get_job("grp_1")
        assert (job.hour, job.minute) == (8, 30)
        assert job.subscriber == GROUP_1
        assert schedule.path.read_text(encoding="utf-8") == before
    finally:
        await scheduler.aclose()


@pytest.mark.asyncio
async def test_restore_skips_malformed_entries(stores):
    _, schedule, _ = stores
    schedule.save({
        "epic_group_1": "0 8",
        "epic_private_2": "not a time",
        "nonsense": "0 9",
        "epic_group_3": "0 25",
    })
    scheduler = JobScheduler(schedule, AsyncMock())
    try:
        assert scheduler.restore_all() == 1
        assert scheduler.active_job_ids == ["epic_group_1"]
        assert len(schedule.load()) == 4
    finally:
        await scheduler.aclose()


@pytest.mark.asyncio
async def test_restore_twice_keeps_one_checker_per_job(stores):
    _, schedule, _ = stores
    schedule.save({"epic_group_1": "0 8"})
    scheduler = JobScheduler(schedule, AsyncMock())
    try:
        scheduler.restore_all()
        first = scheduler.get_job("epic_group_1")
        scheduler.restore_all()

        await asyncio.gather(first.task, return_exceptions=True)
        assert first.task.cancelled()
        assert len(scheduler) == 1
    finally:
        await scheduler.aclose()


@pytest.mark.asyncio
async def test_shutdown_keeps_persisted_times(stores):
    _, schedule, _ = stores
    scheduler = JobScheduler(schedule, AsyncMock())
    job = scheduler.add_job("epic_group_1", 8, 0, GROUP_1)

    await scheduler.aclose()

    assert job.task.cancelled()
    assert len(scheduler) == 0
    assert schedule.load() == {"epic_group_1": "0 8"}


@pytest.mark.asyncio
async def test_scheduled_time(stores):
    _, schedule, _ = stores
    schedule.save({"epic_group_1": "5 21", "epic_group_2": "garbage"})
    scheduler = JobScheduler(schedule, AsyncMock())

    assert scheduler.scheduled_time("epic_group_1") == (21, 5)
    assert scheduler.scheduled_time("epic_group_2") is None
    assert scheduler.scheduled_time("epic_group_3") is None


# ---------------------------------------------------------------------------
# Triggering
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_triggers_only_on_matching_minute(stores):
    _, schedule, _ = stores
    deliver = AsyncMock()
    scheduler = JobScheduler(schedule, deliver)
    try:
        scheduler.add_job("epic_group_1", 8, 0, GROUP_1)

        assert scheduler.check_job("epic_group_1", ref_time(7, 59)) is False
        assert scheduler.check_job("epic_group_1", ref_time(8, 1)) is False
        assert scheduler.check_job("epic_group_1", ref_time(8, 0, second=42)) is True

        await scheduler.wait_for_deliveries()
        deliver.assert_awaited_once_with("epic_group_1", GROUP_1)
    finally:
        await scheduler.aclose()


@pytest.mark.asyncio
async def test_matching_uses_reference_timezone(stores):
    _, schedule, _ = stores
    deliver = AsyncMock()
    scheduler = JobScheduler(schedule, deliver)
    try:
        scheduler.add_job("epic_group_1", 8, 0, GROUP_1)

        assert scheduler.check_job("epic_group_1", datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)) is False
        # 00:00 UTC is 08:00 in UTC+8
        assert scheduler.check_job("epic_group_1", datetime(2026, 3, 1, 0, 0, tzinfo=timezone.utc)) is True
    finally:
        await scheduler.aclose()


@pytest.mark.asyncio
async def test_fires_at_most_once_per_day(stores):
    _, schedule, _ = stores
    deliver = AsyncMock()
    scheduler = JobScheduler(schedule, deliver)
    try:
        scheduler.add_job("epic_group_1", 8, 0, GROUP_1)

        assert scheduler.check_job("epic_group_1", ref_time(8, 0, second=1)) is True
        assert scheduler.check_job("epic_group_1", ref_time(8, 0, second=59)) is False
        assert scheduler.check_job("epic_group_1", ref_time(8, 0, day=2)) is True

        await scheduler.wait_for_deliveries()
        assert deliver.await_count == 2
    finally:
        await scheduler.aclose()


@pytest.mark.asyncio
async def test_unknown_job_does_not_trigger(stores):
    _, schedule, _ = stores
    scheduler = JobScheduler(schedule, AsyncMock())
    assert scheduler.check_job("epic_group_404", ref_time(8, 0)) is False


class _DailyClock:
    """Returns 08:00 of a new day on every call."""

    def __init__(self):
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return ref_time(8, 0) + timedelta(days=self.calls)


@pytest.mark.asyncio
async def test_delivery_errors_do_not_stop_checker(stores):
    _, schedule, _ = stores
    deliver = AsyncMock(side_effect=RuntimeError("boom"))
    scheduler = JobScheduler(schedule, deliver, check_interval=0.01, clock=_DailyClock())
    try:
        scheduler.add_job("epic_group_1", 8, 0, GROUP_1)
        await asyncio.sleep(0.2)
        await scheduler.wait_for_deliveries()

        assert deliver.await_count >= 2
        assert not scheduler.get_job("epic_group_1").task.done()
    finally:
        await scheduler.aclose()


@pytest.mark.asyncio
async def test_checker_uses_clock(stores):
    _, schedule, _ = stores
    deliver = AsyncMock()
    clock = MutableClock(ref_time(7, 59))
    scheduler = JobScheduler(schedule, deliver, check_interval=0.01, clock=clock)
    try:
        scheduler.add_job("epic_group_1", 8, 0, GROUP_1)
        await asyncio.sleep(0.05)
        deliver.assert_not_awaited()

        clock.now = ref_time(8, 0)
        await asyncio.sleep(0.05)
        await scheduler.wait_for_deliveries()
        deliver.assert_awaited_once_with("epic_group_1", GROUP_1)
    finally:
        await scheduler.aclose()


def test_now_is_in_reference_timezone(stores):
    _, schedule, _ = stores
    scheduler = JobScheduler(schedule, AsyncMock(), clock=MutableClock(ref_time(8, 0)))
    assert scheduler.now().utcoffset() == timedelta(hours=8)
    assert scheduler.now().hour == 8
