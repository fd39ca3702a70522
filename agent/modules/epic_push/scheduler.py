"""Daily push scheduler: one asyncio checker task per job.

Each job wakes up every ``check_interval`` seconds, converts the current time
to the fixed reference timezone and triggers a delivery when the hour and
minute match its target. A job triggers at most once per reference-timezone
calendar date, so tick jitter around the boundary cannot double-fire it.

Job times are persisted as ``{job_id: "minute hour"}`` and restored on
startup; the scheduler owns the in-memory job map and cancels a job's
checker before dropping it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

import structlog

from modules.epic_push.models import Subscriber, SubscriberType
from modules.epic_push.stores import ScheduleStore

logger = structlog.get_logger()

JOB_ID_PREFIX = "epic"

# How often each job's checker wakes up (seconds)
DEFAULT_CHECK_INTERVAL = 60.0

# Offset of the reference timezone all job times are expressed in (UTC+8)
DEFAULT_UTC_OFFSET_HOURS = 8

# Type tokens accepted in job ids; the first of each kind is what we write
_TYPE_TOKENS: dict[str, SubscriberType] = {
    "group": SubscriberType.CHANNEL,
    "grp": SubscriberType.CHANNEL,
    "ch": SubscriberType.CHANNEL,
    "channel": SubscriberType.CHANNEL,
    "private": SubscriberType.DIRECT,
    "dm": SubscriberType.DIRECT,
    "direct": SubscriberType.DIRECT,
}

DeliverFn = Callable[[str, Subscriber], Awaitable[object]]
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_job_id(subscriber: Subscriber) -> str:
    """``epic_group_123`` / ``epic_private_456``."""
    return f"{JOB_ID_PREFIX}_{subscriber.type.value}_{subscriber.subject_id}"


def parse_job_id(job_id: str) -> Subscriber:
    """Recover the subscriber from a job id.

    Accepts ``{prefix}_{type}_{subject}`` and the short ``{type}_{subject}``
    form. The subject is everything after the type token, so subject ids
    containing ``_`` survive the round trip.

    Raises:
        ValueError: If no type token is found or the subject is empty.
    """
    parts = job_id.split("_")
    if len(parts) >= 2 and parts[0] in _TYPE_TOKENS:
        token, subject_parts = parts[0], parts[1:]
    elif len(parts) >= 3 and parts[1] in _TYPE_TOKENS:
        token, subject_parts = parts[1], parts[2:]
    else:
        raise ValueError(f"Invalid job id: {job_id!r}")

    subject_id = "_".join(subject_parts)
    if not subject_id:
        raise ValueError(f"Job id has no subject: {job_id!r}")
    return Subscriber(type=_TYPE_TOKENS[token], subject_id=subject_id)


def validate_time(hour: int, minute: int) -> None:
    if not 0 <= hour <= 23:
        raise ValueError(f"hour must be between 0 and 23, got {hour}")
    if not 0 <= minute <= 59:
        raise ValueError(f"minute must be between 0 and 59, got {minute}")


def format_schedule(hour: int, minute: int) -> str:
    """Persisted form of a job time, minute first."""
    return f"{minute} {hour}"


def parse_schedule(value: str) -> tuple[int, int]:
    """Parse a persisted ``"minute hour"`` pair into ``(hour, minute)``.

    Raises:
        ValueError: If the value is not two in-range integers.
    """
    parts = str(value).split()
    if len(parts) != 2:
        raise ValueError(f"Invalid schedule value: {value!r}")
    minute, hour = int(parts[0]), int(parts[1])
    validate_time(hour, minute)
    return hour, minute


@dataclass
class ScheduledJob:
    """A live job: its target time and the checker task that owns it."""

    id: str
    hour: int
    minute: int
    subscriber: Subscriber
    task: asyncio.Task | None = None
    last_fired_on: date | None = None

    @property
    def time_label(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"

    def matches(self, local_now: datetime) -> bool:
        return local_now.hour == self.hour and local_now.minute == self.minute


class JobScheduler:
    """Owns every job's checker task and the persisted job schedule."""

    def __init__(
        self,
        store: ScheduleStore,
        deliver: DeliverFn,
        *,
        utc_offset_hours: int = DEFAULT_UTC_OFFSET_HOURS,
        check_interval: float = DEFAULT_CHECK_INTERVAL,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.check_interval = check_interval
        self.tz = timezone(timedelta(hours=utc_offset_hours))
        self._deliver_fn = deliver
        self._clock = clock
        self._jobs: dict[str, ScheduledJob] = {}
        self._deliveries: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._jobs

    @property
    def active_job_ids(self) -> list[str]:
        return sorted(self._jobs)

    def get_job(self, job_id: str) -> ScheduledJob | None:
        return self._jobs.get(job_id)

    def now(self) -> datetime:
        """Current time in the reference timezone."""
        return self._clock().astimezone(self.tz)

    # ------------------------------------------------------------------
    # Job lifecycle
    # ------------------------------------------------------------------

    def add_job(self, job_id: str, hour: int, minute: int, subscriber: Subscriber) -> ScheduledJob:
        """Create or replace a job, persist its time and start its checker.

        Raises:
            ValueError: If hour or minute is out of range.
        """
        validate_time(hour, minute)
        self._discard(job_id)

        schedule = self.store.load()
        schedule[job_id] = format_schedule(hour, minute)
        self.store.save(schedule)

        job = self._start(job_id, hour, minute, subscriber)
        logger.info(
            "job_added",
            job_id=job_id,
            subscriber=str(subscriber),
            time=job.time_label,
        )
        return job

    def remove_job(self, job_id: str) -> bool:
        """Cancel a job's checker and delete its persisted time.

        The persisted entry is removed even when no checker is live, so
        stale entries can be cleaned up. Returns whether a live job existed.
        """
        existed = self._discard(job_id)

        schedule = self.store.load()
        if schedule.pop(job_id, None) is not None:
            self.store.save(schedule)

        logger.info("job_removed", job_id=job_id, had_timer=existed)
        return existed

    def restore_all(self) -> int:
        """Start a checker for every persisted job without rewriting the file.

        Entries with a malformed id or time are logged and skipped.
        """
        restored = 0
        for job_id, value in self.store.load().items():
            try:
                subscriber = parse_job_id(job_id)
                hour, minute = parse_schedule(value)
            except ValueError as e:
                logger.warning("job_restore_skipped", job_id=job_id, value=value, error=str(e))
                continue

            self._discard(job_id)
            self._start(job_id, hour, minute, subscriber)
            restored += 1

        if restored:
            logger.info("jobs_restored", count=restored)
        return restored

    def scheduled_time(self, job_id: str) -> tuple[int, int] | None:
        """Persisted ``(hour, minute)`` for a job, or None if absent or invalid."""
        value = self.store.load().get(job_id)
        if value is None:
            return None
        try:
            return parse_schedule(value)
        except ValueError:
            return None

    def shutdown(self) -> None:
        """Cancel every checker. Persisted times are kept for the next start."""
        for job_id in list(self._jobs):
            self._discard(job_id)
            logger.debug("job_checker_cancelled", job_id=job_id)

    async def aclose(self) -> None:
        """Cancel every checker and wait for in-flight deliveries to finish."""
        tasks = [job.task for job in self._jobs.values() if job.task is not None]
        self.shutdown()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.wait_for_deliveries()

    async def wait_for_deliveries(self) -> None:
        if self._deliveries:
            await asyncio.gather(*list(self._deliveries), return_exceptions=True)

    # ------------------------------------------------------------------
    # Ticking
    # ------------------------------------------------------------------

    def check_job(self, job_id: str, now: datetime | None = None) -> bool:
        """Run one tick for a job. Returns True if a delivery was spawned."""
        job = self._jobs.get(job_id)
        if job is None:
            return False
        return self._check(job, now)

    def _check(self, job: ScheduledJob, now: datetime | None = None) -> bool:
        local_now = (now or self._clock()).astimezone(self.tz)
        if not job.matches(local_now):
            return False

        today = local_now.date()
        if job.last_fired_on == today:
            logger.debug("job_already_fired_today", job_id=job.id, date=today.isoformat())
            return False
        job.last_fired_on = today

        logger.info("job_triggered", job_id=job.id, time=job.time_label)
        task = asyncio.create_task(
            self._deliver(job.id, job.subscriber),
            name=f"epic-push-delivery:{job.id}",
        )
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)
        return True

    async def _run_checker(self, job: ScheduledJob) -> None:
        while True:
            await asyncio.sleep(self.check_interval)
            try:
                self._check(job)
            except Exception as e:
                logger.error("job_check_error", job_id=job.id, error=str(e))

    async def _deliver(self, job_id: str, subscriber: Subscriber) -> None:
        try:
            await self._deliver_fn(job_id, subscriber)
        except Exception as e:
            logger.error("job_delivery_error", job_id=job_id, error=str(e), exc_info=True)

    # ------------------------------------------------------------------
    # Ownership of checker tasks
    # ------------------------------------------------------------------

    def _start(self, job_id: str, hour: int, minute: int, subscriber: Subscriber) -> ScheduledJob:
        job = ScheduledJob(id=job_id, hour=hour, minute=minute, subscriber=subscriber)
        job.task = asyncio.create_task(
            self._run_checker(job),
            name=f"epic-push-checker:{job_id}",
        )
        self._jobs[job_id] = job
        return job

    def _discard(self, job_id: str) -> bool:
        """Cancel a job's checker, then drop it from the map."""
        job = self._jobs.get(job_id)
        if job is None:
            return False
        if job.task is not None:
            job.task.cancel()
        del self._jobs[job_id]
        return True
