"""Timer sources for escalation scheduling.

The escalation engine and dose monitor only schedule one-shot callbacks
through a ``TimerSource``. Production runs on the application's
APScheduler instance; tests drive a virtual clock.
"""

import itertools
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from dosewatch.logging_config import get_logger

logger = get_logger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class TimerHandle:
    """Opaque reference to a pending timer."""

    timer_id: str
    due_at: datetime


class TimerSource(Protocol):
    """Schedules and cancels one-shot coroutine callbacks."""

    def now(self) -> datetime: ...

    def call_later(self, delay_seconds: float, callback: TimerCallback) -> TimerHandle: ...

    def cancel(self, handle: TimerHandle) -> bool: ...


class SchedulerTimerSource:
    """Timer source backed by one-shot APScheduler date jobs."""

    def __init__(self, scheduler: AsyncIOScheduler):
        self._scheduler = scheduler

    def now(self) -> datetime:
        return datetime.now(UTC)

    def call_later(self, delay_seconds: float, callback: TimerCallback) -> TimerHandle:
        due_at = self.now() + timedelta(seconds=max(delay_seconds, 0))
        timer_id = f"timer-{uuid.uuid4().hex}"
        self._scheduler.add_job(
            callback,
            trigger=DateTrigger(run_date=due_at),
            id=timer_id,
            name="Escalation timer",
            # Fire late rather than never, e.g. after a blocked event loop
            misfire_grace_time=None,
        )
        return TimerHandle(timer_id=timer_id, due_at=due_at)

    def cancel(self, handle: TimerHandle) -> bool:
        try:
            self._scheduler.remove_job(handle.timer_id)
        except JobLookupError:
            # Already fired or already removed
            return False
        return True


class ManualTimerSource:
    """Virtual clock for deterministic tests and simulations.

    Time only moves when ``advance`` is awaited. Due timers fire in due-time
    order (registration order on ties), each observing ``now()`` equal to
    its own due time. Timers registered by a callback during an advance
    fire in the same advance if they fall due before its end.
    """

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime(2024, 1, 1, 8, 0, tzinfo=UTC)
        self._sequence = itertools.count()
        self._pending: dict[str, tuple[datetime, int, TimerCallback]] = {}

    def now(self) -> datetime:
        return self._now

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def call_later(self, delay_seconds: float, callback: TimerCallback) -> TimerHandle:
        sequence = next(self._sequence)
        due_at = self._now + timedelta(seconds=max(delay_seconds, 0))
        timer_id = f"manual-{sequence}"
        self._pending[timer_id] = (due_at, sequence, callback)
        return TimerHandle(timer_id=timer_id, due_at=due_at)

    def cancel(self, handle: TimerHandle) -> bool:
        return self._pending.pop(handle.timer_id, None) is not None

    async def advance(self, seconds: float) -> None:
        """Move the clock forward, firing every timer that falls due."""
        target = self._now + timedelta(seconds=seconds)
        while True:
            due = [
                (due_at, sequence, timer_id)
                for timer_id, (due_at, sequence, _) in self._pending.items()
                if due_at <= target
            ]
            if not due:
                break
            due_at, _, timer_id = min(due)
            _, _, callback = self._pending.pop(timer_id)
            self._now = max(self._now, due_at)
            await callback()
        self._now = target

    async def advance_minutes(self, minutes: float) -> None:
        await self.advance(minutes * 60)
