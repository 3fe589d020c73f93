"""FacilitatorScheduler: per-group nudge timers and the daily scan timer.

Design notes:
    - Each timer is an asyncio task owning one ScheduledTask record.  A
      tick carries only the owner id; the callback resolves everything
      else by lookup, so a group deleted mid-flight is simply not found.
    - At most one live timer per group id: scheduling cancels any prior
      timer for that id before creating the new one.
    - Cancellation is a flag plus task.cancel().  A callback that is
      already running is allowed to finish and the loop exits on the flag,
      so cancelling from inside (or during) a callback never crashes and
      never re-arms.
    - The daily timer is a self-renewing one-shot: each run computes the
      delay to the next wall-clock occurrence of the configured hour in
      the configured zone, and re-arms even when the run failed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Any, Awaitable, Callable, Optional

from group_facilitator.foundation.clock import utc_now

logger = logging.getLogger(__name__)

DAILY_TASK_ID = "__daily_scan__"


def next_run_at(now: datetime, hour: int, tz: tzinfo) -> datetime:
    """Next occurrence of *hour*:00 local time strictly after *now*."""
    local = now.astimezone(tz)
    day = local.date()
    candidate = datetime.combine(day, time(hour), tzinfo=tz)
    if candidate <= local:
        candidate = datetime.combine(day + timedelta(days=1), time(hour), tzinfo=tz)
    return candidate


def seconds_until_next_run(now: datetime, hour: int, tz: tzinfo) -> float:
    # Compare in UTC so DST transitions in *tz* give the true elapsed time
    target = next_run_at(now, hour, tz).astimezone(timezone.utc)
    return max((target - now.astimezone(timezone.utc)).total_seconds(), 0.0)


@dataclass
class ScheduledTask:
    """A live timer and its bookkeeping."""

    owner_id: str
    interval: Optional[timedelta]  # None for the wall-clock daily timer
    next_fire_at: Optional[datetime] = None
    cancelled: bool = False
    running: bool = False
    runs: int = 0
    failures: int = 0
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def live(self) -> bool:
        return not self.cancelled and self.task is not None and not self.task.done()

    def summary(self) -> dict:
        return {
            "owner_id": self.owner_id,
            "interval_seconds": self.interval.total_seconds() if self.interval else None,
            "next_fire_at": self.next_fire_at.isoformat() if self.next_fire_at else None,
            "running": self.running,
            "runs": self.runs,
            "failures": self.failures,
        }


class FacilitatorScheduler:
    """Owns every timer in the process.

    Args:
        on_group_tick: Coroutine function called with a group id on each tick.
        on_daily: Coroutine function called once per day.
        group_interval: Period of the per-group timers.
        daily_hour: Local wall-clock hour of the daily run.
        tz: Zone the daily hour is expressed in.
        clock: Source of aware "now".
        sleep: Awaitable sleep, injectable for tests.
    """

    def __init__(
        self,
        on_group_tick: Callable[[str], Awaitable[Any]],
        on_daily: Callable[[], Awaitable[Any]],
        group_interval: timedelta = timedelta(hours=12),
        daily_hour: int = 4,
        tz: tzinfo = timezone.utc,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if group_interval <= timedelta(0):
            raise ValueError("group_interval must be positive")
        if not 0 <= daily_hour <= 23:
            raise ValueError("daily_hour must be within 0..23")
        self._on_group_tick = on_group_tick
        self._on_daily = on_daily
        self._group_interval = group_interval
        self._daily_hour = daily_hour
        self._tz = tz
        self._clock = clock
        self._sleep = sleep
        self._tasks: dict[str, ScheduledTask] = {}

    # ── Per-group timers ─────────────────────────────────────────────────

    def schedule_group(self, group_id: str) -> ScheduledTask:
        """Arm (or re-arm) the recurring timer for *group_id*."""
        if group_id == DAILY_TASK_ID:
            raise ValueError(f"{DAILY_TASK_ID!r} is reserved")
        previous = self._tasks.pop(group_id, None)
        if previous is not None:
            self._cancel(previous)
            logger.info("Re-arming timer for group %s", group_id)

        entry = ScheduledTask(owner_id=group_id, interval=self._group_interval)
        entry.task = asyncio.create_task(self._group_loop(entry), name=f"nudge:{group_id}")
        self._tasks[group_id] = entry
        logger.info("Timer armed for group %s every %s", group_id, self._group_interval)
        return entry

    def cancel_group(self, group_id: str) -> bool:
        """Cancel the group's timer.  Safe while its callback is in flight."""
        entry = self._tasks.pop(group_id, None)
        if entry is None:
            return False
        self._cancel(entry)
        logger.info("Timer cancelled for group %s", group_id)
        return True

    # ── Daily timer ──────────────────────────────────────────────────────

    def schedule_daily(self) -> ScheduledTask:
        previous = self._tasks.pop(DAILY_TASK_ID, None)
        if previous is not None:
            self._cancel(previous)
        entry = ScheduledTask(owner_id=DAILY_TASK_ID, interval=None)
        entry.task = asyncio.create_task(self._daily_loop(entry), name="daily-scan")
        self._tasks[DAILY_TASK_ID] = entry
        return entry

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def shutdown(self) -> None:
        """Cancel every timer, including in-flight callbacks, and wait."""
        entries = list(self._tasks.values())
        self._tasks.clear()
        tasks = []
        for entry in entries:
            entry.cancelled = True
            if entry.task is not None and not entry.task.done():
                entry.task.cancel()
                tasks.append(entry.task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Scheduler stopped (%d timers cancelled)", len(tasks))

    def get(self, owner_id: str) -> Optional[ScheduledTask]:
        return self._tasks.get(owner_id)

    @property
    def group_ids(self) -> list[str]:
        return [k for k in self._tasks if k != DAILY_TASK_ID]

    def status(self) -> list[dict]:
        return [entry.summary() for entry in self._tasks.values()]

    # ── Loops ────────────────────────────────────────────────────────────

    async def _group_loop(self, entry: ScheduledTask) -> None:
        delay = entry.interval.total_seconds()
        while not entry.cancelled:
            entry.next_fire_at = self._clock() + entry.interval
            await self._sleep(delay)
            if entry.cancelled:
                break
            await self._run(entry, lambda: self._on_group_tick(entry.owner_id))

    async def _daily_loop(self, entry: ScheduledTask) -> None:
        while not entry.cancelled:
            now = self._clock()
            entry.next_fire_at = next_run_at(now, self._daily_hour, self._tz)
            delay = seconds_until_next_run(now, self._daily_hour, self._tz)
            logger.info("Daily scan armed for %s (in %.0fs)", entry.next_fire_at.isoformat(), delay)
            await self._sleep(delay)
            if entry.cancelled:
                break
            await self._run(entry, self._on_daily)

    async def _run(self, entry: ScheduledTask, callback: Callable[[], Awaitable[Any]]) -> None:
        entry.running = True
        try:
            await callback()
            entry.runs += 1
        except Exception:
            entry.failures += 1
            logger.error("Timer callback for %s failed; timer stays armed", entry.owner_id, exc_info=True)
        finally:
            entry.running = False

    @staticmethod
    def _cancel(entry: ScheduledTask) -> None:
        entry.cancelled = True
        task = entry.task
        if task is None or task.done():
            return
        if entry.running or task is asyncio.current_task():
            # Let the in-flight callback finish; the loop exits on the flag
            return
        task.cancel()
