"""Tick sources for the session tracker.

SchedulerClock drives real sessions from an APScheduler interval job;
ManualClock fires ticks on demand for deterministic tests.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol

from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger("breath_timer.clock")

TICK_JOB_ID = "breath-tick"
TICK_SECONDS = 1


class Clock(Protocol):
    def schedule_tick(self, callback: Callable[[], None]) -> None: ...

    def cancel(self) -> None: ...


class SchedulerClock:
    """One-second tick source backed by an APScheduler scheduler.

    A single job id with replace_existing guarantees at most one tick source.
    max_instances=1 and coalesce=True mean a late tick is folded into the
    next one instead of running concurrently.
    """

    def __init__(self, scheduler, interval_seconds: int = TICK_SECONDS):
        self.scheduler = scheduler
        self.interval_seconds = interval_seconds

    def schedule_tick(self, callback: Callable[[], None]) -> None:
        self.cancel()

        # Coroutine jobs run on the event loop thread under AsyncIOScheduler;
        # plain callables would be handed to a thread pool.
        async def _fire():
            callback()

        self.scheduler.add_job(
            _fire,
            IntervalTrigger(seconds=self.interval_seconds),
            id=TICK_JOB_ID,
            name="Breath timer tick",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.interval_seconds,
            replace_existing=True,
        )
        logger.debug("Tick job scheduled")

    def cancel(self) -> None:
        if self.scheduler.get_job(TICK_JOB_ID) is not None:
            self.scheduler.remove_job(TICK_JOB_ID)
            logger.debug("Tick job cancelled")


class ManualClock:
    """Test clock: ticks fire only when advance() is called."""

    def __init__(self):
        self._callback: Optional[Callable[[], None]] = None
        self.schedule_count = 0
        self.cancel_count = 0

    @property
    def scheduled(self) -> bool:
        return self._callback is not None

    def schedule_tick(self, callback: Callable[[], None]) -> None:
        self._callback = callback
        self.schedule_count += 1

    def cancel(self) -> None:
        if self._callback is not None:
            self.cancel_count += 1
        self._callback = None

    def advance(self, ticks: int = 1) -> None:
        """Fire the scheduled callback `ticks` times, stopping early if cancelled."""
        for _ in range(ticks):
            if self._callback is None:
                return
            self._callback()
