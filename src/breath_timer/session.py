"""Session tracker: session lifecycle around the cycle engine.

Owns the one CycleEngine and the current session. Every completed phase is
written to the ledger; every completed Exhale also counts a cycle in the
session and in today's progress, inside the same tick.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from .clock import Clock
from .cycle import CycleEngine, CycleEvent, PhaseName, PhaseSpec, TickResult
from .ledger import HistoryEntry, HistoryLedger
from .notifier import NullNotifier, Notifier
from .progress import ProgressAggregator
from .ranges import day_key, local_now
from .summaries import SessionSummary, SessionSummaryStore

logger = logging.getLogger("breath_timer.session")

IDLE_LABEL = "Press Start"


class TrackerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


@dataclass(frozen=True)
class LiveSession:
    """Snapshot of the in-progress session for reports."""

    started_at: datetime
    completed_cycles: int
    elapsed_seconds: int


CycleListener = Callable[[int], None]


class SessionTracker:
    def __init__(
        self,
        clock: Clock,
        ledger: HistoryLedger,
        progress: ProgressAggregator,
        summaries: SessionSummaryStore,
        notifier: Optional[Notifier] = None,
        now: Callable[[], datetime] = local_now,
    ):
        self.engine = CycleEngine()
        self.clock = clock
        self.ledger = ledger
        self.progress = progress
        self.summaries = summaries
        self.notifier = notifier or NullNotifier()
        self._now = now
        self._listeners: list[CycleListener] = []

        self._running: bool = False
        self._paused: bool = False
        self._session_active: bool = False
        self._started_at: Optional[datetime] = None
        self._completed_cycles: int = 0

    # ---- Read-only properties ----

    @property
    def state(self) -> TrackerState:
        if not self._running:
            return TrackerState.IDLE
        return TrackerState.PAUSED if self._paused else TrackerState.RUNNING

    @property
    def running(self) -> bool:
        return self._running

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def session_active(self) -> bool:
        return self._session_active

    @property
    def started_at(self) -> Optional[datetime]:
        return self._started_at

    @property
    def completed_cycles(self) -> int:
        return self._completed_cycles

    @property
    def display(self) -> tuple[str, int]:
        """(phase label, seconds remaining) for the countdown display."""
        if not self._running:
            return IDLE_LABEL, 0
        return self.engine.current_phase.name.value, self.engine.seconds_remaining

    def live_session(self) -> Optional[LiveSession]:
        if not self._session_active or self._started_at is None:
            return None
        elapsed = round((self._now() - self._started_at).total_seconds())
        return LiveSession(self._started_at, self._completed_cycles, max(0, elapsed))

    # ---- Configuration / listeners ----

    def configure(self, inhale=None, hold=None, exhale=None) -> tuple[PhaseSpec, ...]:
        """Set phase durations. Takes effect on the next start()."""
        return self.engine.configure(inhale, hold, exhale)

    def subscribe(self, listener: CycleListener) -> None:
        """Call `listener(completed_cycles)` after every completed cycle."""
        self._listeners.append(listener)

    # ---- Actions ----

    def start(self) -> bool:
        """Begin a session (or restart the engine inside one). No-op while running."""
        if self._running:
            return False

        self.clock.cancel()
        if not self._session_active:
            self._session_active = True
            self._started_at = self._now()
            self._completed_cycles = 0
            logger.info("Session started")

        result = self.engine.start()
        self._running = True
        self._paused = False
        self.clock.schedule_tick(self.tick)
        self._dispatch(result)
        return True

    def pause_toggle(self) -> bool:
        """Flip pause. Returns the new paused state."""
        if not self._running:
            return False
        self._paused = not self._paused
        self.notifier.announce("Paused" if self._paused else "Resumed")
        logger.debug(f"Session {'paused' if self._paused else 'resumed'}")
        return self._paused

    def tick(self) -> TickResult:
        if not self._running or self._paused:
            return TickResult()
        result = self.engine.tick()
        self._dispatch(result)
        return result

    def reset(self) -> Optional[SessionSummary]:
        """Finalize any active session and return to the not-started state."""
        summary = None
        if self._session_active:
            summary = self.summaries.finalize(
                self._started_at, self._completed_cycles, self.engine.phases
            )

        self.clock.cancel()
        self.engine.stop()
        self._running = False
        self._paused = False
        self._session_active = False
        self._started_at = None
        self._completed_cycles = 0
        return summary

    # ---- Internal ----

    def _dispatch(self, result: TickResult) -> None:
        for event, spec in result.events:
            if event == CycleEvent.PHASE_COMPLETED:
                self._complete_phase(spec)
            elif event == CycleEvent.PHASE_STARTED:
                self.notifier.announce(spec.name.value)

    def _complete_phase(self, spec: PhaseSpec) -> None:
        now = self._now()
        self.ledger.append(HistoryEntry(now, spec.name.value, spec.duration_seconds))
        if spec.name != PhaseName.EXHALE:
            return

        self._completed_cycles += 1
        self.progress.record_cycle(day_key(now))
        logger.debug(f"Cycle {self._completed_cycles} complete")
        for listener in list(self._listeners):
            try:
                listener(self._completed_cycles)
            except Exception:
                logger.exception("Cycle listener failed")
