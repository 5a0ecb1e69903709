"""Cycle engine: pure logic, no I/O.

Holds the Inhale → Hold → Exhale sequence and advances it one second per
tick. Events are returned from each call in a TickResult so the session
tracker can log them without the engine knowing about storage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class PhaseName(str, Enum):
    INHALE = "Inhale"
    HOLD = "Hold"
    EXHALE = "Exhale"


class CycleEvent(Enum):
    PHASE_STARTED = "phase_started"
    PHASE_COMPLETED = "phase_completed"


DEFAULT_DURATIONS: dict[PhaseName, int] = {
    PhaseName.INHALE: 4,
    PhaseName.HOLD: 7,
    PhaseName.EXHALE: 8,
}

PHASE_ORDER = (PhaseName.INHALE, PhaseName.HOLD, PhaseName.EXHALE)


@dataclass(frozen=True)
class PhaseSpec:
    name: PhaseName
    duration_seconds: int


@dataclass
class TickResult:
    # (event, phase) pairs in emission order
    events: list[tuple[CycleEvent, PhaseSpec]] = field(default_factory=list)

    def completed(self) -> list[PhaseSpec]:
        return [spec for event, spec in self.events if event == CycleEvent.PHASE_COMPLETED]

    def started(self) -> list[PhaseSpec]:
        return [spec for event, spec in self.events if event == CycleEvent.PHASE_STARTED]


def coerce_duration(value, default: int) -> int:
    """Clamp a user-supplied duration to a positive integer.

    Missing, non-numeric and zero values fall back to ``default``; negative
    values clamp to 1.
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        seconds = int(str(value).strip())
    except ValueError:
        try:
            seconds = int(float(value))
        except (TypeError, ValueError, OverflowError):
            return default
    if seconds == 0:
        return default
    return max(1, seconds)


def build_phases(inhale=None, hold=None, exhale=None) -> tuple[PhaseSpec, PhaseSpec, PhaseSpec]:
    """Build the three-phase sequence from raw duration values."""
    raw = dict(zip(PHASE_ORDER, (inhale, hold, exhale)))
    return tuple(
        PhaseSpec(name, coerce_duration(raw[name], DEFAULT_DURATIONS[name]))
        for name in PHASE_ORDER
    )


class CycleEngine:
    """Encapsulates the phase sequence and countdown.

    Pure computation with no clock or storage, so it is deterministically testable.
    """

    def __init__(self):
        self._phases: tuple[PhaseSpec, ...] = build_phases()
        self._pending: tuple[PhaseSpec, ...] = self._phases
        self._current_index: int = 0
        self._seconds_remaining: int = 0
        self._running: bool = False

    # ---- Read-only properties ----

    @property
    def phases(self) -> tuple[PhaseSpec, ...]:
        return self._phases

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def current_phase(self) -> PhaseSpec:
        return self._phases[self._current_index]

    @property
    def seconds_remaining(self) -> int:
        return self._seconds_remaining

    @property
    def running(self) -> bool:
        return self._running

    # ---- Core methods ----

    def configure(self, inhale=None, hold=None, exhale=None) -> tuple[PhaseSpec, ...]:
        """Set durations for the next start(). A running sequence is untouched."""
        self._pending = build_phases(inhale, hold, exhale)
        if not self._running:
            self._phases = self._pending
        return self._pending

    def start(self) -> TickResult:
        self._phases = self._pending
        self._current_index = 0
        self._seconds_remaining = self._phases[0].duration_seconds
        self._running = True
        return TickResult(events=[(CycleEvent.PHASE_STARTED, self._phases[0])])

    def stop(self) -> None:
        self._running = False
        self._current_index = 0
        self._seconds_remaining = 0

    def tick(self) -> TickResult:
        """Advance one second. Returns completion/start events on a phase boundary."""
        result = TickResult()
        if not self._running:
            return result

        self._seconds_remaining -= 1
        if self._seconds_remaining > 0:
            return result

        finished = self._phases[self._current_index]
        result.events.append((CycleEvent.PHASE_COMPLETED, finished))

        self._current_index = (self._current_index + 1) % len(self._phases)
        upcoming = self._phases[self._current_index]
        self._seconds_remaining = upcoming.duration_seconds
        result.events.append((CycleEvent.PHASE_STARTED, upcoming))
        return result
