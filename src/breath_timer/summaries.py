"""Session summary store: one immutable record per finalized session."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Sequence

from .cycle import PhaseName, PhaseSpec
from .ranges import RangeValue, in_range, local_now
from .storage import SESSIONS_KEY, JsonBlob, Storage

logger = logging.getLogger("breath_timer.summaries")


def _parse_ts(raw: str) -> datetime:
    ts = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    return ts if ts.tzinfo is not None else ts.astimezone()


@dataclass(frozen=True)
class SessionSummary:
    started_at: datetime
    ended_at: datetime
    cycles_completed: int
    total_duration_seconds: int
    inhale_seconds: int
    hold_seconds: int
    exhale_seconds: int

    def to_dict(self) -> dict:
        return {
            "startedAt": self.started_at.isoformat(),
            "endedAt": self.ended_at.isoformat(),
            "cyclesCompleted": self.cycles_completed,
            "totalDurationSeconds": self.total_duration_seconds,
            "inhaleSeconds": self.inhale_seconds,
            "holdSeconds": self.hold_seconds,
            "exhaleSeconds": self.exhale_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionSummary":
        """Restore from storage. Older blobs used startISO/endISO/cycles/durationSec."""
        if "startedAt" in data:
            return cls(
                started_at=_parse_ts(data["startedAt"]),
                ended_at=_parse_ts(data["endedAt"]),
                cycles_completed=int(data["cyclesCompleted"]),
                total_duration_seconds=int(data["totalDurationSeconds"]),
                inhale_seconds=int(data["inhaleSeconds"]),
                hold_seconds=int(data["holdSeconds"]),
                exhale_seconds=int(data["exhaleSeconds"]),
            )
        return cls(
            started_at=_parse_ts(data["startISO"]),
            ended_at=_parse_ts(data["endISO"]),
            cycles_completed=int(data["cycles"]),
            total_duration_seconds=int(data["durationSec"]),
            inhale_seconds=int(data["inhale"]),
            hold_seconds=int(data["hold"]),
            exhale_seconds=int(data["exhale"]),
        )


class SessionSummaryStore:
    def __init__(self, storage: Storage, now: Callable[[], datetime] = local_now):
        self._blob = JsonBlob(storage, SESSIONS_KEY)
        self._now = now
        self._summaries: list[SessionSummary] = []

    def __len__(self) -> int:
        return len(self._summaries)

    def load(self) -> None:
        payload = self._blob.read()
        if payload is None:
            self._summaries = []
            return
        try:
            if not isinstance(payload, list):
                raise TypeError("expected a list")
            self._summaries = [SessionSummary.from_dict(item) for item in payload]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Sessions blob is malformed ({e}), starting empty")
            self._summaries = []

    def finalize(
        self,
        started_at: Optional[datetime],
        cycles_completed: int,
        phases: Sequence[PhaseSpec],
    ) -> Optional[SessionSummary]:
        """Close out an active session. Returns None when there was no session."""
        if started_at is None:
            return None
        ended_at = self._now()
        durations = {spec.name: spec.duration_seconds for spec in phases}
        summary = SessionSummary(
            started_at=started_at,
            ended_at=ended_at,
            cycles_completed=cycles_completed,
            total_duration_seconds=round((ended_at - started_at).total_seconds()),
            inhale_seconds=durations[PhaseName.INHALE],
            hold_seconds=durations[PhaseName.HOLD],
            exhale_seconds=durations[PhaseName.EXHALE],
        )
        self._summaries.append(summary)
        self._persist()
        logger.info(
            f"Session finalized: {cycles_completed} cycles in {summary.total_duration_seconds}s"
        )
        return summary

    def latest(self) -> Optional[SessionSummary]:
        return self._summaries[-1] if self._summaries else None

    def query(self, range_value: RangeValue = "all", today: Optional[datetime] = None) -> list[SessionSummary]:
        today_date = (today or self._now()).date()
        return [s for s in self._summaries if in_range(s.started_at.date(), range_value, today_date)]

    def clear(self) -> None:
        self._summaries = []
        self._persist()

    def _persist(self) -> None:
        self._blob.write([s.to_dict() for s in self._summaries])
