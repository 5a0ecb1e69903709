"""History ledger: append-only log of completed phases."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .ranges import RangeValue, in_range, local_now
from .storage import HISTORY_KEY, JsonBlob, Storage

logger = logging.getLogger("breath_timer.ledger")

# Pre-structured history was stored as bare strings like "Inhale (4s)"
_LEGACY_ENTRY = re.compile(r"^\s*(?:.* - )?(?P<phase>[A-Za-z]+)\s*\((?P<seconds>\d+)s\)\s*$")


@dataclass(frozen=True)
class HistoryEntry:
    timestamp: datetime
    phase_name: str
    duration_seconds: int

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "phaseName": self.phase_name,
            "durationSeconds": self.duration_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HistoryEntry":
        """Restore from storage. Accepts the current keys and the older ts/phase/duration form."""
        raw_ts = data["timestamp"] if "timestamp" in data else data["ts"]
        timestamp = datetime.fromisoformat(raw_ts.replace("Z", "+00:00"))
        if timestamp.tzinfo is None:
            timestamp = timestamp.astimezone()
        return cls(
            timestamp=timestamp,
            phase_name=str(data["phaseName"] if "phaseName" in data else data["phase"]),
            duration_seconds=int(data.get("durationSeconds", data.get("duration", 0)) or 0),
        )

    def format_line(self) -> str:
        """Text-export form: '<localized timestamp> - <phase> (<n>s)'."""
        return f"{self.timestamp.strftime('%x %X')} - {self.phase_name} ({self.duration_seconds}s)"


def upgrade_legacy_entry(text: str, now: datetime) -> HistoryEntry:
    match = _LEGACY_ENTRY.match(text)
    phase = match.group("phase") if match else text
    return HistoryEntry(timestamp=now, phase_name=phase, duration_seconds=0)


class HistoryLedger:
    def __init__(self, storage: Storage, now: Callable[[], datetime] = local_now):
        self._blob = JsonBlob(storage, HISTORY_KEY)
        self._now = now
        self._entries: list[HistoryEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def load(self) -> None:
        """Replay the stored ledger, upgrading legacy string entries once."""
        payload = self._blob.read()
        if payload is None:
            self._entries = []
            return
        if not isinstance(payload, list):
            logger.warning("History blob is not a list, starting empty")
            self._entries = []
            return

        entries = []
        migrated = 0
        try:
            for item in payload:
                if isinstance(item, str):
                    entries.append(upgrade_legacy_entry(item, self._now()))
                    migrated += 1
                else:
                    entries.append(HistoryEntry.from_dict(item))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"History blob is malformed ({e}), starting empty")
            self._entries = []
            return

        self._entries = entries
        if migrated:
            logger.info(f"Upgraded {migrated} legacy history entries")
            self._persist()

    def append(self, entry: HistoryEntry) -> None:
        self._entries.append(entry)
        self._persist()

    def query(self, range_value: RangeValue = "all", today: Optional[datetime] = None) -> list[HistoryEntry]:
        today_date = (today or self._now()).date()
        return [e for e in self._entries if in_range(e.timestamp.date(), range_value, today_date)]

    def clear(self) -> None:
        self._entries = []
        self._persist()

    def _persist(self) -> None:
        self._blob.write([e.to_dict() for e in self._entries])
