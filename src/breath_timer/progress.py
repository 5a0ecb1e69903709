"""Progress aggregator: completed full cycles per calendar day."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable, Optional

from .ranges import RangeValue, day_key, in_range, local_now, parse_day_key
from .storage import PROGRESS_KEY, JsonBlob, Storage

logger = logging.getLogger("breath_timer.progress")


class ProgressAggregator:
    def __init__(self, storage: Storage, now: Callable[[], datetime] = local_now):
        self._blob = JsonBlob(storage, PROGRESS_KEY)
        self._now = now
        self._counts: dict[str, int] = {}

    def load(self) -> None:
        payload = self._blob.read()
        if payload is None:
            self._counts = {}
            return
        if not isinstance(payload, dict):
            logger.warning("Progress blob is not an object, starting empty")
            self._counts = {}
            return

        counts: dict[str, int] = {}
        rewritten = False
        try:
            for key, value in payload.items():
                day = parse_day_key(key)
                if day is None:
                    raise ValueError(f"unrecognized day key {key!r}")
                normalized = day_key(day)
                if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                    raise ValueError(f"invalid count {value!r} for {key!r}")
                rewritten = rewritten or normalized != key
                counts[normalized] = counts.get(normalized, 0) + value
        except (TypeError, ValueError) as e:
            logger.warning(f"Progress blob is malformed ({e}), starting empty")
            self._counts = {}
            return

        self._counts = counts
        if rewritten:
            logger.info("Normalized legacy progress day keys")
            self._persist()

    def record_cycle(self, key: Optional[str] = None) -> int:
        """Add one completed cycle to `key` (default: today). Returns the new count."""
        key = key or day_key(self._now())
        self._counts[key] = self._counts.get(key, 0) + 1
        self._persist()
        return self._counts[key]

    def count(self, key: str) -> int:
        return self._counts.get(key, 0)

    def query(self, range_value: RangeValue = "all", today: Optional[datetime] = None) -> dict[str, int]:
        """Day keys within range mapped to counts, oldest day first."""
        today_date = (today or self._now()).date()
        days: list[tuple[date, str]] = []
        for key in self._counts:
            day = parse_day_key(key)
            if day is not None and in_range(day, range_value, today_date):
                days.append((day, key))
        days.sort()
        return {key: self._counts[key] for _, key in days}

    def clear(self) -> None:
        self._counts = {}
        self._persist()

    def _persist(self) -> None:
        self._blob.write(dict(self._counts))
