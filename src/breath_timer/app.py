"""Process-wide wiring: one set of stores, one tracker, one report view."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from .clock import Clock, ManualClock
from .config import Settings
from .ledger import HistoryLedger
from .notifier import Notifier
from .progress import ProgressAggregator
from .ranges import local_now
from .report import ReportView
from .session import SessionTracker
from .storage import Storage
from .summaries import SessionSummary, SessionSummaryStore

logger = logging.getLogger("breath_timer")


class BreathApp:
    def __init__(
        self,
        storage: Storage,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        notifier: Optional[Notifier] = None,
        now: Callable[[], datetime] = local_now,
    ):
        self.storage = storage
        self.settings = settings or Settings()

        self.ledger = HistoryLedger(storage, now=now)
        self.progress = ProgressAggregator(storage, now=now)
        self.summaries = SessionSummaryStore(storage, now=now)
        self.ledger.load()
        self.progress.load()
        self.summaries.load()
        logger.info(
            f"Loaded {len(self.ledger)} history entries, {len(self.summaries)} sessions"
        )

        self.tracker = SessionTracker(
            clock or ManualClock(),
            self.ledger,
            self.progress,
            self.summaries,
            notifier=notifier,
            now=now,
        )
        self.tracker.configure(self.settings.inhale, self.settings.hold, self.settings.exhale)
        self.report = ReportView(self.ledger, self.progress, self.summaries, now=now)

    def clear_all(self) -> None:
        """Erase history, progress and session summaries. Callers confirm first."""
        self.ledger.clear()
        self.progress.clear()
        self.summaries.clear()
        logger.info("Cleared all history, sessions and progress")

    def shutdown(self) -> Optional[SessionSummary]:
        """Finalize an active session and release storage."""
        summary = self.tracker.reset()
        close = getattr(self.storage, "close", None)
        if close is not None:
            close()
        return summary
