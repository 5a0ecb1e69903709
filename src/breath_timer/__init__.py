"""Guided breathing timer with persisted history, progress and session summaries."""

from .app import BreathApp
from .clock import ManualClock, SchedulerClock
from .config import Settings, load_settings
from .cycle import CycleEngine, PhaseName, PhaseSpec, coerce_duration
from .ledger import HistoryEntry, HistoryLedger
from .progress import ProgressAggregator
from .report import ExportError, ReportView
from .session import SessionTracker, TrackerState
from .storage import MemoryStorage, SqliteStorage, StorageError
from .summaries import SessionSummary, SessionSummaryStore

__all__ = [
    "BreathApp",
    "CycleEngine",
    "ExportError",
    "HistoryEntry",
    "HistoryLedger",
    "ManualClock",
    "MemoryStorage",
    "PhaseName",
    "PhaseSpec",
    "ProgressAggregator",
    "ReportView",
    "SchedulerClock",
    "SessionSummary",
    "SessionSummaryStore",
    "SessionTracker",
    "Settings",
    "SqliteStorage",
    "StorageError",
    "TrackerState",
    "coerce_duration",
    "load_settings",
]
