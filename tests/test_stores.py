"""Tests for the history ledger, progress aggregator, summary store and storage."""

import json
from datetime import timedelta

import pytest

from breath_timer.app import BreathApp
from breath_timer.config import Settings
from breath_timer.cycle import build_phases
from breath_timer.ledger import HistoryEntry, HistoryLedger, upgrade_legacy_entry
from breath_timer.progress import ProgressAggregator
from breath_timer.ranges import day_key
from breath_timer.storage import (
    HISTORY_KEY,
    PROGRESS_KEY,
    SESSIONS_KEY,
    JsonBlob,
    MemoryStorage,
    SqliteStorage,
)
from breath_timer.summaries import SessionSummary, SessionSummaryStore

from conftest import BASE_TIME, FlakyStorage, run_ticks


def entry(days_ago: int = 0, phase: str = "Inhale", seconds: int = 4) -> HistoryEntry:
    return HistoryEntry(BASE_TIME - timedelta(days=days_ago), phase, seconds)


# ---- History ledger ----

class TestHistoryLedger:
    def test_append_persists_immediately(self, storage, now):
        ledger = HistoryLedger(storage, now=now)
        ledger.append(entry())
        stored = json.loads(storage.get(HISTORY_KEY))
        assert stored == [{
            "timestamp": BASE_TIME.isoformat(),
            "phaseName": "Inhale",
            "durationSeconds": 4,
        }]

    def test_query_preserves_insertion_order(self, storage, now):
        ledger = HistoryLedger(storage, now=now)
        phases = ["Inhale", "Hold", "Exhale"]
        for phase in phases:
            ledger.append(entry(phase=phase))
        assert [e.phase_name for e in ledger.query("all")] == phases

    def test_range_boundary(self, storage, now):
        ledger = HistoryLedger(storage, now=now)
        oldest = entry(days_ago=6)
        today = entry(days_ago=0)
        ledger.append(oldest)
        ledger.append(today)

        assert ledger.query("7") == [oldest, today]
        assert ledger.query(7) == [oldest, today]
        assert ledger.query("6") == [today]
        assert ledger.query(1) == [today]

    def test_range_uses_calendar_days(self, storage, now):
        ledger = HistoryLedger(storage, now=now)
        # One minute past midnight yesterday is still "yesterday"
        start_of_yesterday = BASE_TIME.replace(hour=0, minute=1) - timedelta(days=1)
        ledger.append(HistoryEntry(start_of_yesterday, "Hold", 7))
        assert len(ledger.query(2)) == 1
        assert ledger.query(1) == []

    def test_clear(self, storage, now):
        ledger = HistoryLedger(storage, now=now)
        ledger.append(entry())
        ledger.clear()
        assert ledger.query("all") == []
        assert json.loads(storage.get(HISTORY_KEY)) == []

    def test_legacy_string_entries_upgraded_once(self, now):
        storage = MemoryStorage({
            HISTORY_KEY: json.dumps([
                "Inhale (4s)",
                {"timestamp": BASE_TIME.isoformat(), "phaseName": "Hold", "durationSeconds": 7},
            ])
        })
        ledger = HistoryLedger(storage, now=now)
        ledger.load()

        upgraded, structured = ledger.query("all")
        assert upgraded == HistoryEntry(now(), "Inhale", 0)
        assert structured.phase_name == "Hold"
        stored = json.loads(storage.get(HISTORY_KEY))
        assert all(isinstance(item, dict) for item in stored)
        assert storage.writes == 1

    def test_unparseable_legacy_string_keeps_text(self, now):
        assert upgrade_legacy_entry("something odd", now()).phase_name == "something odd"
        assert upgrade_legacy_entry("1/2/2025, 10:00 - Exhale (8s)", now()).phase_name == "Exhale"

    def test_older_structured_keys_accepted(self, now):
        storage = MemoryStorage({
            HISTORY_KEY: json.dumps([
                {"ts": "2026-02-10T08:00:00.000Z", "phase": "Exhale", "duration": 8, "text": "Exhale (8s)"},
            ])
        })
        ledger = HistoryLedger(storage, now=now)
        ledger.load()
        (loaded,) = ledger.query("all")
        assert loaded.phase_name == "Exhale"
        assert loaded.duration_seconds == 8
        assert loaded.timestamp.utcoffset() == timedelta(0)

    @pytest.mark.parametrize("blob", ["not json", json.dumps({"a": 1}), json.dumps([{"nope": 1}])])
    def test_malformed_blob_resets_to_empty(self, now, blob):
        ledger = HistoryLedger(MemoryStorage({HISTORY_KEY: blob}), now=now)
        ledger.load()
        assert ledger.query("all") == []

    def test_format_line(self):
        line = entry(phase="Exhale", seconds=8).format_line()
        assert line.endswith(" - Exhale (8s)")
        assert line.startswith(BASE_TIME.strftime("%x %X"))


# ---- Progress aggregator ----

class TestProgressAggregator:
    def test_record_cycle_increments_and_persists(self, storage, now):
        progress = ProgressAggregator(storage, now=now)
        assert progress.record_cycle() == 1
        assert progress.record_cycle(day_key(now())) == 2
        assert json.loads(storage.get(PROGRESS_KEY)) == {day_key(now()): 2}

    def test_query_sorted_by_date(self, storage, now):
        progress = ProgressAggregator(storage, now=now)
        for days_ago in (0, 3, 1):
            progress.record_cycle(day_key(BASE_TIME - timedelta(days=days_ago)))
        keys = list(progress.query("all"))
        assert keys == sorted(keys)
        assert len(keys) == 3

    def test_query_range(self, storage, now):
        progress = ProgressAggregator(storage, now=now)
        progress.record_cycle(day_key(BASE_TIME - timedelta(days=6)))
        progress.record_cycle(day_key(BASE_TIME))
        assert len(progress.query(7)) == 2
        assert list(progress.query(6)) == [day_key(BASE_TIME)]

    def test_legacy_locale_keys_normalized(self, now):
        storage = MemoryStorage({PROGRESS_KEY: json.dumps({"2/11/2026": 3, "2026-02-11": 1, "12/31/2025": 2})})
        progress = ProgressAggregator(storage, now=now)
        progress.load()
        assert progress.query("all") == {"2025-12-31": 2, "2026-02-11": 4}
        assert json.loads(storage.get(PROGRESS_KEY)) == {"2025-12-31": 2, "2026-02-11": 4}

    @pytest.mark.parametrize("blob", [
        "{",
        json.dumps([1, 2]),
        json.dumps({"tuesday": 1}),
        json.dumps({"2026-02-11": "x"}),
        json.dumps({"2026-02-11": -2}),
        json.dumps({"2026-02-11": 1.9}),
        json.dumps({"2026-02-11": True}),
    ])
    def test_malformed_blob_resets_to_empty(self, now, blob):
        progress = ProgressAggregator(MemoryStorage({PROGRESS_KEY: blob}), now=now)
        progress.load()
        assert progress.query("all") == {}

    def test_clear(self, storage, now):
        progress = ProgressAggregator(storage, now=now)
        progress.record_cycle()
        progress.clear()
        assert progress.query("all") == {}


# ---- Session summary store ----

class TestSessionSummaryStore:
    def test_finalize_computes_duration_and_snapshot(self, storage, now):
        store = SessionSummaryStore(storage, now=now)
        started = now()
        now.advance(seconds=125)
        summary = store.finalize(started, 6, build_phases(5, 5, 5))

        assert summary.total_duration_seconds == 125
        assert summary.ended_at == now()
        assert summary.cycles_completed == 6
        assert (summary.inhale_seconds, summary.hold_seconds, summary.exhale_seconds) == (5, 5, 5)
        assert store.latest() == summary
        assert json.loads(storage.get(SESSIONS_KEY)) == [summary.to_dict()]

    def test_finalize_without_session_is_noop(self, storage, now):
        store = SessionSummaryStore(storage, now=now)
        assert store.finalize(None, 0, build_phases()) is None
        assert store.latest() is None
        assert storage.get(SESSIONS_KEY) is None

    def test_summary_is_immutable(self, storage, now):
        summary = SessionSummaryStore(storage, now=now).finalize(now(), 1, build_phases())
        with pytest.raises(AttributeError):
            summary.cycles_completed = 99

    def test_older_keys_accepted(self, now):
        storage = MemoryStorage({SESSIONS_KEY: json.dumps([{
            "startISO": "2026-02-10T08:00:00.000Z",
            "endISO": "2026-02-10T08:10:00.000Z",
            "cycles": 12,
            "durationSec": 600,
            "inhale": 4, "hold": 7, "exhale": 8,
        }])})
        store = SessionSummaryStore(storage, now=now)
        store.load()
        latest = store.latest()
        assert latest.cycles_completed == 12
        assert latest.total_duration_seconds == 600

    def test_malformed_blob_resets_to_empty(self, now):
        store = SessionSummaryStore(MemoryStorage({SESSIONS_KEY: "[{]"}), now=now)
        store.load()
        assert store.query("all") == []

    def test_clear(self, storage, now):
        store = SessionSummaryStore(storage, now=now)
        store.finalize(now(), 1, build_phases())
        store.clear()
        assert store.query("all") == []


# ---- Round trip / clear through the app ----

class TestAppPersistence:
    def test_reload_gives_identical_queries(self, tmp_path, now, clock):
        db = tmp_path / "breath.db"
        app = BreathApp(SqliteStorage(db), Settings(), clock=clock, now=now)
        app.tracker.configure(1, 2, 1)
        app.tracker.start()
        run_ticks(app, now, 9)
        app.tracker.reset()
        history, progress, sessions = (
            app.ledger.query("all"), app.progress.query("all"), app.summaries.query("all")
        )
        app.storage.close()

        reloaded = BreathApp(SqliteStorage(db), Settings(), clock=clock, now=now)
        assert reloaded.ledger.query("all") == history
        assert reloaded.progress.query("all") == progress
        assert reloaded.summaries.query("all") == sessions
        assert reloaded.ledger.query(7) == app.ledger.query(7)
        reloaded.storage.close()

    def test_clear_all_empties_every_store(self, app, now):
        app.tracker.configure(1, 1, 1)
        app.tracker.start()
        run_ticks(app, now, 3)
        app.tracker.reset()

        app.clear_all()

        assert app.ledger.query("all") == []
        assert app.progress.query("all") == {}
        assert app.summaries.query("all") == []

    def test_shutdown_finalizes_active_session(self, app):
        app.tracker.start()
        summary = app.shutdown()
        assert summary is not None
        assert len(app.summaries) == 1


# ---- Storage ----

class TestStorage:
    def test_sqlite_get_set(self, tmp_path):
        storage = SqliteStorage(tmp_path / "nested" / "kv.db")
        assert storage.get("k") is None
        storage.set("k", "one")
        storage.set("k", "two")
        assert storage.get("k") == "two"
        storage.close()

    def test_json_blob_swallows_write_failure(self):
        storage = FlakyStorage()
        storage.failing = True
        assert JsonBlob(storage, "k").write([1]) is False

    def test_json_blob_missing_key(self):
        assert JsonBlob(MemoryStorage(), "k").read() is None
