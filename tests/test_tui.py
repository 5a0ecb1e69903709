"""Dashboard key handling and rendering, without a terminal."""

import io
import logging

import pytest
from rich.console import Console

from breath_timer.session import TrackerState
from breath_timer.tui import (
    RANGE_CHOICES,
    DashboardState,
    LogBufferHandler,
    get_dashboard,
    handle_key,
    log_buffer,
    make_progress_bar,
)

from conftest import run_ticks


@pytest.fixture
def state(tmp_path):
    return DashboardState(export_dir=tmp_path)


class TestHandleKey:
    def test_start_pause_reset(self, app, state, now):
        handle_key(app, state, "s")
        assert app.tracker.state == TrackerState.RUNNING
        handle_key(app, state, " ")
        assert app.tracker.state == TrackerState.PAUSED
        handle_key(app, state, "p")
        assert app.tracker.state == TrackerState.RUNNING
        run_ticks(app, now, 19)
        handle_key(app, state, "r")
        assert app.tracker.state == TrackerState.IDLE
        assert "1 cycles" in state.current_notice()

    def test_range_cycles_both_ways(self, app, state):
        handle_key(app, state, "]")
        assert state.range_value == RANGE_CHOICES[1]
        handle_key(app, state, "[")
        handle_key(app, state, "[")
        assert state.range_value == RANGE_CHOICES[-1]

    def test_clear_needs_y(self, app, state, now):
        app.tracker.start()
        run_ticks(app, now, 19)
        handle_key(app, state, "c")
        handle_key(app, state, "n")
        assert len(app.ledger) == 3

        handle_key(app, state, "c")
        handle_key(app, state, "y")
        assert len(app.ledger) == 0
        assert app.progress.query("all") == {}

    def test_confirm_swallows_next_key(self, app, state):
        handle_key(app, state, "c")
        handle_key(app, state, "q")
        assert not state.quit

    def test_quit(self, app, state):
        handle_key(app, state, "q")
        assert state.quit

    def test_export_with_empty_history(self, app, state, tmp_path):
        handle_key(app, state, "e")
        assert state.current_notice() == "No history to download."
        assert (tmp_path / "breath_report.pdf").exists()
        assert (tmp_path / "breath_progress.png").exists()
        assert not (tmp_path / "breath_history.txt").exists()

    def test_export_all(self, app, state, now, tmp_path):
        app.tracker.start()
        run_ticks(app, now, 4)
        handle_key(app, state, "e")
        assert (tmp_path / "breath_history.txt").read_text(encoding="utf-8").endswith("Inhale (4s)")

    def test_export_creates_missing_directory(self, app, tmp_path):
        state = DashboardState(export_dir=tmp_path / "exports" / "breath")
        handle_key(app, state, "e")
        assert (tmp_path / "exports" / "breath" / "breath_report.pdf").exists()

    def test_export_failure_becomes_notice(self, app, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        state = DashboardState(export_dir=blocker)

        handle_key(app, state, "e")
        handle_key(app, state, "]")

        assert state.current_notice().startswith("Export failed")
        assert state.range_value == RANGE_CHOICES[1]


class TestRendering:
    def _render(self, app, state) -> str:
        console = Console(file=io.StringIO(), width=120, height=40)
        console.print(get_dashboard(app, state))
        return console.file.getvalue()

    def test_idle_dashboard(self, app, state):
        assert "Press Start" in self._render(app, state)

    def test_running_dashboard(self, app, state, now):
        app.tracker.start()
        run_ticks(app, now, 2)
        output = self._render(app, state)
        assert "Inhale" in output
        assert "02" in output

    def test_progress_bar(self):
        assert make_progress_bar(0, 0).startswith("[dim]")
        assert make_progress_bar(2, 4, width=4) == "[cyan]██[/cyan][dim]──[/dim]"


def test_log_buffer_handler_captures():
    log_buffer.clear()
    logger = logging.getLogger("breath_timer.test")
    handler = LogBufferHandler()
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    try:
        logger.info("hello")
    finally:
        logger.removeHandler(handler)
    assert log_buffer[-1]["message"] == "hello"
    assert log_buffer[-1]["level"] == "INFO"


class TestDurationEntry:
    def _type(self, app, state, keys: str) -> None:
        for key in keys:
            handle_key(app, state, key)

    def test_pattern_applies_to_next_start(self, app, state):
        self._type(app, state, "d5-2-6\r")
        assert state.duration_input is None
        assert state.current_notice() == "Pattern set to 5-2-6"

        handle_key(app, state, "s")
        assert [p.duration_seconds for p in app.tracker.engine.phases] == [5, 2, 6]
        assert app.tracker.display == ("Inhale", 5)

    def test_zero_uses_default_and_backspace_edits(self, app, state):
        self._type(app, state, "d4-0-99\x7f\x7f8\n")
        assert [p.duration_seconds for p in app.tracker.engine.phases] == [4, 7, 8]

    def test_letters_ignored_while_typing(self, app, state):
        self._type(app, state, "dq")
        assert not state.quit
        assert state.duration_input == ""

    def test_escape_cancels(self, app, state):
        self._type(app, state, "d1-1-1\x1b")
        assert state.duration_input is None
        assert [p.duration_seconds for p in app.tracker.engine.phases] == [4, 7, 8]

    def test_incomplete_pattern_rejected(self, app, state):
        self._type(app, state, "d4-7\r")
        assert state.current_notice() == "Durations must look like 4-7-8"
        assert [p.duration_seconds for p in app.tracker.engine.phases] == [4, 7, 8]

    def test_only_while_idle(self, app, state):
        handle_key(app, state, "s")
        handle_key(app, state, "d")
        assert state.duration_input is None
        assert "Reset" in state.current_notice()

    def test_footer_shows_typed_pattern(self, app, state):
        self._type(app, state, "d4-4")
        console = Console(file=io.StringIO(), width=120, height=40)
        console.print(get_dashboard(app, state))
        assert "4-4_" in console.file.getvalue()
