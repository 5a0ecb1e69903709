"""
Breath Timer TUI: terminal dashboard for guided breathing sessions.

Controls:
  s         - Start session
  p/space   - Pause / resume
  r         - Reset (saves the session summary)
  [/]       - Cycle report range (All / Today / 7 / 30 / 90 days)
  d         - Edit phase durations while idle (type 4-7-8, Enter)
  e         - Export history (.txt), chart (.png) and full report (.pdf)
  c         - Clear all history (press y to confirm)
  q         - Quit (saves an active session)

Everything runs on one asyncio loop: the APScheduler tick job, the stdin
reader and the screen refresh, so handlers never interleave.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Deque, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .app import BreathApp
from .clock import SchedulerClock
from .config import Settings
from .notifier import NullNotifier, SpeechNotifier
from .ranges import RangeValue, range_label
from .report import ExportError
from .session import SessionTracker, TrackerState
from .storage import SqliteStorage
from .summaries import SessionSummary

logger = logging.getLogger("breath_timer.tui")

console = Console()

RANGE_CHOICES: list[RangeValue] = ["all", 1, 7, 30, 90]
REFRESH_SECONDS = 0.25
NOTICE_SECONDS = 5
HISTORY_ROWS = 12
CHART_WIDTH = 30

PHASE_COLORS = {
    "Inhale": "cyan",
    "Hold": "yellow",
    "Exhale": "green",
}

# ============ Log Buffer ============

log_buffer: Deque[dict] = deque(maxlen=50)


class LogBufferHandler(logging.Handler):
    """Captures log records for the dashboard's log panel."""

    def emit(self, record: logging.LogRecord):
        try:
            log_buffer.append({
                "timestamp": datetime.fromtimestamp(record.created).strftime("%H:%M:%S"),
                "level": record.levelname,
                "message": self.format(record),
            })
        except Exception:
            # Never let the log panel break logging
            pass


# ============ State ============

@dataclass
class DashboardState:
    export_dir: Path = field(default_factory=Path.cwd)
    range_index: int = 0
    confirm_clear: bool = False
    duration_input: Optional[str] = None  # typed "inhale-hold-exhale" while editing
    quit: bool = False
    notice: Optional[tuple[float, str]] = None  # (timestamp, message)

    @property
    def range_value(self) -> RangeValue:
        return RANGE_CHOICES[self.range_index]

    def set_notice(self, message: str) -> None:
        self.notice = (time.time(), message)

    def current_notice(self) -> Optional[str]:
        if self.notice and time.time() - self.notice[0] < NOTICE_SECONDS:
            return self.notice[1]
        return None


# ============ Rendering ============

def make_progress_bar(remaining: int, total: int, width: int = 24) -> str:
    """Text bar showing how much of the current phase has elapsed."""
    if total <= 0:
        return "[dim]" + "─" * width + "[/dim]"
    filled = int(width * (total - remaining) / total)
    return f"[cyan]{'█' * filled}[/cyan][dim]{'─' * (width - filled)}[/dim]"


def create_timer_panel(tracker: SessionTracker) -> Panel:
    label, seconds = tracker.display
    state = tracker.state
    color = PHASE_COLORS.get(label, "white")

    text = Text(justify="center")
    text.append(f"{label}\n", style=f"bold {color}")
    text.append(f"{seconds:02d}\n", style="bold white")
    if state != TrackerState.IDLE:
        total = tracker.engine.current_phase.duration_seconds
        text.append_text(Text.from_markup(make_progress_bar(seconds, total)))
        text.append("\n")

    durations = " / ".join(f"{p.name.value} {p.duration_seconds}s" for p in tracker.engine.phases)
    text.append(f"{durations}\n", style="dim")
    text.append(f"Cycles this session: {tracker.completed_cycles}", style="bold")
    if state == TrackerState.PAUSED:
        text.append("  PAUSED", style="bold magenta")

    return Panel(text, title="Breath", border_style=color if state != TrackerState.IDLE else "blue")


def create_history_table(app: BreathApp, range_value: RangeValue) -> Table:
    """Most recent phases first, like the history list."""
    entries = app.report.history(range_value)
    table = Table(expand=True, show_edge=False, pad_edge=False)
    table.add_column("Time", style="dim", no_wrap=True)
    table.add_column("Phase")
    table.add_column("Secs", justify="right")

    for entry in reversed(entries[-HISTORY_ROWS:]):
        color = PHASE_COLORS.get(entry.phase_name, "white")
        table.add_row(
            entry.timestamp.strftime("%m-%d %H:%M:%S"),
            f"[{color}]{entry.phase_name}[/{color}]",
            str(entry.duration_seconds),
        )
    if not entries:
        table.add_row("[dim]No history yet[/dim]", "", "")
    return table


def create_progress_panel(app: BreathApp, range_value: RangeValue) -> Panel:
    labels, values = app.report.chart_series(range_value)
    peak = max(values) if values else 0
    lines = []
    for label, value in zip(labels, values):
        width = round(CHART_WIDTH * value / peak) if peak else 0
        lines.append(f"{label} [#8b6f47]{'█' * width}[/#8b6f47] {value}")
    return Panel(
        "\n".join(lines),
        title=f"Completed Full Cycles ({range_label(range_value)})",
        border_style="yellow",
    )


def create_logs_panel() -> Panel:
    level_colors = {"WARNING": "yellow", "ERROR": "red", "DEBUG": "dim"}
    lines = []
    for entry in list(log_buffer)[-6:]:
        color = level_colors.get(entry["level"], "white")
        lines.append(f"[dim]{entry['timestamp']}[/dim] [{color}]{entry['message']}[/{color}]")
    return Panel("\n".join(lines) or "[dim]No log messages[/dim]", title="Logs", border_style="dim")


def create_footer(state: DashboardState) -> Text:
    if state.duration_input is not None:
        return Text(f"Durations (inhale-hold-exhale, Enter to apply, Esc to cancel): {state.duration_input}_", style="bold cyan")
    notice = state.current_notice()
    if notice:
        return Text(notice, style="bold yellow")
    return Text(
        "s=start  p/space=pause  r=reset  [/]=range  d=durations  e=export  c=clear  q=quit",
        style="dim",
    )


def get_dashboard(app: BreathApp, state: DashboardState) -> Layout:
    layout = Layout()
    layout.split_column(
        Layout(name="main"),
        Layout(create_logs_panel(), name="logs", size=8),
        Layout(create_footer(state), name="footer", size=1),
    )
    layout["main"].split_row(
        Layout(name="left"),
        Layout(Panel(create_history_table(app, state.range_value), title="History", border_style="cyan"), name="history"),
    )
    layout["left"].split_column(
        Layout(create_timer_panel(app.tracker), name="timer", size=9),
        Layout(create_progress_panel(app, state.range_value), name="progress"),
    )
    return layout


# ============ Key handling ============

def export_all(app: BreathApp, state: DashboardState) -> list[Path]:
    """Write the text, chart and PDF exports. Empty history skips only the text file."""
    range_value = state.range_value
    target = state.export_dir
    exports = [
        lambda: app.report.export_text(target / "breath_history.txt", range_value),
        lambda: app.report.export_chart(target / "breath_progress.png", range_value),
        lambda: app.report.export_pdf(target / "breath_report.pdf", range_value, live=app.tracker.live_session()),
    ]
    try:
        target.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning(f"Cannot create export directory {target}: {e}")
        state.set_notice(f"Export failed: {e.strerror or e}")
        return []

    written = []
    failures = []
    for export in exports:
        try:
            written.append(export())
        except ExportError as e:
            failures.append(str(e))
        except OSError as e:
            logger.warning(f"Export failed: {e}")
            failures.append(f"Export failed: {e.strerror or e}")
    if failures:
        state.set_notice("; ".join(failures))
    else:
        state.set_notice(f"Exported {len(written)} files to {target}")
    return written


def apply_duration_input(app: BreathApp, state: DashboardState) -> None:
    """Apply the typed 'inhale-hold-exhale' pattern, e.g. 4-7-8."""
    text, state.duration_input = state.duration_input, None
    parts = text.split("-")
    if len(parts) != 3:
        state.set_notice("Durations must look like 4-7-8")
        return
    phases = app.tracker.configure(*parts)
    pattern = "-".join(str(p.duration_seconds) for p in phases)
    state.set_notice(f"Pattern set to {pattern}")


def handle_duration_key(app: BreathApp, state: DashboardState, key: str) -> None:
    if key in ("\r", "\n"):
        apply_duration_input(app, state)
    elif key == "\x1b":
        state.duration_input = None
        state.set_notice("Duration edit cancelled")
    elif key in ("\x7f", "\b"):
        state.duration_input = state.duration_input[:-1]
    elif key.isdigit() or key == "-":
        state.duration_input += key


def handle_key(app: BreathApp, state: DashboardState, key: str) -> None:
    tracker = app.tracker

    if state.duration_input is not None:
        handle_duration_key(app, state, key)
        return

    if state.confirm_clear:
        state.confirm_clear = False
        if key.lower() == "y":
            app.clear_all()
            state.set_notice("History, sessions and progress cleared")
        else:
            state.set_notice("Clear cancelled")
        return

    if key == "q":
        state.quit = True
    elif key == "s":
        tracker.start()
    elif key in ("p", " "):
        tracker.pause_toggle()
    elif key == "r":
        summary = tracker.reset()
        if summary is not None:
            state.set_notice(f"Session saved: {summary.cycles_completed} cycles")
    elif key == "]":
        state.range_index = (state.range_index + 1) % len(RANGE_CHOICES)
    elif key == "[":
        state.range_index = (state.range_index - 1) % len(RANGE_CHOICES)
    elif key == "e":
        export_all(app, state)
    elif key == "c":
        state.confirm_clear = True
        state.set_notice("Clear ALL history, sessions and progress? Press y to confirm")
    elif key == "d":
        if tracker.state != TrackerState.IDLE:
            state.set_notice("Reset the session before changing durations")
        else:
            state.duration_input = ""


# ============ Main loop ============

async def _run(settings: Settings, export_dir: Path, quiet: bool) -> Optional[SessionSummary]:
    import termios
    import tty

    scheduler = AsyncIOScheduler()
    scheduler.start()
    notifier = NullNotifier() if quiet or not settings.voice else SpeechNotifier()
    app = BreathApp(
        SqliteStorage(settings.db_path),
        settings,
        clock=SchedulerClock(scheduler),
        notifier=notifier,
    )
    state = DashboardState(export_dir=export_dir)
    if settings.report_range in RANGE_CHOICES:
        state.range_index = RANGE_CHOICES.index(settings.report_range)

    loop = asyncio.get_running_loop()
    done = asyncio.Event()
    fd = sys.stdin.fileno()
    original_terminal_settings = None

    def on_stdin():
        for key in os.read(fd, 32).decode(errors="ignore"):
            handle_key(app, state, key)
        if state.quit:
            done.set()

    try:
        original_terminal_settings = termios.tcgetattr(fd)
        tty.setcbreak(fd)
        loop.add_reader(fd, on_stdin)
        with Live(get_dashboard(app, state), console=console, refresh_per_second=8, screen=True) as live:
            while not done.is_set():
                live.update(get_dashboard(app, state))
                try:
                    await asyncio.wait_for(done.wait(), timeout=REFRESH_SECONDS)
                except asyncio.TimeoutError:
                    pass
    finally:
        loop.remove_reader(fd)
        if original_terminal_settings is not None:
            termios.tcsetattr(fd, termios.TCSADRAIN, original_terminal_settings)
        scheduler.shutdown(wait=False)
        summary = app.shutdown()
    return summary


def run_dashboard(settings: Settings, export_dir: Optional[Path] = None, quiet: bool = False) -> Optional[SessionSummary]:
    """Run the dashboard until q is pressed. Returns the summary saved on exit, if any."""
    package_logger = logging.getLogger("breath_timer")
    handler = LogBufferHandler()
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter("%(message)s"))
    package_logger.addHandler(handler)
    previous_level = package_logger.level
    if package_logger.getEffectiveLevel() > logging.INFO:
        package_logger.setLevel(logging.INFO)
    # Stream output would tear the full-screen layout
    package_logger.propagate = False
    try:
        return asyncio.run(_run(settings, export_dir or Path.cwd(), quiet))
    finally:
        package_logger.removeHandler(handler)
        package_logger.setLevel(previous_level)
        package_logger.propagate = True
