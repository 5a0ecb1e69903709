"""Read-only report and export views over the three stores.

Charts and the PDF report are drawn with matplotlib's object API
(Figure + Agg/PDF canvases), so nothing here touches a GUI backend.
"""

from __future__ import annotations

import io
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional, Sequence

from matplotlib.backends.backend_pdf import PdfPages
from matplotlib.figure import Figure
from matplotlib.ticker import MaxNLocator

from .ledger import HistoryEntry, HistoryLedger
from .progress import ProgressAggregator
from .ranges import RangeValue, day_key, local_now, parse_range, range_label
from .session import LiveSession
from .summaries import SessionSummaryStore

logger = logging.getLogger("breath_timer.report")

FALLBACK_WINDOW_DAYS = 7
BAR_COLOR = "#8b6f47"
CHART_TITLE = "Completed Full Cycles"
REPORT_TITLE = "Breath Timer Report"

INSTRUCTIONS = [
    "• Sit comfortably in a quiet place.",
    "• Close your eyes & relax your body.",
    "• Follow the timer: Inhale → Hold → Exhale.",
    "• Use Pause/Reset controls as needed.",
]

# A4 portrait, text positions in figure fractions
PAGE_SIZE = (8.27, 11.69)
PAGE_LEFT = 0.08
PAGE_INDENT = 0.11
PAGE_TOP = 0.95
PAGE_BOTTOM = 0.06
LINE_STEP = 0.021


class ExportError(Exception):
    """An export had nothing to write. Shown to the user as a notice."""


def format_timestamp(moment: datetime) -> str:
    return moment.strftime("%x %X")


def draw_bars(ax, labels: Sequence[str], values: Sequence[int]) -> None:
    ax.bar(list(labels), list(values), color=BAR_COLOR)
    ax.set_xlabel("Date")
    ax.set_ylabel("Cycles")
    ax.set_ylim(bottom=0)
    ax.yaxis.set_major_locator(MaxNLocator(integer=True))
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)
    if len(labels) > 7:
        ax.tick_params(axis="x", labelrotation=45)


def render_chart_png(labels: Sequence[str], values: Sequence[int]) -> bytes:
    """Render the progress bar chart as PNG bytes."""
    fig = Figure(figsize=(8, 4))
    ax = fig.add_subplot()
    draw_bars(ax, labels, values)
    ax.set_title(CHART_TITLE)
    fig.tight_layout()

    buf = io.BytesIO()
    fig.savefig(buf, format="png", dpi=100)
    buf.seek(0)
    return buf.read()


class _PdfPageWriter:
    """Writes lines top-down, starting a new page when one fills up."""

    def __init__(self, pdf: PdfPages):
        self.pdf = pdf
        self.fig: Optional[Figure] = None
        self.y = PAGE_TOP
        self.pages = 0
        self.new_page()

    def new_page(self) -> None:
        self.flush()
        self.fig = Figure(figsize=PAGE_SIZE)
        self.y = PAGE_TOP
        self.pages += 1

    def line(self, text: str, size: int = 10, indent: bool = True, weight: str = "normal") -> None:
        if self.y < PAGE_BOTTOM:
            self.new_page()
        x = PAGE_INDENT if indent else PAGE_LEFT
        self.fig.text(x, self.y, text, fontsize=size, fontweight=weight, va="top")
        self.y -= LINE_STEP * max(1.0, size / 10)

    def heading(self, text: str) -> None:
        self.line(text, size=12, indent=False, weight="bold")

    def gap(self) -> None:
        self.y -= LINE_STEP / 2

    def flush(self) -> None:
        if self.fig is not None:
            self.pdf.savefig(self.fig)
            self.fig = None


class ReportView:
    def __init__(
        self,
        ledger: HistoryLedger,
        progress: ProgressAggregator,
        summaries: SessionSummaryStore,
        now: Callable[[], datetime] = local_now,
    ):
        self.ledger = ledger
        self.progress = progress
        self.summaries = summaries
        self._now = now

    # ---- Projections ----

    def history(self, range_value: RangeValue = "all") -> list[HistoryEntry]:
        return self.ledger.query(parse_range(range_value), today=self._now())

    def history_lines(self, range_value: RangeValue = "all") -> list[str]:
        return [entry.format_line() for entry in self.history(range_value)]

    def chart_series(self, range_value: RangeValue = "all") -> tuple[list[str], list[int]]:
        """Labels and values for the progress chart.

        An empty range shows the last seven days zero-filled so the chart
        always has an axis to draw.
        """
        counts = self.progress.query(parse_range(range_value), today=self._now())
        if counts:
            return list(counts), list(counts.values())
        today = self._now().date()
        labels = [
            day_key(today - timedelta(days=offset))
            for offset in range(FALLBACK_WINDOW_DAYS - 1, -1, -1)
        ]
        return labels, [0] * len(labels)

    # ---- Exports ----

    def export_text(self, path: Path, range_value: RangeValue = "all") -> Path:
        lines = self.history_lines(range_value)
        if not lines:
            raise ExportError("No history to download.")
        path = Path(path)
        path.write_text("\n".join(lines), encoding="utf-8")
        logger.info(f"Exported {len(lines)} history lines to {path}")
        return path

    def export_chart(self, path: Path, range_value: RangeValue = "all") -> Path:
        labels, values = self.chart_series(range_value)
        path = Path(path)
        path.write_bytes(render_chart_png(labels, values))
        logger.info(f"Exported progress chart to {path}")
        return path

    def export_pdf(
        self,
        path: Path,
        range_value: RangeValue = "all",
        live: Optional[LiveSession] = None,
    ) -> Path:
        """Full report: summary, instructions, filtered history and chart."""
        range_value = parse_range(range_value)
        entries = self.history(range_value)
        labels, values = self.chart_series(range_value)
        latest = self.summaries.latest()
        path = Path(path)

        with PdfPages(path) as pdf:
            page = _PdfPageWriter(pdf)
            page.line(REPORT_TITLE, size=18, indent=False, weight="bold")
            page.line(f"Generated: {format_timestamp(self._now())}", indent=False)
            page.line(f"Range: {range_label(range_value)}", indent=False)
            page.gap()

            page.heading("Session Summary:")
            if live is None and latest is None:
                page.line("• No session data recorded yet.")
            if live is not None:
                page.line(f"• Current (live) session started: {format_timestamp(live.started_at)}")
                page.line(f"• Cycles completed (this session): {live.completed_cycles}")
                page.line(f"• Session duration (approx): {round(live.elapsed_seconds / 60)} min")
            if latest is not None:
                page.line(
                    f"• Last saved session: {format_timestamp(latest.started_at)}"
                    f" → {format_timestamp(latest.ended_at)}"
                )
                page.line(
                    f"  Cycles: {latest.cycles_completed}, "
                    f"Duration: {round(latest.total_duration_seconds / 60)} min"
                )
            page.gap()

            page.heading("Instructions:")
            for text in INSTRUCTIONS:
                page.line(text)
            page.gap()

            page.heading("History (filtered):")
            if not entries:
                page.line("No history available for this range.")
            for idx, entry in enumerate(entries, start=1):
                page.line(f"{idx}. {entry.format_line()}")

            page.new_page()
            page.heading("Progress Chart (filtered):")
            ax = page.fig.add_axes([PAGE_LEFT, 0.45, 0.84, 0.40])
            draw_bars(ax, labels, values)
            page.flush()

        logger.info(f"Exported PDF report ({page.pages} pages) to {path}")
        return path
