#!/usr/bin/env python3
"""Breath Timer CLI.

Usage:
    breath run --inhale 4 --hold 7 --exhale 8
    breath history --range 7
    breath progress --range 30
    breath sessions
    breath export pdf report.pdf --range all
    breath clear
"""

from __future__ import annotations

import logging
import sys
from dataclasses import replace
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from .app import BreathApp
from .config import Settings, load_settings
from .ranges import parse_range, range_label
from .report import ExportError, format_timestamp
from .storage import SqliteStorage, StorageError

console = Console()


class RangeType(click.ParamType):
    """'all' or a positive number of days."""

    name = "range"

    def convert(self, value, param, ctx):
        try:
            return parse_range(value)
        except ValueError as e:
            self.fail(str(e), param, ctx)


RANGE = RangeType()


def range_option(f):
    """Decorator to add the report range option to commands."""
    return click.option(
        "--range", "-r", "range_value",
        type=RANGE,
        default=None,
        help="'all' or last N days (inclusive of today)",
    )(f)


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s | %(message)s",
    )
    logging.getLogger("breath_timer").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _open_app(ctx: click.Context) -> BreathApp:
    settings: Settings = ctx.obj["settings"]
    try:
        storage = SqliteStorage(settings.db_path)
    except StorageError as e:
        raise click.ClickException(str(e))
    app = BreathApp(storage, settings)
    ctx.call_on_close(app.shutdown)
    return app


def _resolve_range(ctx: click.Context, range_value):
    return range_value if range_value is not None else ctx.obj["settings"].report_range


@click.group()
@click.option("--db", "db_path", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="SQLite database path (default: $BREATH_TIMER_DB or ~/.breath_timer/breath.db)")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx, db_path, verbose):
    """Breath Timer - guided Inhale / Hold / Exhale sessions with history and progress."""
    setup_logging(verbose)
    settings = load_settings()
    if db_path is not None:
        settings = replace(settings, db_path=db_path)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    if verbose:
        click.echo(f"Using database: {settings.db_path}")


@cli.command()
@click.option("--inhale", help="Inhale seconds (default 4)")
@click.option("--hold", help="Hold seconds (default 7)")
@click.option("--exhale", help="Exhale seconds (default 8)")
@click.option("--quiet", "-q", is_flag=True, help="Disable spoken phase cues")
@click.option("--export-dir", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Directory for exports made from the dashboard")
@click.pass_context
def run(ctx, inhale, hold, exhale, quiet, export_dir):
    """Open the breathing dashboard."""
    from .tui import run_dashboard

    if not sys.stdin.isatty():
        raise click.ClickException("The dashboard needs an interactive terminal.")
    settings = ctx.obj["settings"].with_durations(inhale, hold, exhale)
    summary = run_dashboard(settings, export_dir=export_dir, quiet=quiet)
    if summary is not None:
        click.echo(
            f"Session saved: {summary.cycles_completed} cycles "
            f"in {round(summary.total_duration_seconds / 60)} min"
        )


@cli.command()
@range_option
@click.pass_context
def history(ctx, range_value):
    """Print completed phases."""
    app = _open_app(ctx)
    lines = app.report.history_lines(_resolve_range(ctx, range_value))
    if not lines:
        click.echo("No history recorded.")
        return
    for line in lines:
        click.echo(line)


@cli.command()
@range_option
@click.pass_context
def progress(ctx, range_value):
    """Show completed full cycles per day."""
    app = _open_app(ctx)
    range_value = _resolve_range(ctx, range_value)
    labels, values = app.report.chart_series(range_value)

    table = Table(title=f"Completed Full Cycles ({range_label(range_value)})")
    table.add_column("Date")
    table.add_column("Cycles", justify="right")
    for label, value in zip(labels, values):
        table.add_row(label, str(value))
    console.print(table)


@cli.command()
@range_option
@click.pass_context
def sessions(ctx, range_value):
    """List finalized session summaries."""
    app = _open_app(ctx)
    summaries = app.summaries.query(_resolve_range(ctx, range_value))
    if not summaries:
        click.echo("No sessions recorded.")
        return

    table = Table(title="Sessions")
    table.add_column("Started")
    table.add_column("Ended")
    table.add_column("Cycles", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Pattern")
    for s in summaries:
        table.add_row(
            format_timestamp(s.started_at),
            format_timestamp(s.ended_at),
            str(s.cycles_completed),
            f"{s.total_duration_seconds // 60}m {s.total_duration_seconds % 60}s",
            f"{s.inhale_seconds}-{s.hold_seconds}-{s.exhale_seconds}",
        )
    console.print(table)


@cli.command()
@click.argument("kind", type=click.Choice(["text", "chart", "pdf"]))
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
@range_option
@click.pass_context
def export(ctx, kind, path, range_value):
    """Export history (text), the progress chart (PNG) or a full PDF report."""
    app = _open_app(ctx)
    range_value = _resolve_range(ctx, range_value)
    try:
        if kind == "text":
            written = app.report.export_text(path, range_value)
        elif kind == "chart":
            written = app.report.export_chart(path, range_value)
        else:
            written = app.report.export_pdf(path, range_value, live=app.tracker.live_session())
    except ExportError as e:
        raise click.ClickException(str(e))
    except OSError as e:
        raise click.ClickException(f"Could not write {path}: {e.strerror or e}")
    click.echo(f"Wrote {written}")


@cli.command()
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt")
@click.pass_context
def clear(ctx, yes):
    """Erase all history, sessions and progress."""
    if not yes:
        click.confirm(
            "Are you sure? This will clear all saved history, sessions, and progress.",
            abort=True,
        )
    app = _open_app(ctx)
    app.clear_all()
    click.echo("Cleared.")


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
