"""Settings from environment variables (and an optional .env file)."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .cycle import DEFAULT_DURATIONS, PhaseName, coerce_duration
from .ranges import RangeValue, parse_range

DEFAULT_DB_PATH = Path.home() / ".breath_timer" / "breath.db"


@dataclass(frozen=True)
class Settings:
    db_path: Path = DEFAULT_DB_PATH
    inhale: int = DEFAULT_DURATIONS[PhaseName.INHALE]
    hold: int = DEFAULT_DURATIONS[PhaseName.HOLD]
    exhale: int = DEFAULT_DURATIONS[PhaseName.EXHALE]
    voice: bool = True
    report_range: RangeValue = "all"

    def with_durations(self, inhale=None, hold=None, exhale=None) -> "Settings":
        """Override durations; None keeps the current value."""
        return replace(
            self,
            inhale=coerce_duration(inhale, self.inhale) if inhale is not None else self.inhale,
            hold=coerce_duration(hold, self.hold) if hold is not None else self.hold,
            exhale=coerce_duration(exhale, self.exhale) if exhale is not None else self.exhale,
        )


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_settings(env_file: Optional[Path] = None) -> Settings:
    """Build Settings from BREATH_TIMER_* variables, loading .env first."""
    load_dotenv(env_file or Path.cwd() / ".env")

    try:
        report_range = parse_range(os.environ.get("BREATH_TIMER_RANGE", "all"))
    except ValueError:
        report_range = "all"

    return Settings(
        db_path=Path(os.environ.get("BREATH_TIMER_DB", str(DEFAULT_DB_PATH))).expanduser(),
        inhale=coerce_duration(os.environ.get("BREATH_TIMER_INHALE"), DEFAULT_DURATIONS[PhaseName.INHALE]),
        hold=coerce_duration(os.environ.get("BREATH_TIMER_HOLD"), DEFAULT_DURATIONS[PhaseName.HOLD]),
        exhale=coerce_duration(os.environ.get("BREATH_TIMER_EXHALE"), DEFAULT_DURATIONS[PhaseName.EXHALE]),
        voice=_env_flag("BREATH_TIMER_VOICE", True),
        report_range=report_range,
    )
