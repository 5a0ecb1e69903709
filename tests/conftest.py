from datetime import datetime, timedelta

import pytest

from breath_timer.app import BreathApp
from breath_timer.clock import ManualClock
from breath_timer.config import Settings
from breath_timer.storage import MemoryStorage, StorageError

BASE_TIME = datetime(2026, 2, 11, 9, 0, 0).astimezone()


class FakeNow:
    """Injectable `now` callable that only moves when told to."""

    def __init__(self, start: datetime = BASE_TIME):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: int = 0, days: int = 0) -> None:
        self.current += timedelta(seconds=seconds, days=days)


class RecordingNotifier:
    def __init__(self):
        self.messages: list[str] = []

    def announce(self, text: str) -> None:
        self.messages.append(text)


class FlakyStorage(MemoryStorage):
    """MemoryStorage whose writes fail while `failing` is set."""

    def __init__(self, initial=None):
        super().__init__(initial)
        self.failing = False

    def set(self, key: str, value: str) -> None:
        if self.failing:
            raise StorageError("disk full")
        super().set(key, value)


def run_ticks(app: BreathApp, now: FakeNow, ticks: int) -> None:
    """Fire `ticks` one-second ticks through the app's manual clock."""
    for _ in range(ticks):
        now.advance(seconds=1)
        app.tracker.clock.advance(1)


@pytest.fixture
def now():
    return FakeNow()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def app(storage, clock, now, notifier):
    return BreathApp(storage, Settings(), clock=clock, notifier=notifier, now=now)
