"""Shared fixtures for aligner tracker tests."""

from datetime import datetime, timedelta

import pytest

from aligner.storage.database import SessionDatabase
from aligner.tracker.snapshot import JsonFileStateStore
from aligner.tracker.timer import BudgetTracker


class FakeClock:
    """Settable local clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeReminders:
    """Records reminder calls instead of starting timers."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.scheduled: list[int] = []
        self.cancel_count = 0

    def schedule_reminder(self, delay_seconds: int) -> int:
        if self.fail:
            raise RuntimeError("notifications unavailable")
        self.scheduled.append(delay_seconds)
        return len(self.scheduled)

    def cancel_all_reminders(self) -> None:
        self.cancel_count += 1


@pytest.fixture
def clock() -> FakeClock:
    """Clock at midday, away from any DST change."""
    return FakeClock(datetime(2026, 6, 10, 12, 0, 0))


@pytest.fixture
def reminders() -> FakeReminders:
    return FakeReminders()


@pytest.fixture
def failing_reminders() -> FakeReminders:
    return FakeReminders(fail=True)


@pytest.fixture
def database(tmp_path) -> SessionDatabase:
    return SessionDatabase(str(tmp_path / "aligner.db"))


@pytest.fixture
def state_store(tmp_path) -> JsonFileStateStore:
    return JsonFileStateStore(str(tmp_path / "timer-state.json"))


@pytest.fixture
def tracker(database, reminders, state_store, clock) -> BudgetTracker:
    return BudgetTracker(
        database=database,
        reminders=reminders,
        state_store=state_store,
        clock=clock,
    )
