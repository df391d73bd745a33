"""Tests for the state snapshot store and the local reminder scheduler."""

import threading

import pytest

from aligner.reminders.scheduler import REMINDER_TITLE, LocalReminderScheduler
from aligner.storage.database import StorageError
from aligner.tracker.models import TimerState
from aligner.tracker.snapshot import JsonFileStateStore


class TestJsonFileStateStore:
    def test_load_without_file(self, tmp_path):
        assert JsonFileStateStore(str(tmp_path / "state.json")).load() is None

    def test_save_and_load(self, tmp_path):
        store = JsonFileStateStore(str(tmp_path / "nested" / "state.json"))
        state = TimerState(is_out=True, out_start_time=1_700_000_000_000, day_reset_hour=3)

        store.save(state)

        assert store.load() == state

    def test_corrupt_file_is_ignored(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json", encoding="utf-8")

        assert JsonFileStateStore(str(path)).load() is None

    def test_write_failure_raises_storage_error(self, tmp_path):
        store = JsonFileStateStore(str(tmp_path / "state.json"))
        store.path = tmp_path / "missing" / "state.json"

        with pytest.raises(StorageError):
            store.save(TimerState())


class TestLocalReminderScheduler:
    def test_reminder_fires(self):
        fired = threading.Event()
        received = []

        def on_fire(title, body):
            received.append(title)
            fired.set()

        scheduler = LocalReminderScheduler(on_fire=on_fire)
        scheduler.schedule_reminder(0)

        assert fired.wait(timeout=5)
        assert received == [REMINDER_TITLE]

    def test_cancel_prevents_firing(self):
        received = []
        scheduler = LocalReminderScheduler(on_fire=lambda title, body: received.append(title))

        scheduler.schedule_reminder(60)
        assert scheduler.pending is True
        scheduler.cancel_all_reminders()

        assert scheduler.pending is False
        assert received == []

    def test_scheduling_replaces_previous_reminder(self):
        scheduler = LocalReminderScheduler(on_fire=lambda title, body: None)

        first = scheduler.schedule_reminder(60)
        second = scheduler.schedule_reminder(60)
        scheduler.cancel_all_reminders()

        assert first.finished.is_set()
        assert second.finished.is_set()

    def test_stale_fire_keeps_newer_reminder(self):
        received = []
        scheduler = LocalReminderScheduler(on_fire=lambda title, body: received.append(title))
        scheduler.schedule_reminder(60)

        # A fire from any thread other than the current timer must not drop it
        scheduler._fire()

        assert received == [REMINDER_TITLE]
        assert scheduler.pending is True
        scheduler.cancel_all_reminders()
        assert scheduler.pending is False
