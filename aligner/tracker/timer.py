"""Daily removal budget and session timer."""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from ..reminders.scheduler import ReminderScheduler
from ..storage.database import SessionDatabase, StorageError

from . import plan
from .models import CleaningData, TimerState, calculate_budget_seconds
from .snapshot import StateStore

logger = logging.getLogger(__name__)

Listener = Callable[[TimerState], None]


def to_epoch_ms(dt: datetime) -> int:
    """Epoch milliseconds of a (local, naive) datetime."""
    return round(dt.timestamp() * 1000)


def logical_date(now: datetime, day_reset_hour: int) -> date:
    """
    The date "today" refers to, given the hour the day rolls over.

    Before day_reset_hour the previous calendar date is still current.

    Example:
        day_reset_hour = 4, now = Tue 02:30 -> Monday
    """
    if now.hour < day_reset_hour:
        return (now - timedelta(days=1)).date()
    return now.date()


class BudgetTracker:
    """
    Owns the aligner out/in state and the daily removal budget.

    All mutations go through the methods below; after each committed change
    the whole state is written to the state store and subscribers are
    notified with a snapshot.
    """

    def __init__(
        self,
        database: SessionDatabase,
        reminders: ReminderScheduler,
        state_store: StateStore,
        clock: Callable[[], datetime] = datetime.now,
        initial_state: Optional[TimerState] = None,
    ):
        """
        Initialize tracker.

        Args:
            database: Session store completed sessions are written to
            reminders: Reminder scheduler used while the aligners are out
            state_store: Snapshot persistence
            clock: Returns the current local time
            initial_state: State used when the store has no snapshot
        """
        self.database = database
        self.reminders = reminders
        self.state_store = state_store
        self.clock = clock
        self._listeners: list[Listener] = []

        loaded = state_store.load()
        if loaded is not None:
            logger.info("Restored timer state from snapshot")
            self._state = loaded
        else:
            self._state = initial_state or TimerState()
            if self._state.last_reset_date is None:
                self._state.last_reset_date = self.logical_date().isoformat()
            self._save()

    # ==================== STATE ACCESS ====================

    @property
    def state(self) -> TimerState:
        return self._state

    @property
    def budget_seconds(self) -> int:
        return self._state.budget_seconds

    @property
    def is_out(self) -> bool:
        return self._state.is_out

    @property
    def is_overtime(self) -> bool:
        return self._state.seconds_remaining < 0

    def logical_date(self, now: Optional[datetime] = None) -> date:
        return logical_date(now or self.clock(), self._state.day_reset_hour)

    def snapshot(self) -> TimerState:
        """Deep copy of the current state."""
        return self._state.model_copy(deep=True)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener called with a snapshot after each change.

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, **changes):
        """
        Save the changed state, then adopt it and notify listeners.

        The in-memory state only changes once the snapshot is written.

        Raises:
            StorageError: if the snapshot could not be written
        """
        updated = self._state.model_copy(update=changes, deep=True)
        self.state_store.save(updated)
        self._state = updated

        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)

    def _save(self):
        self.state_store.save(self._state)

    # ==================== TIMER ====================

    def toggle(self, cleaning: Optional[CleaningData] = None) -> TimerState:
        """
        Take the aligners out, or put them back in.

        Putting them back stores the session unless it is shorter than
        min_session_seconds, in which case it is discarded.

        Args:
            cleaning: Hygiene done during the session (used when putting back)

        Returns:
            Snapshot of the new state
        """
        if not self._state.is_out:
            self._take_out()
        else:
            self._put_back(cleaning)
        return self.snapshot()

    def _schedule_reminder(self, delay_seconds: int):
        try:
            self.reminders.schedule_reminder(delay_seconds)
        except Exception:
            logger.exception("Failed to schedule reminder")

    def _take_out(self):
        now_ms = to_epoch_ms(self.clock())
        self._schedule_reminder(self._state.reminder_delay_minutes * 60)

        self._commit(is_out=True, out_start_time=now_ms)
        logger.info("Aligners out")

    def _put_back(self, cleaning: Optional[CleaningData]):
        self.reminders.cancel_all_reminders()

        out_start_time = self._state.out_start_time
        if out_start_time is None:
            logger.warning("Aligners marked out without a start time, ignoring toggle")
            return

        now_ms = to_epoch_ms(self.clock())
        session_seconds = (now_ms - out_start_time) // 1000
        consumed = self._state.seconds_consumed_today

        try:
            if session_seconds >= self._state.min_session_seconds:
                cleaning = cleaning or CleaningData()
                self.database.add_session(
                    out_start_time,
                    now_ms,
                    brushing=cleaning.brushing,
                    flossing=cleaning.flossing,
                    mouthwash=cleaning.mouthwash,
                    cleaning_task_id=cleaning.task_id,
                )
                consumed += session_seconds
                logger.info(f"Aligners in after {session_seconds}s")
            else:
                logger.info(
                    f"Session of {session_seconds}s shorter than "
                    f"{self._state.min_session_seconds}s, discarded"
                )

            self._commit(
                is_out=False,
                out_start_time=None,
                seconds_consumed_today=consumed,
                seconds_remaining=self.budget_seconds - consumed,
            )
        except StorageError:
            # Still out: restore the reminder for what is left of its delay
            delay_seconds = self._state.reminder_delay_minutes * 60
            self._schedule_reminder(max(delay_seconds - session_seconds, 0))
            raise

    def tick(self):
        """
        Refresh the remaining seconds while the aligners are out.

        Runs the daily reset check first. The remaining value goes negative
        once the budget is exceeded.
        """
        self.check_daily_reset()

        if self._state.is_out and self._state.out_start_time is not None:
            now_ms = to_epoch_ms(self.clock())
            current_session = (now_ms - self._state.out_start_time) // 1000
            remaining = (
                self.budget_seconds - self._state.seconds_consumed_today - current_session
            )
            self._commit(seconds_remaining=remaining)

    def check_daily_reset(self):
        """
        Start a new day once the logical date changes.

        An open session is not closed; it keeps counting from its original
        start time against the new day's budget.
        """
        today = self.logical_date().isoformat()
        if self._state.last_reset_date == today:
            return

        logger.info(f"New day {today}: budget reset to {self.budget_seconds}s")
        self._commit(
            seconds_consumed_today=0,
            seconds_remaining=self.budget_seconds,
            last_reset_date=today,
        )

    def reload_today_seconds(self):
        """Resync today's consumed seconds from the session store."""
        consumed = self.database.get_total_seconds_for_date(self.logical_date())
        self._commit(
            seconds_consumed_today=consumed,
            seconds_remaining=self.budget_seconds - consumed,
        )

    # ==================== SETTINGS ====================

    def set_daily_goal(self, hours: int, minutes: int):
        """Change the wear goal; the remaining budget is recomputed immediately."""
        if not 0 <= minutes < 60:
            raise ValueError(f"minutes must be between 0 and 59, got {minutes}")
        if not 0 <= hours * 60 + minutes <= 24 * 60:
            raise ValueError(f"goal must be between 0h and 24h, got {hours}h{minutes:02d}")

        budget = calculate_budget_seconds(hours, minutes)
        self._commit(
            daily_goal_hours=hours,
            daily_goal_minutes=minutes,
            seconds_remaining=budget - self._state.seconds_consumed_today,
        )
        logger.info(f"Daily goal set to {hours}h{minutes:02d} (budget {budget}s)")

    def set_day_reset_hour(self, hour: int):
        if not 0 <= hour <= 23:
            raise ValueError(f"hour must be between 0 and 23, got {hour}")
        self._commit(day_reset_hour=hour)

    def set_reminder_delay(self, minutes: int):
        if minutes < 0:
            raise ValueError(f"reminder delay must not be negative, got {minutes}")
        self._commit(reminder_delay_minutes=minutes)

    def set_min_session_seconds(self, seconds: int):
        if seconds < 0:
            raise ValueError(f"minimum session must not be negative, got {seconds}")
        self._commit(min_session_seconds=seconds)

    # ==================== TRAY PLAN ====================

    def setup_plan(self, upper_count: int, lower_count: int, days_per_tray: int, start_date: date):
        """Generate a new tray plan and point both arches at tray 1."""
        upper, lower = plan.setup_plan(upper_count, lower_count, days_per_tray, start_date)
        self._commit(
            upper_trays=upper,
            lower_trays=lower,
            current_upper_tray=1,
            current_lower_tray=1,
        )

    def update_tray_date(self, is_upper: bool, index: int, new_date: date):
        """Move a tray's start date, shifting every later tray of that arch."""
        if is_upper:
            self._commit(upper_trays=plan.shift_tray_date(self._state.upper_trays, index, new_date))
        else:
            self._commit(lower_trays=plan.shift_tray_date(self._state.lower_trays, index, new_date))

    def set_current_tray(self, is_upper: bool, tray_number: int):
        """Point an arch at a tray. Bounds are the caller's responsibility."""
        if is_upper:
            self._commit(current_upper_tray=tray_number)
        else:
            self._commit(current_lower_tray=tray_number)
