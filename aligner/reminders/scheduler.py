"""Local "put your aligners back" reminder."""

import logging
import threading
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)

REMINDER_TITLE = "Time's up?"
REMINDER_BODY = "If you've finished eating, put your aligners back in!"


class ReminderScheduler(Protocol):
    """Schedules a single delayed reminder."""

    def schedule_reminder(self, delay_seconds: int) -> object: ...

    def cancel_all_reminders(self) -> None: ...


class LocalReminderScheduler:
    """
    Fires a reminder from a background timer thread.

    At most one reminder is outstanding; scheduling a new one cancels the
    previous one.
    """

    def __init__(self, on_fire: Optional[Callable[[str, str], None]] = None):
        """
        Initialize scheduler.

        Args:
            on_fire: Called with (title, body) when a reminder fires.
                Defaults to logging the reminder.
        """
        self.on_fire = on_fire or self._log_reminder
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    def schedule_reminder(self, delay_seconds: int) -> threading.Timer:
        """Schedule the reminder to fire after delay_seconds."""
        self.cancel_all_reminders()

        timer = threading.Timer(delay_seconds, self._fire)
        timer.daemon = True
        with self._lock:
            self._timer = timer
        timer.start()

        logger.info(f"Reminder scheduled in {delay_seconds} seconds")
        return timer

    def cancel_all_reminders(self) -> None:
        """Cancel any pending reminder."""
        with self._lock:
            timer, self._timer = self._timer, None

        if timer is not None:
            timer.cancel()
            logger.info("Pending reminders cancelled")

    @property
    def pending(self) -> bool:
        """Whether a reminder is waiting to fire."""
        with self._lock:
            return self._timer is not None and self._timer.is_alive()

    def _fire(self):
        # Only forget the timer if a newer reminder has not replaced it
        with self._lock:
            if self._timer is threading.current_thread():
                self._timer = None
        self.on_fire(REMINDER_TITLE, REMINDER_BODY)

    def _log_reminder(self, title: str, body: str):
        logger.warning(f"⏳ {title} {body}")
