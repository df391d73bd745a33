"""Checks applied to user-entered sessions and cleaning tasks."""

import re
from datetime import datetime
from typing import Optional

from .storage.models import Session

TIME_OF_DAY = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class ValidationError(Exception):
    """User input rejected, with the reason in the message."""


def validate_session_times(
    start_time: int,
    end_time: int,
    now: datetime,
    existing: list[Session],
    timer_running_today: bool = False,
    exclude_id: Optional[int] = None,
):
    """
    Validate a manually entered or edited session.

    Args:
        start_time: Start in epoch milliseconds
        end_time: End in epoch milliseconds
        now: Current local time
        existing: Sessions already stored for that day
        timer_running_today: Whether the aligners are out and the session is for today
        exclude_id: Session being edited, ignored in the overlap check

    Raises:
        ValidationError: describing the first rule that fails
    """
    if end_time <= start_time:
        raise ValidationError("End time must be after start time")

    if end_time > round(now.timestamp() * 1000):
        raise ValidationError("Sessions cannot be in the future")

    if timer_running_today:
        raise ValidationError(
            "Cannot add sessions while the timer is running. Put your aligners back in first."
        )

    for session in existing:
        if session.id == exclude_id:
            continue
        if start_time < session.end_time and end_time > session.start_time:
            raise ValidationError("Session overlaps an existing session")


def validate_cleaning_task(
    name: str,
    scheduled_time: str,
    requires_brushing: bool,
    requires_flossing: bool,
    requires_mouthwash: bool,
):
    """
    Validate a cleaning task before it is stored.

    Raises:
        ValidationError: describing the first rule that fails
    """
    if not name.strip():
        raise ValidationError("Enter a name for the task")

    if not TIME_OF_DAY.match(scheduled_time):
        raise ValidationError(f"Scheduled time must be HH:MM, got {scheduled_time!r}")

    if not (requires_brushing or requires_flossing or requires_mouthwash):
        raise ValidationError("Select at least one cleaning action")
