"""Timer and tray plan state models."""

from datetime import date
from typing import Optional

from pydantic import BaseModel

SECONDS_PER_DAY = 24 * 60 * 60


def calculate_budget_seconds(goal_hours: int, goal_minutes: int) -> int:
    """
    Seconds per day the aligners may be out.

    The configured "goal" is the wear target, so the budget is its
    complement within a day.

    Example:
        goal 22h00 -> 86400 - 79200 = 7200 (2 hours out)
    """
    return SECONDS_PER_DAY - (goal_hours * 3600 + goal_minutes * 60)


class TrayEntry(BaseModel):
    """One aligner in the replacement plan of an arch."""

    tray_number: int  # 1-indexed
    start_date: date
    is_upper: bool


class CleaningData(BaseModel):
    """Hygiene done while the aligners were out."""

    brushing: bool = False
    flossing: bool = False
    mouthwash: bool = False
    task_id: Optional[int] = None


class TimerState(BaseModel):
    """Whole timer and plan state, persisted as one snapshot."""

    is_out: bool = False
    out_start_time: Optional[int] = None  # epoch milliseconds
    seconds_consumed_today: int = 0
    seconds_remaining: int = calculate_budget_seconds(22, 0)
    last_reset_date: Optional[str] = None  # logical YYYY-MM-DD

    daily_goal_hours: int = 22
    daily_goal_minutes: int = 0
    day_reset_hour: int = 0
    reminder_delay_minutes: int = 60
    min_session_seconds: int = 10

    upper_trays: list[TrayEntry] = []
    lower_trays: list[TrayEntry] = []
    current_upper_tray: int = 1
    current_lower_tray: int = 1

    @property
    def budget_seconds(self) -> int:
        return calculate_budget_seconds(self.daily_goal_hours, self.daily_goal_minutes)
