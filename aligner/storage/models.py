"""Session store records."""

from typing import Optional

from pydantic import BaseModel


class Session(BaseModel):
    """A completed interval with the aligners out."""

    id: int
    start_time: int  # epoch milliseconds
    end_time: int
    duration_seconds: int
    date: str  # local YYYY-MM-DD of start_time
    brushing: bool = False
    flossing: bool = False
    mouthwash: bool = False
    cleaning_task_id: Optional[int] = None


class CleaningTask(BaseModel):
    """A recurring hygiene reminder."""

    id: int
    name: str
    scheduled_time: str  # HH:MM
    requires_brushing: bool = True
    requires_flossing: bool = False
    requires_mouthwash: bool = False
    is_active: bool = True

    def is_satisfied_by(self, session: Session) -> bool:
        """Check every required action was done in the session."""
        if self.requires_brushing and not session.brushing:
            return False
        if self.requires_flossing and not session.flossing:
            return False
        if self.requires_mouthwash and not session.mouthwash:
            return False
        return True


class DailyStat(BaseModel):
    """Seconds out for a single date."""

    date: str
    total_seconds: int


class PeriodStats(BaseModel):
    """Aggregate over a day, week or month."""

    data: list[DailyStat] = []
    total_seconds: int = 0
    average_seconds: int = 0
    days_with_data: int = 0


class DayCleaningStatus(BaseModel):
    """Cleaning task completion for one date."""

    date: str
    all_tasks_completed: bool
    completed_tasks: int
    total_tasks: int
