"""HTTP request and response models."""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field

from ..tracker.models import TrayEntry


class TimerStatus(BaseModel):
    """Response for /api/timer endpoints."""

    is_out: bool
    out_start_time: Optional[int] = None
    seconds_consumed_today: int
    seconds_remaining: int
    budget_seconds: int
    is_overtime: bool
    logical_date: str
    daily_goal_hours: int
    daily_goal_minutes: int
    day_reset_hour: int
    reminder_delay_minutes: int
    min_session_seconds: int


class SettingsUpdate(BaseModel):
    """Partial update of the timer settings."""

    daily_goal_hours: Optional[int] = Field(None, ge=0, le=24)
    daily_goal_minutes: Optional[int] = Field(None, ge=0, le=59)
    day_reset_hour: Optional[int] = Field(None, ge=0, le=23)
    reminder_delay_minutes: Optional[int] = Field(None, ge=0)
    min_session_seconds: Optional[int] = Field(None, ge=0)


class SessionCreate(BaseModel):
    """Manually backfilled session."""

    start_time: int = Field(..., description="Start in epoch milliseconds")
    end_time: int = Field(..., description="End in epoch milliseconds")
    brushing: bool = False
    flossing: bool = False
    mouthwash: bool = False
    cleaning_task_id: Optional[int] = None


class SessionUpdate(SessionCreate):
    """Edited session times and hygiene."""


class CleaningTaskIn(BaseModel):
    """Cleaning task fields sent by the client."""

    name: str
    scheduled_time: str = Field(..., description="Time of day in HH:MM 24h format")
    requires_brushing: bool = True
    requires_flossing: bool = False
    requires_mouthwash: bool = False


class PlanSetup(BaseModel):
    """Request to generate a tray plan."""

    upper_count: int = Field(..., ge=0)
    lower_count: int = Field(..., ge=0)
    days_per_tray: int = Field(..., ge=1)
    start_date: date


class TrayDateUpdate(BaseModel):
    """Move one tray and shift the following ones."""

    is_upper: bool
    index: int = Field(..., description="0-based position in the arch's plan")
    new_date: date


class CurrentTrayUpdate(BaseModel):
    """Point an arch at a tray."""

    is_upper: bool
    tray_number: int


class PlanTray(TrayEntry):
    """Tray entry with its position relative to the current tray."""

    is_current: bool
    is_past: bool


class PlanResponse(BaseModel):
    """Response for /api/plan endpoints."""

    upper_trays: list[PlanTray]
    lower_trays: list[PlanTray]
    current_upper_tray: int
    current_lower_tray: int
