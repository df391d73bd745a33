"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from .api.models import (
    CleaningTaskIn,
    CurrentTrayUpdate,
    PlanResponse,
    PlanSetup,
    PlanTray,
    SessionCreate,
    SessionUpdate,
    SettingsUpdate,
    TimerStatus,
    TrayDateUpdate,
)
from .config import Settings, settings
from .reminders.scheduler import LocalReminderScheduler, ReminderScheduler
from .storage.database import SessionDatabase, StorageError, local_date_string
from .storage.models import CleaningTask, DayCleaningStatus, PeriodStats, Session
from .tracker import plan
from .tracker.models import CleaningData, TimerState, TrayEntry, calculate_budget_seconds
from .tracker.snapshot import JsonFileStateStore
from .tracker.ticker import TrackerTicker
from .tracker.timer import BudgetTracker
from .validation import ValidationError, validate_cleaning_task, validate_session_times

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"

router = APIRouter()


def default_state(config: Settings) -> TimerState:
    """Fresh timer state from the configured defaults."""
    return TimerState(
        daily_goal_hours=config.default_goal_hours,
        daily_goal_minutes=config.default_goal_minutes,
        seconds_remaining=calculate_budget_seconds(
            config.default_goal_hours, config.default_goal_minutes
        ),
        day_reset_hour=config.default_day_reset_hour,
        reminder_delay_minutes=config.default_reminder_delay_minutes,
        min_session_seconds=config.default_min_session_seconds,
    )


def monday_of(day: date) -> date:
    """Monday of the week containing day."""
    return day - timedelta(days=day.weekday())


def today(request: Request) -> date:
    """Calendar date according to the tracker's clock."""
    return get_tracker(request).clock().date()


def get_tracker(request: Request) -> BudgetTracker:
    return request.app.state.tracker


def get_database(request: Request) -> SessionDatabase:
    return request.app.state.database


def timer_status(tracker: BudgetTracker) -> TimerStatus:
    state = tracker.state
    return TimerStatus(
        is_out=state.is_out,
        out_start_time=state.out_start_time,
        seconds_consumed_today=state.seconds_consumed_today,
        seconds_remaining=state.seconds_remaining,
        budget_seconds=tracker.budget_seconds,
        is_overtime=tracker.is_overtime,
        logical_date=tracker.logical_date().isoformat(),
        daily_goal_hours=state.daily_goal_hours,
        daily_goal_minutes=state.daily_goal_minutes,
        day_reset_hour=state.day_reset_hour,
        reminder_delay_minutes=state.reminder_delay_minutes,
        min_session_seconds=state.min_session_seconds,
    )


def plan_trays(trays: list[TrayEntry], current: int) -> list[PlanTray]:
    return [
        PlanTray(
            **tray.model_dump(),
            is_current=plan.is_current_tray(current, tray.tray_number),
            is_past=plan.is_past_tray(current, tray.tray_number),
        )
        for tray in trays
    ]


def plan_response(tracker: BudgetTracker) -> PlanResponse:
    state = tracker.state
    return PlanResponse(
        upper_trays=plan_trays(state.upper_trays, state.current_upper_tray),
        lower_trays=plan_trays(state.lower_trays, state.current_lower_tray),
        current_upper_tray=state.current_upper_tray,
        current_lower_tray=state.current_lower_tray,
    )


def require_session(database: SessionDatabase, session_id: int) -> Session:
    session = database.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return session


def require_task(database: SessionDatabase, task_id: int) -> CleaningTask:
    task = database.get_cleaning_task(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"Cleaning task {task_id} not found")
    return task


@router.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Aligner Tracker",
        "version": VERSION,
        "endpoints": {
            "timer": "/api/timer",
            "sessions": "/api/sessions",
            "stats": "/api/stats/week",
            "cleaning_tasks": "/api/cleaning-tasks",
            "plan": "/api/plan",
            "status": "/status",
        },
    }


@router.get("/status")
async def status(request: Request):
    """Server status endpoint."""
    ticker = request.app.state.ticker
    return {
        "status": "running",
        "version": VERSION,
        "timestamp": datetime.now().isoformat(),
        "ticker_running": ticker.running,
    }


# ==================== TIMER ====================


@router.get("/api/timer", response_model=TimerStatus)
async def get_timer(request: Request):
    """Current timer state."""
    tracker = get_tracker(request)
    tracker.tick()
    return timer_status(tracker)


@router.post("/api/timer/toggle", response_model=TimerStatus)
async def toggle_timer(request: Request, cleaning: Optional[CleaningData] = None):
    """
    Take the aligners out, or put them back in.

    The optional body records the hygiene done while they were out.
    """
    tracker = get_tracker(request)
    tracker.toggle(cleaning)
    return timer_status(tracker)


@router.post("/api/timer/tick", response_model=TimerStatus)
async def tick_timer(request: Request):
    """Refresh remaining time and run the daily reset check."""
    tracker = get_tracker(request)
    tracker.tick()
    return timer_status(tracker)


@router.put("/api/settings", response_model=TimerStatus)
async def update_settings(request: Request, update: SettingsUpdate):
    """Change goal, reset hour, reminder delay or minimum session."""
    tracker = get_tracker(request)
    state = tracker.state

    if update.daily_goal_hours is not None or update.daily_goal_minutes is not None:
        hours = update.daily_goal_hours
        minutes = update.daily_goal_minutes
        tracker.set_daily_goal(
            state.daily_goal_hours if hours is None else hours,
            state.daily_goal_minutes if minutes is None else minutes,
        )
    if update.day_reset_hour is not None:
        tracker.set_day_reset_hour(update.day_reset_hour)
    if update.reminder_delay_minutes is not None:
        tracker.set_reminder_delay(update.reminder_delay_minutes)
    if update.min_session_seconds is not None:
        tracker.set_min_session_seconds(update.min_session_seconds)

    return timer_status(tracker)


# ==================== SESSIONS ====================


@router.get("/api/sessions", response_model=list[Session])
async def list_sessions(request: Request, day: Optional[date] = None):
    """Sessions of a day (default today), oldest first."""
    return get_database(request).get_day_sessions(day or today(request))


@router.get("/api/sessions/history", response_model=list[Session])
async def session_history(request: Request):
    """All sessions, newest first."""
    return get_database(request).get_history()


@router.post("/api/sessions", response_model=Session, status_code=201)
async def create_session(request: Request, payload: SessionCreate):
    """Backfill a session the timer did not record."""
    tracker = get_tracker(request)
    database = get_database(request)
    now = tracker.clock()

    session_day = date.fromisoformat(local_date_string(payload.start_time))
    validate_session_times(
        payload.start_time,
        payload.end_time,
        now=now,
        existing=database.get_day_sessions(session_day),
        timer_running_today=tracker.is_out and session_day == now.date(),
    )

    session_id = database.add_session(
        payload.start_time,
        payload.end_time,
        brushing=payload.brushing,
        flossing=payload.flossing,
        mouthwash=payload.mouthwash,
        cleaning_task_id=payload.cleaning_task_id,
    )
    tracker.reload_today_seconds()

    logger.info(f"Session {session_id} added manually")
    return require_session(database, session_id)


@router.put("/api/sessions/{session_id}", response_model=Session)
async def update_session(request: Request, session_id: int, payload: SessionUpdate):
    """Edit a session's times and hygiene."""
    tracker = get_tracker(request)
    database = get_database(request)
    require_session(database, session_id)

    session_day = date.fromisoformat(local_date_string(payload.start_time))
    validate_session_times(
        payload.start_time,
        payload.end_time,
        now=tracker.clock(),
        existing=database.get_day_sessions(session_day),
        exclude_id=session_id,
    )

    database.edit_session(
        session_id,
        payload.start_time,
        payload.end_time,
        payload.brushing,
        payload.flossing,
        payload.mouthwash,
        payload.cleaning_task_id,
    )
    tracker.reload_today_seconds()

    return require_session(database, session_id)


@router.delete("/api/sessions/{session_id}")
async def delete_session(request: Request, session_id: int):
    """Delete a session."""
    database = get_database(request)
    require_session(database, session_id)

    database.delete_session(session_id)
    get_tracker(request).reload_today_seconds()

    return {"status": "success", "message": f"Session {session_id} deleted"}


# ==================== STATISTICS ====================


@router.get("/api/stats/day", response_model=PeriodStats)
async def day_stats(request: Request, day: Optional[date] = None):
    """Seconds out on a day (default today)."""
    return get_database(request).get_day_stats(day or today(request))


@router.get("/api/stats/week", response_model=PeriodStats)
async def week_stats(request: Request, week_start: Optional[date] = None):
    """Per-day seconds out for a Monday-Sunday week (default this week)."""
    return get_database(request).get_week_stats(monday_of(week_start or today(request)))


@router.get("/api/stats/month", response_model=PeriodStats)
async def month_stats(
    request: Request, year: Optional[int] = None, month: Optional[int] = None
):
    """Per-day seconds out for a calendar month (default this month)."""
    current = today(request)
    month = month or current.month
    if not 1 <= month <= 12:
        raise HTTPException(status_code=400, detail=f"Month must be 1-12, got {month}")
    return get_database(request).get_month_stats(year or current.year, month)


# ==================== CLEANING TASKS ====================


@router.get("/api/cleaning-tasks", response_model=list[CleaningTask])
async def list_cleaning_tasks(request: Request, include_inactive: bool = False):
    """Cleaning tasks ordered by scheduled time."""
    database = get_database(request)
    if include_inactive:
        return database.get_all_cleaning_tasks()
    return database.get_cleaning_tasks()


@router.post("/api/cleaning-tasks", response_model=CleaningTask, status_code=201)
async def create_cleaning_task(request: Request, payload: CleaningTaskIn):
    """Create a cleaning task."""
    validate_cleaning_task(**payload.model_dump())
    database = get_database(request)
    task_id = database.add_cleaning_task(**payload.model_dump())
    return require_task(database, task_id)


@router.put("/api/cleaning-tasks/{task_id}", response_model=CleaningTask)
async def update_cleaning_task(request: Request, task_id: int, payload: CleaningTaskIn):
    """Edit a cleaning task."""
    database = get_database(request)
    require_task(database, task_id)
    validate_cleaning_task(**payload.model_dump())

    database.update_cleaning_task(task_id, **payload.model_dump())
    return require_task(database, task_id)


@router.delete("/api/cleaning-tasks/{task_id}")
async def delete_cleaning_task(request: Request, task_id: int, permanent: bool = False):
    """Deactivate a cleaning task, or remove it with permanent=true."""
    database = get_database(request)
    require_task(database, task_id)

    if permanent:
        database.permanently_delete_cleaning_task(task_id)
        return {"status": "success", "message": f"Cleaning task {task_id} deleted"}

    database.delete_cleaning_task(task_id)
    return {"status": "success", "message": f"Cleaning task {task_id} deactivated"}


@router.get("/api/cleaning-status", response_model=DayCleaningStatus)
async def cleaning_status(request: Request, day: Optional[date] = None):
    """Cleaning task completion for a day (default today)."""
    return get_database(request).get_day_cleaning_status(day or today(request))


@router.get("/api/cleaning-status/range", response_model=dict[str, DayCleaningStatus])
async def cleaning_status_range(request: Request, start: date, end: date):
    """Cleaning task completion for every day between start and end."""
    if end < start:
        raise HTTPException(status_code=400, detail="End date must not be before start date")
    return get_database(request).get_cleaning_status_for_range(start, end)


# ==================== TRAY PLAN ====================


@router.get("/api/plan", response_model=PlanResponse)
async def get_plan(request: Request):
    """Current tray plan for both arches."""
    return plan_response(get_tracker(request))


@router.post("/api/plan", response_model=PlanResponse)
async def setup_plan(request: Request, payload: PlanSetup):
    """Generate a new tray plan."""
    if payload.upper_count == 0 and payload.lower_count == 0:
        raise HTTPException(status_code=400, detail="Enter at least one tray")

    tracker = get_tracker(request)
    tracker.setup_plan(
        payload.upper_count, payload.lower_count, payload.days_per_tray, payload.start_date
    )
    return plan_response(tracker)


@router.put("/api/plan/trays", response_model=PlanResponse)
async def update_tray_date(request: Request, payload: TrayDateUpdate):
    """Move a tray's start date and shift the following trays."""
    tracker = get_tracker(request)
    tracker.update_tray_date(payload.is_upper, payload.index, payload.new_date)
    return plan_response(tracker)


@router.put("/api/plan/current", response_model=PlanResponse)
async def set_current_tray(request: Request, payload: CurrentTrayUpdate):
    """Point an arch at a tray."""
    tracker = get_tracker(request)
    tracker.set_current_tray(payload.is_upper, payload.tray_number)
    return plan_response(tracker)


# ==================== DATA ====================


@router.post("/api/reset")
async def reset_data(request: Request):
    """Delete every session and cleaning task."""
    get_database(request).reset_database()
    get_tracker(request).reload_today_seconds()
    return {"status": "success", "message": "All data deleted"}


async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


async def storage_error_handler(request: Request, exc: StorageError):
    return JSONResponse(status_code=503, content={"detail": str(exc)})


def create_app(
    config: Optional[Settings] = None,
    database: Optional[SessionDatabase] = None,
    reminders: Optional[ReminderScheduler] = None,
    tracker: Optional[BudgetTracker] = None,
) -> FastAPI:
    """
    Build the application and its components.

    Components not passed in are created from the settings.
    """
    config = config or settings

    database = database or SessionDatabase(config.db_path)
    if tracker is None:
        tracker = BudgetTracker(
            database=database,
            reminders=reminders or LocalReminderScheduler(),
            state_store=JsonFileStateStore(config.state_path),
            initial_state=default_state(config),
        )
    ticker = TrackerTicker(tracker, config.tick_interval_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        tracker.check_daily_reset()
        await ticker.start()
        try:
            yield
        finally:
            await ticker.stop()

    app = FastAPI(
        title="Aligner Tracker",
        description="Daily wear budget, removal sessions, tray plan and cleaning tasks",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.database = database
    app.state.tracker = tracker
    app.state.ticker = ticker

    app.include_router(router)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(ValueError, value_error_handler)
    app.add_exception_handler(StorageError, storage_error_handler)

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        create_app(),
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.log_level.lower(),
    )
