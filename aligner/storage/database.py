"""SQLite session store for removal sessions and cleaning tasks."""

import calendar
import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Optional

from .models import CleaningTask, DailyStat, DayCleaningStatus, PeriodStats, Session

logger = logging.getLogger(__name__)

# Columns added to `sessions` after the first release
SESSION_MIGRATIONS = [
    "ALTER TABLE sessions ADD COLUMN brushing INTEGER DEFAULT 0",
    "ALTER TABLE sessions ADD COLUMN flossing INTEGER DEFAULT 0",
    "ALTER TABLE sessions ADD COLUMN mouthwash INTEGER DEFAULT 0",
    "ALTER TABLE sessions ADD COLUMN cleaningTaskId INTEGER DEFAULT NULL",
]


class StorageError(Exception):
    """A write to the session store failed."""


def local_date_string(timestamp_ms: int) -> str:
    """Local calendar date (YYYY-MM-DD) of an epoch-millisecond timestamp."""
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d")


def session_duration_seconds(start_ms: int, end_ms: int) -> int:
    """Whole seconds between two epoch-millisecond timestamps."""
    return (end_ms - start_ms) // 1000


class SessionDatabase:
    """SQLite database for aligner sessions and cleaning tasks."""

    def __init__(self, db_path: str = "data/aligner.db"):
        """Initialize database."""
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @contextmanager
    def _connect(self):
        """Open a connection that commits on success and always closes."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_db(self):
        """Create database tables if they don't exist."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    startTime INTEGER NOT NULL,
                    endTime INTEGER NOT NULL,
                    durationSeconds INTEGER NOT NULL,
                    date TEXT NOT NULL,
                    brushing INTEGER DEFAULT 0,
                    flossing INTEGER DEFAULT 0,
                    mouthwash INTEGER DEFAULT 0,
                    cleaningTaskId INTEGER DEFAULT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS cleaning_tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    scheduledTime TEXT NOT NULL,
                    requiresBrushing INTEGER DEFAULT 1,
                    requiresFlossing INTEGER DEFAULT 0,
                    requiresMouthwash INTEGER DEFAULT 0,
                    isActive INTEGER DEFAULT 1
                )
            """)
            self._migrate_sessions(conn)
        logger.info(f"Database initialized at {self.db_path}")

    def _migrate_sessions(self, conn: sqlite3.Connection):
        """Add hygiene columns to session tables created by older versions."""
        existing = {row["name"] for row in conn.execute("PRAGMA table_info(sessions)")}
        for statement in SESSION_MIGRATIONS:
            column = statement.split("ADD COLUMN ")[1].split()[0]
            if column not in existing:
                conn.execute(statement)
                logger.info(f"Migrated sessions table: added column {column}")

    def _row_to_session(self, row: sqlite3.Row) -> Session:
        return Session(
            id=row["id"],
            start_time=row["startTime"],
            end_time=row["endTime"],
            duration_seconds=row["durationSeconds"],
            date=row["date"],
            brushing=row["brushing"] == 1,
            flossing=row["flossing"] == 1,
            mouthwash=row["mouthwash"] == 1,
            cleaning_task_id=row["cleaningTaskId"],
        )

    def _row_to_task(self, row: sqlite3.Row) -> CleaningTask:
        return CleaningTask(
            id=row["id"],
            name=row["name"],
            scheduled_time=row["scheduledTime"],
            requires_brushing=row["requiresBrushing"] == 1,
            requires_flossing=row["requiresFlossing"] == 1,
            requires_mouthwash=row["requiresMouthwash"] == 1,
            is_active=row["isActive"] == 1,
        )

    def _write(self, description: str, query: str, params: tuple) -> int:
        """
        Run a single write statement.

        Returns:
            lastrowid of the statement

        Raises:
            StorageError: if SQLite rejects the write
        """
        try:
            with self._connect() as conn:
                cursor = conn.execute(query, params)
                return cursor.lastrowid
        except sqlite3.Error as e:
            logger.error(f"Failed to {description}: {e}")
            raise StorageError(f"Failed to {description}") from e

    # ==================== SESSIONS ====================

    def add_session(
        self,
        start_time: int,
        end_time: int,
        brushing: bool = False,
        flossing: bool = False,
        mouthwash: bool = False,
        cleaning_task_id: Optional[int] = None,
    ) -> int:
        """
        Store a completed session.

        Duration and local date are derived from the timestamps; the caller
        guarantees end_time > start_time.

        Returns:
            ID of the new session
        """
        duration = session_duration_seconds(start_time, end_time)
        date_str = local_date_string(start_time)

        session_id = self._write(
            "save session",
            """
            INSERT INTO sessions (startTime, endTime, durationSeconds, date,
                                  brushing, flossing, mouthwash, cleaningTaskId)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                start_time,
                end_time,
                duration,
                date_str,
                int(brushing),
                int(flossing),
                int(mouthwash),
                cleaning_task_id,
            ),
        )
        logger.info(
            f"Saved session {session_id}: {duration}s on {date_str} "
            f"(brushing={brushing}, flossing={flossing}, mouthwash={mouthwash})"
        )
        return session_id

    def get_session(self, session_id: int) -> Optional[Session]:
        """Get session by ID."""
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT * FROM sessions WHERE id = ?", (session_id,)
                ).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Failed to load session {session_id}: {e}")
            return None

        return self._row_to_session(row) if row else None

    def get_history(self) -> list[Session]:
        """All sessions, newest first."""
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM sessions ORDER BY startTime DESC"
                ).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Failed to load session history: {e}")
            return []

        return [self._row_to_session(row) for row in rows]

    def get_day_sessions(self, day: date) -> list[Session]:
        """Sessions of a calendar date, ordered by start time."""
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM sessions WHERE date = ? ORDER BY startTime ASC",
                    (day.isoformat(),),
                ).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Failed to load sessions for {day}: {e}")
            return []

        return [self._row_to_session(row) for row in rows]

    def get_total_seconds_for_date(self, day: date) -> int:
        """Sum of session durations on a date (0 when there are none)."""
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT SUM(durationSeconds) AS totalSeconds FROM sessions WHERE date = ?",
                    (day.isoformat(),),
                ).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Failed to load total seconds for {day}: {e}")
            return 0

        return row["totalSeconds"] or 0

    def update_session(self, session_id: int, start_time: int, end_time: int):
        """Change a session's times; duration and date are recomputed."""
        duration = session_duration_seconds(start_time, end_time)
        self._write(
            f"update session {session_id}",
            """
            UPDATE sessions
            SET startTime = ?, endTime = ?, durationSeconds = ?, date = ?
            WHERE id = ?
            """,
            (start_time, end_time, duration, local_date_string(start_time), session_id),
        )
        logger.info(f"Updated session {session_id}: {duration}s")

    def update_session_cleaning(
        self,
        session_id: int,
        brushing: bool,
        flossing: bool,
        mouthwash: bool,
        cleaning_task_id: Optional[int],
    ):
        """Change a session's hygiene flags and task reference."""
        self._write(
            f"update cleaning of session {session_id}",
            """
            UPDATE sessions
            SET brushing = ?, flossing = ?, mouthwash = ?, cleaningTaskId = ?
            WHERE id = ?
            """,
            (int(brushing), int(flossing), int(mouthwash), cleaning_task_id, session_id),
        )
        logger.info(f"Updated cleaning of session {session_id}")

    def edit_session(
        self,
        session_id: int,
        start_time: int,
        end_time: int,
        brushing: bool,
        flossing: bool,
        mouthwash: bool,
        cleaning_task_id: Optional[int],
    ):
        """Replace a session's times and hygiene in a single write."""
        duration = session_duration_seconds(start_time, end_time)
        self._write(
            f"edit session {session_id}",
            """
            UPDATE sessions
            SET startTime = ?, endTime = ?, durationSeconds = ?, date = ?,
                brushing = ?, flossing = ?, mouthwash = ?, cleaningTaskId = ?
            WHERE id = ?
            """,
            (
                start_time,
                end_time,
                duration,
                local_date_string(start_time),
                int(brushing),
                int(flossing),
                int(mouthwash),
                cleaning_task_id,
                session_id,
            ),
        )
        logger.info(f"Edited session {session_id}: {duration}s")

    def delete_session(self, session_id: int):
        """Delete a session."""
        self._write(
            f"delete session {session_id}",
            "DELETE FROM sessions WHERE id = ?",
            (session_id,),
        )
        logger.info(f"Deleted session {session_id}")

    # ==================== STATISTICS ====================

    def _period_stats(self, start: date, end: date) -> PeriodStats:
        """Per-day sums between two dates, inclusive."""
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT date, SUM(durationSeconds) AS totalSeconds
                    FROM sessions
                    WHERE date >= ? AND date <= ?
                    GROUP BY date
                    ORDER BY date ASC
                    """,
                    (start.isoformat(), end.isoformat()),
                ).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Failed to load stats for {start} - {end}: {e}")
            return PeriodStats()

        data = [
            DailyStat(date=row["date"], total_seconds=row["totalSeconds"])
            for row in rows
        ]
        total_seconds = sum(stat.total_seconds for stat in data)
        days_with_data = len(data)

        return PeriodStats(
            data=data,
            total_seconds=total_seconds,
            average_seconds=total_seconds // days_with_data if days_with_data else 0,
            days_with_data=days_with_data,
        )

    def get_day_stats(self, day: date) -> PeriodStats:
        """Stats for a single date."""
        return self._period_stats(day, day)

    def get_week_stats(self, week_start: date) -> PeriodStats:
        """Stats for the seven days starting at week_start (a Monday)."""
        return self._period_stats(week_start, week_start + timedelta(days=6))

    def get_month_stats(self, year: int, month: int) -> PeriodStats:
        """Stats for a calendar month (month is 1-12)."""
        last_day = calendar.monthrange(year, month)[1]
        return self._period_stats(date(year, month, 1), date(year, month, last_day))

    # ==================== CLEANING TASKS ====================

    def get_cleaning_tasks(self) -> list[CleaningTask]:
        """Active cleaning tasks ordered by scheduled time."""
        return self._load_tasks(
            "SELECT * FROM cleaning_tasks WHERE isActive = 1 ORDER BY scheduledTime ASC"
        )

    def get_all_cleaning_tasks(self) -> list[CleaningTask]:
        """All cleaning tasks, including deactivated ones."""
        return self._load_tasks("SELECT * FROM cleaning_tasks ORDER BY scheduledTime ASC")

    def _load_tasks(self, query: str) -> list[CleaningTask]:
        try:
            with self._connect() as conn:
                rows = conn.execute(query).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Failed to load cleaning tasks: {e}")
            return []

        return [self._row_to_task(row) for row in rows]

    def get_cleaning_task(self, task_id: int) -> Optional[CleaningTask]:
        """Get cleaning task by ID."""
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT * FROM cleaning_tasks WHERE id = ?", (task_id,)
                ).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Failed to load cleaning task {task_id}: {e}")
            return None

        return self._row_to_task(row) if row else None

    def add_cleaning_task(
        self,
        name: str,
        scheduled_time: str,
        requires_brushing: bool,
        requires_flossing: bool,
        requires_mouthwash: bool,
    ) -> int:
        """Create an active cleaning task and return its ID."""
        task_id = self._write(
            "add cleaning task",
            """
            INSERT INTO cleaning_tasks (name, scheduledTime, requiresBrushing,
                                        requiresFlossing, requiresMouthwash, isActive)
            VALUES (?, ?, ?, ?, ?, 1)
            """,
            (
                name,
                scheduled_time,
                int(requires_brushing),
                int(requires_flossing),
                int(requires_mouthwash),
            ),
        )
        logger.info(f"Added cleaning task {task_id}: {name} at {scheduled_time}")
        return task_id

    def update_cleaning_task(
        self,
        task_id: int,
        name: str,
        scheduled_time: str,
        requires_brushing: bool,
        requires_flossing: bool,
        requires_mouthwash: bool,
    ):
        """Edit a cleaning task."""
        self._write(
            f"update cleaning task {task_id}",
            """
            UPDATE cleaning_tasks
            SET name = ?, scheduledTime = ?, requiresBrushing = ?,
                requiresFlossing = ?, requiresMouthwash = ?
            WHERE id = ?
            """,
            (
                name,
                scheduled_time,
                int(requires_brushing),
                int(requires_flossing),
                int(requires_mouthwash),
                task_id,
            ),
        )
        logger.info(f"Updated cleaning task {task_id}")

    def delete_cleaning_task(self, task_id: int):
        """Deactivate a cleaning task (soft delete)."""
        self._write(
            f"deactivate cleaning task {task_id}",
            "UPDATE cleaning_tasks SET isActive = 0 WHERE id = ?",
            (task_id,),
        )
        logger.info(f"Deactivated cleaning task {task_id}")

    def permanently_delete_cleaning_task(self, task_id: int):
        """Remove a cleaning task row."""
        self._write(
            f"delete cleaning task {task_id}",
            "DELETE FROM cleaning_tasks WHERE id = ?",
            (task_id,),
        )
        logger.info(f"Deleted cleaning task {task_id}")

    def get_day_cleaning_status(self, day: date) -> DayCleaningStatus:
        """
        Check which active cleaning tasks were done on a date.

        A task counts as completed when a session of that date references it
        and has every action the task requires. Actions the task does not
        require are ignored.
        """
        date_str = day.isoformat()
        tasks = self.get_cleaning_tasks()

        if not tasks:
            return DayCleaningStatus(
                date=date_str, all_tasks_completed=True, completed_tasks=0, total_tasks=0
            )

        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM sessions WHERE date = ? AND cleaningTaskId IS NOT NULL",
                    (date_str,),
                ).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Failed to load cleaning status for {day}: {e}")
            return DayCleaningStatus(
                date=date_str, all_tasks_completed=True, completed_tasks=0, total_tasks=0
            )

        sessions = [self._row_to_session(row) for row in rows]

        completed_tasks = 0
        for task in tasks:
            task_sessions = [s for s in sessions if s.cleaning_task_id == task.id]
            if any(task.is_satisfied_by(s) for s in task_sessions):
                completed_tasks += 1

        return DayCleaningStatus(
            date=date_str,
            all_tasks_completed=completed_tasks >= len(tasks),
            completed_tasks=completed_tasks,
            total_tasks=len(tasks),
        )

    def get_cleaning_status_for_range(
        self, start: date, end: date
    ) -> dict[str, DayCleaningStatus]:
        """Cleaning status for every date between start and end, inclusive."""
        result = {}
        current = start
        while current <= end:
            status = self.get_day_cleaning_status(current)
            result[status.date] = status
            current += timedelta(days=1)
        return result

    # ==================== MAINTENANCE ====================

    def reset_database(self):
        """Delete all sessions and all cleaning tasks."""
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM sessions")
                conn.execute("DELETE FROM cleaning_tasks")
        except sqlite3.Error as e:
            logger.error(f"Failed to reset database: {e}")
            raise StorageError("Failed to reset database") from e
        logger.info("Database reset: all sessions and cleaning tasks deleted")
