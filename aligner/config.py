"""Application configuration."""

import os

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Storage
    db_path: str = os.getenv("DB_PATH", "data/aligner.db")
    state_path: str = os.getenv("STATE_PATH", "data/timer-state.json")

    # Server
    server_host: str = os.getenv("SERVER_HOST", "127.0.0.1")
    server_port: int = int(os.getenv("SERVER_PORT", "8000"))

    # Timer
    tick_interval_seconds: float = float(os.getenv("TICK_INTERVAL_SECONDS", "1.0"))

    # Defaults for a fresh timer state
    default_goal_hours: int = 22
    default_goal_minutes: int = 0
    default_day_reset_hour: int = 0
    default_reminder_delay_minutes: int = 60  # 1 hour
    default_min_session_seconds: int = 10

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = False


settings = Settings()
