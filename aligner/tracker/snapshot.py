"""Snapshot persistence for the timer state."""

import logging
import os
from pathlib import Path
from typing import Optional, Protocol

from pydantic import ValidationError

from ..storage.database import StorageError
from .models import TimerState

logger = logging.getLogger(__name__)


class StateStore(Protocol):
    """Where the tracker keeps its state between restarts."""

    def load(self) -> Optional[TimerState]: ...

    def save(self, state: TimerState) -> None: ...


class JsonFileStateStore:
    """Stores the timer state as a single JSON document."""

    def __init__(self, path: str = "data/timer-state.json"):
        """Initialize store."""
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def load(self) -> Optional[TimerState]:
        """
        Read the last saved state.

        Returns:
            TimerState, or None if nothing was saved or the file is unreadable
        """
        if not self.path.exists():
            return None

        try:
            return TimerState.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable timer state at {self.path}: {e}")
            return None

    def save(self, state: TimerState) -> None:
        """
        Write the state, replacing the previous snapshot atomically.

        Raises:
            StorageError: if the file could not be written
        """
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            tmp_path.write_text(state.model_dump_json(indent=2), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Failed to save timer state to {self.path}: {e}")
            raise StorageError("Failed to save timer state") from e
        logger.debug(f"Saved timer state to {self.path}")
