"""Background driver for the tracker's periodic tick."""

import asyncio
import logging
from typing import Optional

from .timer import BudgetTracker

logger = logging.getLogger(__name__)


class TrackerTicker:
    """Calls BudgetTracker.tick() on a fixed interval."""

    def __init__(self, tracker: BudgetTracker, interval_seconds: float = 1.0):
        """Initialize with the tracker to drive."""
        self.tracker = tracker
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start ticking."""
        if self._running:
            logger.warning("Tracker ticker already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"✓ Tracker ticker started (interval: {self.interval_seconds}s)")

    async def stop(self):
        """Stop ticking."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("✓ Tracker ticker stopped")

    async def _run(self):
        """Main tick loop."""
        while self._running:
            try:
                self.tracker.tick()
            except Exception as e:
                logger.error(f"Tick failed: {e}", exc_info=True)

            await asyncio.sleep(self.interval_seconds)
