# src/archivemind/infrastructure/sched/sweep_scheduler.py
"""
SweepScheduler - the single periodic timer that drives ActivityTracker.sweep().
"""

import asyncio
import logging
from typing import Optional

log = logging.getLogger(__name__)


class SweepScheduler:
    def __init__(self, tracker, interval_seconds: float = 3600, notifier=None):
        self.tracker = tracker
        self.notifier = notifier
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self, loop=None):
        if self._running: return
        self._running = True
        if loop:
            self._task = loop.create_task(self._run())
        else:
            self._task = asyncio.create_task(self._run())
        log.info(f"SweepScheduler started (every {self.interval_seconds}s).")

    def stop(self):
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None
        log.info("SweepScheduler stopped.")

    async def run_once(self):
        try:
            return await self.tracker.sweep()
        except Exception as e:
            log.error(f"Inactivity sweep crashed: {e}", exc_info=True)
            await self._alert(f"Inactivity sweep crashed: {e}")
            return None

    async def _alert(self, text: str):
        if self.notifier is None:
            return
        try:
            await self.notifier.send_admin_alert(text)
        except Exception as e:
            log.error(f"Admin alert could not be delivered: {e}")

    async def _run(self):
        while self._running:
            await self.run_once()
            try:
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                break
