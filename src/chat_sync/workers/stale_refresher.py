"""Stale refresher: periodically refetches stale resources at low priority."""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chat_sync.services.sync_orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)


class StaleRefresher:
    def __init__(self, orchestrator: SyncOrchestrator, *, interval: float | None = None) -> None:
        self._orchestrator = orchestrator
        self._interval = (
            interval if interval is not None
            else orchestrator.ctx.settings.REFRESH_INTERVAL_SECONDS
        )
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="stale-refresher")
        logger.info("Stale refresher started (interval=%.1fs)", self._interval)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Stale refresher stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                refreshed = await self._orchestrator.refresh_stale()
                if refreshed:
                    logger.debug("Refreshed %d stale resources", len(refreshed))
            except Exception:
                logger.exception("Stale refresher loop error")
