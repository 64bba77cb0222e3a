"""
Periodic cleanup of expired session rows.

Purely storage hygiene: ``AuthService.resolve`` already rejects expired
sessions, so stopping the reaper never admits a stale token.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from auth.store import SessionStore, StoreError

logger = logging.getLogger(__name__)


class SessionReaper:
    def __init__(
        self,
        store_factory: Callable[[], SessionStore],
        interval_seconds: float,
    ) -> None:
        self.store_factory = store_factory
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> int:
        removed = await self.store_factory().delete_expired_sessions(datetime.now(timezone.utc))
        if removed:
            logger.info("Reaped %d expired sessions", removed)
        return removed

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except StoreError as exc:
                logger.warning("Session reaping failed, will retry next cycle: %s", exc)
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self.interval_seconds <= 0 or self._task is not None:
            return
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
