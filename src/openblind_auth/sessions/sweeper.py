"""Periodic removal of expired session rows.

The sweeper owns one asyncio task for the lifetime of the process. Each
tick uses its own database session, so it never holds a handle that request
handlers are waiting on, and a failed tick is logged without stopping the loop.
"""

import asyncio
import contextlib
import logging
from datetime import datetime
from typing import Callable

from openblind_auth.common.database import DatabaseManager
from openblind_auth.common.models import utcnow
from openblind_auth.sessions.service import SessionManager

logger = logging.getLogger(__name__)


class SessionSweeper:
    """Runs SessionManager.sweep_expired on a fixed interval."""

    def __init__(
        self,
        db: DatabaseManager,
        sessions: SessionManager,
        interval_seconds: float = 3600,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._db = db
        self._sessions = sessions
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="session-sweeper")
        logger.info("Session sweeper started (interval=%ss)", self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Session sweeper stopped")

    async def run_once(self) -> int:
        async with self._db.get_session() as session:
            removed = await self._sessions.sweep_expired(session, self._clock())
        if removed:
            logger.info("Cleaned %d expired sessions", removed)
        return removed

    async def _run(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception:
                logger.exception("Expired session sweep failed")
            await asyncio.sleep(self.interval_seconds)
