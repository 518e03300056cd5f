"""Audit sink: fire-and-forget, append-only event log."""

import asyncio
import logging
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from openblind_auth.audit.models import AuditEventModel
from openblind_auth.common.database import DatabaseManager
from openblind_auth.common.models import utcnow

logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    """Anything that accepts audit events without blocking the caller."""

    def append(
        self,
        action: str,
        resource: str,
        resource_id: str | None = None,
        actor_id: str | None = None,
        details: dict[str, Any] | None = None,
        timestamp: datetime | None = None,
    ) -> None: ...


class AuditService:
    """Writes audit events to the audit_events table.

    ``append`` schedules the write on its own database session and returns
    immediately; the caller's transaction, outcome and latency are unaffected
    by the audit store. Write failures are logged and dropped.
    """

    def __init__(self, db: DatabaseManager):
        self._db = db
        self._pending: set[asyncio.Task] = set()

    def append(
        self,
        action: str,
        resource: str,
        resource_id: str | None = None,
        actor_id: str | None = None,
        details: dict[str, Any] | None = None,
        timestamp: datetime | None = None,
    ) -> None:
        timestamp = timestamp or utcnow()
        details = details or {}
        logger.info(
            "AUDIT %s %s/%s by %s", action, resource, resource_id, actor_id,
            extra={"audit_action": action, "audit_details": details},
        )
        try:
            task = asyncio.get_running_loop().create_task(
                self._write(action, resource, resource_id, actor_id, details, timestamp)
            )
        except RuntimeError:
            logger.exception("Audit event %s dropped: no running event loop", action)
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def record(
        self,
        session: AsyncSession,
        action: str,
        resource: str,
        resource_id: str | None = None,
        actor_id: str | None = None,
        details: dict[str, Any] | None = None,
        timestamp: datetime | None = None,
    ) -> AuditEventModel:
        """Append an event inside the caller's transaction."""
        event = AuditEventModel(
            action=action,
            resource=resource,
            resource_id=resource_id,
            actor_id=actor_id,
            detail=details or {},
            occurred_at=timestamp or utcnow(),
        )
        session.add(event)
        await session.flush()
        return event

    async def drain(self) -> None:
        """Wait for every scheduled write to finish (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _write(
        self,
        action: str,
        resource: str,
        resource_id: str | None,
        actor_id: str | None,
        details: dict[str, Any],
        timestamp: datetime,
    ) -> None:
        try:
            async with self._db.get_session() as session:
                await self.record(
                    session, action, resource, resource_id, actor_id, details, timestamp
                )
        except Exception:
            logger.exception("Failed to write audit event %s", action)
