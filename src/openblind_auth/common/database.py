"""Async database manager for the identity, role and session stores."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from openblind_auth.common.config import OpenBlindSettings, get_settings
from openblind_auth.common.exceptions import StorageUnavailableError
from openblind_auth.common.models import Base

# Import all model modules so Base.metadata is complete for create_all().
import openblind_auth.identity.models  # noqa: F401
import openblind_auth.sessions.models  # noqa: F401
import openblind_auth.audit.models  # noqa: F401

logger = logging.getLogger(__name__)

# Driver/pool failures that mean "the store is not reachable right now".
TRANSIENT_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError)


class DatabaseManager:
    """Manages a single async database engine."""

    def __init__(self, settings: OpenBlindSettings | None = None):
        self._settings = settings or get_settings()
        self.engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    async def init(self) -> None:
        url = self._settings.db_url
        self.engine = create_async_engine(url, echo=False)
        self._session_factory = async_sessionmaker(
            self.engine, expire_on_commit=False
        )

    @property
    def initialized(self) -> bool:
        return self._session_factory is not None

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield a session that commits on success and is always released.

        Transient driver errors surface as StorageUnavailableError; the
        original exception is logged here and chained, never shown to callers.
        """
        if self._session_factory is None:
            raise RuntimeError("DatabaseManager not initialized; call init() first")
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except TRANSIENT_ERRORS as exc:
                await session.rollback()
                logger.exception("Storage unavailable")
                raise StorageUnavailableError() from exc
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        if self.engine is None:
            raise RuntimeError("DatabaseManager not initialized; call init() first")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self._session_factory = None
