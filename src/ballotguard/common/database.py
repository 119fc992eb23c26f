"""Async database manager for Ballotguard (single-DB)."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Awaitable, Callable, TypeVar

from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ballotguard.common.config import BallotguardSettings, get_settings
from ballotguard.common.models import Base

# Import all model modules so Base.metadata is complete for create_all().
import ballotguard.elections.models  # noqa: F401
import ballotguard.secret_codes.models  # noqa: F401
import ballotguard.eligibility.models  # noqa: F401
import ballotguard.votes.models  # noqa: F401
import ballotguard.audit.models  # noqa: F401

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DatabaseManager:
    """Manages a single async database engine."""

    def __init__(self, settings: BallotguardSettings | None = None):
        self._settings = settings or get_settings()
        self.engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    async def init(self) -> None:
        url = self._settings.db_url
        self.engine = create_async_engine(url, echo=False)
        self._session_factory = async_sessionmaker(
            self.engine, expire_on_commit=False
        )

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        if self._session_factory is None:
            raise RuntimeError("DatabaseManager not initialized; call init() first")
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def run(
        self,
        operation: Callable[[AsyncSession], Awaitable[T]],
        retries: int | None = None,
    ) -> T:
        """Run ``operation`` in its own transaction, retrying transient failures.

        Only ``OperationalError`` (storage unavailable, lock timeouts) is
        retried; domain errors propagate on the first attempt.
        """
        attempts = self._settings.db_retry_attempts if retries is None else retries
        attempts = max(1, attempts)
        for attempt in range(attempts):
            try:
                async with self.get_session() as session:
                    return await operation(session)
            except OperationalError:
                if attempt == attempts - 1:
                    raise
                delay = self._settings.db_retry_backoff * (2 ** attempt)
                logger.warning(
                    "Transient storage failure, retrying in %.2fs (attempt %d/%d)",
                    delay, attempt + 1, attempts,
                )
                await asyncio.sleep(delay)
        raise RuntimeError("unreachable")

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


async def insert_ignore(
    session: AsyncSession, table: Table, values: dict[str, Any],
) -> bool:
    """INSERT that skips rows rejected by a unique constraint.

    Returns True when the row was written, False when a conflicting row
    already existed.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(table).values(**values).on_conflict_do_nothing()
    elif dialect == "sqlite":
        stmt = sqlite.insert(table).values(**values).on_conflict_do_nothing()
    else:
        raise NotImplementedError(f"insert_ignore not supported for {dialect}")
    result = await session.execute(stmt)
    return result.rowcount == 1
