"""Base orchestrator for pipeline execution.

Provides common infrastructure for all pipeline orchestrators:
- Optional database engine and session management
- Timing and summary logging
- Common run() interface for a single channel

Usage:
    class MyOrchestrator(BaseOrchestrator):
        async def _run_pipeline(self, channel_id, guild_id):
            # Implementation
            return result

        def _log_summary(self, result, elapsed):
            # Log final statistics
            pass
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from channel_archive.db.engine import get_async_session, get_engine
from channel_archive.db.models import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker


class BaseOrchestrator(ABC):
    """Abstract base class for pipeline orchestrators.

    Provides:
    - Database engine and session factory (cached), when a URL is given
    - Table initialization
    - Timing infrastructure
    - Common run() method signature

    Subclasses must implement:
    - _run_pipeline(): The actual pipeline logic
    - _log_summary(): Log final statistics
    """

    def __init__(self, database_url: str | None = None) -> None:
        """Initialize the orchestrator.

        Args:
            database_url: Database connection URL. None or empty runs
                without a database.
        """
        self.database_url = database_url or None
        self.engine: AsyncEngine | None = None
        self.async_session: async_sessionmaker[AsyncSession] | None = None
        if self.database_url:
            self.engine = get_engine(self.database_url)
            self.async_session = get_async_session(self.database_url)
        self._db_ready = False

    async def init_db(self) -> None:
        """Create tables if they don't exist.

        Runs once per orchestrator; a no-op without a database.
        """
        if self.engine is None or self._db_ready:
            return
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self._db_ready = True

    async def run(self, channel_id: int, guild_id: int | None = None) -> Any:
        """Run the pipeline for one channel.

        Args:
            channel_id: Channel to process.
            guild_id: Guild the channel belongs to, when known.

        Returns:
            Whatever _run_pipeline() returns.
        """
        start_time = time.time()

        await self.init_db()
        result = await self._run_pipeline(channel_id=channel_id, guild_id=guild_id)

        self._log_summary(result, time.time() - start_time)
        return result

    @abstractmethod
    async def _run_pipeline(
        self,
        channel_id: int,
        guild_id: int | None = None,
    ) -> Any:
        """Execute the pipeline logic.

        Args:
            channel_id: Channel to process.
            guild_id: Guild the channel belongs to, when known.
        """
        ...

    @abstractmethod
    def _log_summary(self, result: Any, elapsed: float) -> None:
        """Log the final summary statistics.

        The orchestrator keeps no per-run state; one instance may run
        several jobs concurrently.

        Args:
            result: What _run_pipeline() returned for this run.
            elapsed: Total time elapsed in seconds.
        """
        ...
