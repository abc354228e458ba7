"""Async engine and session factories for the message store.

One engine (and connection pool) exists per database URL for the life of the
process. The CLI disposes them when a command finishes; the HTTP server does
so in its lifespan shutdown.

Usage:
    from channel_archive.db.engine import get_async_session

    async with get_async_session(settings.database_url)() as session:
        ...
"""

from __future__ import annotations

from functools import lru_cache

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)


_engines: dict[str, AsyncEngine] = {}


def _resolve_url(database_url: str | None) -> str:
    if database_url is None:
        from channel_archive.config.settings import get_settings

        database_url = get_settings().database_url
    if not database_url:
        raise ValueError("database_url is not configured")
    return database_url


def get_engine(database_url: str | None = None) -> AsyncEngine:
    """Return the shared engine for a URL, creating it on first use.

    Args:
        database_url: postgresql+asyncpg URL; falls back to the configured one

    Raises:
        ValueError: No database URL is configured.
    """
    url = _resolve_url(database_url)
    engine = _engines.get(url)
    if engine is None:
        # Idle pooled connections are validated before reuse
        engine = create_async_engine(url, echo=False, pool_pre_ping=True)
        _engines[url] = engine
    return engine


@lru_cache(maxsize=8)
def get_async_session(
    database_url: str | None = None,
) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False: rows are read after the stage's commit
    return async_sessionmaker(bind=get_engine(database_url), expire_on_commit=False)


async def dispose_engines() -> None:
    """Close every pooled connection and forget the cached engines."""
    while _engines:
        _, engine = _engines.popitem()
        await engine.dispose()
    get_async_session.cache_clear()
