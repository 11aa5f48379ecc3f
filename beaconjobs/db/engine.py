"""Async engine and session factory for the run-log database."""

from __future__ import annotations

import os

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from beaconjobs.errors import ConfigurationError

DATABASE_URL_ENV = "BEACONJOBS_DATABASE_URL"

_ASYNC_SCHEME = "postgresql+asyncpg://"
_ACCEPTED_SCHEMES = (_ASYNC_SCHEME, "postgresql://", "postgres://")

_engines: dict[str, AsyncEngine] = {}


def _normalize_url(url: str) -> str:
    """Rewrite any accepted PostgreSQL scheme to the asyncpg driver."""
    stripped = url.strip()
    for scheme in _ACCEPTED_SCHEMES:
        if stripped.startswith(scheme):
            return _ASYNC_SCHEME + stripped[len(scheme) :]
    raise ConfigurationError("run-log database must be PostgreSQL (postgresql:// or postgresql+asyncpg://)")


def resolve_database_url(database_url: str | None = None) -> str:
    """Explicit URL first, then ``BEACONJOBS_DATABASE_URL``; always asyncpg."""
    url = (database_url or os.environ.get(DATABASE_URL_ENV, "")).strip()
    if not url:
        raise ConfigurationError(f"no run-log database configured; set {DATABASE_URL_ENV} or database.url")
    return _normalize_url(url)


def create_engine(
    database_url: str | None = None,
    *,
    pool_size: int = 2,
    max_overflow: int = 3,
    pool_recycle: int = 300,
    echo: bool = False,
) -> AsyncEngine:
    """Create an engine sized for short-lived job invocations.

    A job invocation holds at most one connection for the start write and one
    for the terminal write, so the pool stays small and connections are
    recycled quickly.
    """
    return create_async_engine(
        resolve_database_url(database_url),
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_recycle=pool_recycle,
        pool_pre_ping=True,
        echo=echo,
    )


def get_engine(database_url: str | None = None) -> AsyncEngine:
    """Process-wide engine per normalized URL."""
    url = resolve_database_url(database_url)
    engine = _engines.get(url)
    if engine is None:
        engine = _engines[url] = create_engine(url)
    return engine


async def dispose_engine(database_url: str | None = None) -> None:
    """Dispose the engine for one URL, or every cached engine when None."""
    urls = list(_engines) if database_url is None else [resolve_database_url(database_url)]
    for url in urls:
        engine = _engines.pop(url, None)
        if engine is not None:
            await engine.dispose()


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
