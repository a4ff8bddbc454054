"""Async SQLAlchemy engine and session factory, owned by a ``ContentStore``.

One store is constructed per process (or per test) and handed to the
services. ``connect()`` is idempotent: the first call builds the engine, the
pool and the tables; later calls return immediately.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from newsdesk.db.models import Base

logger = logging.getLogger(__name__)


def async_url(url: str) -> str:
    """Map a plain DSN onto its async driver."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://") and not url.startswith("sqlite+"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


class ContentStore:
    """Document store for articles, sections and stories."""

    def __init__(self, url: str) -> None:
        self._url = async_url(url)
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def connected(self) -> bool:
        return self._engine is not None

    async def connect(self) -> None:
        """Create the engine and tables on first call (idempotent)."""
        if self._engine is not None:
            return
        kwargs: dict = {"echo": False}
        if self._url.startswith("postgresql"):
            kwargs.update(pool_size=5, max_overflow=10, pool_timeout=30)
        engine = create_async_engine(self._url, **kwargs)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self._engine = engine
        self._session_factory = async_sessionmaker(engine, expire_on_commit=False)
        logger.info("Content store connected (%s)", engine.url.render_as_string(hide_password=True))

    async def close(self) -> None:
        """Dispose the engine and release the connection pool."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        if self._session_factory is None:
            await self.connect()
        assert self._session_factory is not None
        async with self._session_factory() as session:
            yield session
