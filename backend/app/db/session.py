import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import event, text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.config import Settings

logger = logging.getLogger("webide.db")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _is_sqlite_memory(url: URL) -> bool:
    database = url.database or ""
    return database in ("", ":memory:") or url.query.get("mode") == "memory"


class Database:
    """
    Owns the engine (connection pool) and the session factory.

    Constructed explicitly by the application factory and disposed on shutdown.
    The engine itself is only built on first use, so importing or constructing
    the application never opens a pool.
    """

    def __init__(
        self,
        url: str,
        *,
        echo: bool = False,
        pool_size: int = 10,
        max_overflow: int = 20,
        pool_timeout: int = 30,
        statement_timeout_ms: Optional[int] = None,
    ):
        self.url = url
        parsed = make_url(url)
        self.backend = parsed.get_backend_name()

        engine_kwargs: dict = {"echo": echo}
        if self.backend == "sqlite" and _is_sqlite_memory(parsed):
            # One shared connection keeps the in-memory database alive across sessions.
            # Concurrent sessions share its transaction and are not isolated from each other.
            engine_kwargs.update(poolclass=StaticPool, connect_args={"check_same_thread": False})
        elif self.backend == "sqlite":
            # Each session gets its own connection; writers wait on the file lock
            engine_kwargs["connect_args"] = {"timeout": pool_timeout}
        else:
            # - pool_pre_ping: verify connections are alive before use
            # - pool_recycle: recycle connections after 1 hour to avoid DB-side timeouts
            engine_kwargs.update(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_pre_ping=True,
                pool_recycle=3600,
                pool_timeout=pool_timeout,
            )
            if self.backend == "postgresql" and statement_timeout_ms:
                engine_kwargs["connect_args"] = {
                    "server_settings": {"statement_timeout": str(statement_timeout_ms)}
                }
        self._engine_kwargs = engine_kwargs
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            settings.DATABASE_URL,
            echo=settings.SQLALCHEMY_ECHO,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            statement_timeout_ms=settings.DB_STATEMENT_TIMEOUT_MS,
        )

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = create_async_engine(self.url, **self._engine_kwargs)
            if self.backend == "sqlite":
                event.listen(self._engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
            logger.debug(f"Created {self.backend} engine")
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker:
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)
        return self._session_factory

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Yield a session; anything left uncommitted is rolled back when the
        block exits with an error, so partial writes are never persisted.
        """
        async with self.session_factory() as session:
            try:
                yield session
            except BaseException:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        """Create all tables (development and tests; production uses Alembic)."""
        from app.db.base import Base

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        from app.db.base import Base

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def check_connection(self) -> bool:
        """
        Verify database connectivity. Used by health checks.
        Returns True if connection is successful, False otherwise.
        """
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning(f"Database health check failed: {e.__class__.__name__}")
            return False

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
