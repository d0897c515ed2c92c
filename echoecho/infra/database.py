"""
Async database connection with SQLAlchemy ORM
"""

from typing import Optional, AsyncGenerator
from functools import lru_cache
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker, AsyncEngine
from sqlalchemy.engine import make_url

from echoecho.infra.config.settings import get_settings
from echoecho.infra.models import Base
from echoecho.core.logger.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()


async def ensure_schema(session: AsyncSession) -> None:
    """
    Create any missing tables (CREATE IF NOT EXISTS semantics).
    Idempotent and safe to run on every call, including concurrently with normal traffic.
    """
    connection = await session.connection()
    await connection.run_sync(Base.metadata.create_all, checkfirst=True)


class DatabaseManager:
    """SQLAlchemy async database manager"""

    def __init__(self, database_url: Optional[str] = None):
        self._database_url = database_url or settings.DATABASE_URL
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None

    def _engine_options(self) -> dict:
        url = make_url(self._database_url)
        options = {"echo": settings.DB_LOGGING_ENABLED, "pool_pre_ping": True}
        # SQLite uses a single-connection pool; sizing options only apply to server databases
        if not url.get_backend_name().startswith("sqlite"):
            options.update(
                pool_size=settings.DB_POOL_SIZE,
                max_overflow=settings.DB_MAX_OVERFLOW,
                pool_recycle=3600,
            )
        return options

    async def connect(self) -> AsyncEngine:
        """Initialize database engine and session factory"""
        if self._engine is not None:
            return self._engine

        url = make_url(self._database_url)
        try:
            self._engine = create_async_engine(self._database_url, **self._engine_options())

            # Create session factory
            self._session_factory = async_sessionmaker(
                self._engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False
            )

            # Test connection
            async with self._engine.begin() as conn:
                await conn.execute(text("SELECT 1"))

            logger.info(
                "Connected to database with SQLAlchemy successfully",
                extra={
                    "backend": url.get_backend_name(),
                    "host": url.host,
                    "database": url.database,
                }
            )

            return self._engine

        except Exception as e:
            logger.error(
                "Failed to connect to database",
                extra={
                    "backend": url.get_backend_name(),
                    "host": url.host,
                    "database": url.database,
                    "error": str(e)
                }
            )
            self._engine = None
            self._session_factory = None
            raise

    async def close(self):
        """Close database engine"""
        if self._engine is not None:
            await self._engine.dispose()
            logger.info("Database engine closed")
            self._engine = None
            self._session_factory = None

    async def ping(self) -> bool:
        """Check database connectivity"""
        engine = await self.connect()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    def get_engine(self) -> Optional[AsyncEngine]:
        """Get the current engine"""
        return self._engine

    def get_session_factory(self) -> Optional[async_sessionmaker]:
        """Get the session factory"""
        return self._session_factory


@lru_cache()
def get_database_manager() -> DatabaseManager:
    """Get the global database manager instance (cached)"""
    return DatabaseManager()


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database session
    Use with FastAPI Depends()
    """
    db_manager = get_database_manager()

    if db_manager.get_session_factory() is None:
        await db_manager.connect()

    session_factory = db_manager.get_session_factory()
    if session_factory is None:
        raise RuntimeError("Database session factory not initialized")

    async with session_factory() as session:
        try:
            yield session
        except Exception as e:
            await session.rollback()
            logger.error(f"Database session error: {e}")
            raise
