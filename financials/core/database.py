"""Async SQLAlchemy engine and session management.

The engine is built on demand so that importing the package never opens a
connection; only the SQL storage backend asks for one.
"""

from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from financials.utils.logging import get_logger

LOGGER = get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def build_engine(
    database_url: str,
    pool_size: int = 10,
    max_overflow: int = 20,
    echo: bool = False,
) -> AsyncEngine:
    """Create an async engine for the configured database.

    Args:
        database_url: SQLAlchemy async URL (postgresql+asyncpg or sqlite+aiosqlite)
        pool_size: Connection pool size (ignored for SQLite)
        max_overflow: Pool overflow (ignored for SQLite)
        echo: Log emitted SQL

    Returns:
        AsyncEngine
    """
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=echo, future=True)

    return create_async_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        echo=echo,
        future=True,
        # Disable prepared statement cache for PgBouncer compatibility
        connect_args={"statement_cache_size": 0},
    )


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class DatabaseClient:
    """Database client with connection checks and table management."""

    def __init__(self, engine: AsyncEngine):
        """Initialize database client.

        Args:
            engine: SQLAlchemy async engine
        """
        self.engine = engine
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> bool:
        """Test database connection."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            self._connected = True
            LOGGER.info("Database connection successful")
            return True
        except Exception:
            self._connected = False
            LOGGER.error("Database connection failed", exc_info=True)
            raise

    async def disconnect(self) -> None:
        """Close database connection."""
        try:
            await self.engine.dispose()
            self._connected = False
            LOGGER.info("Database connection closed")
        except Exception as e:
            LOGGER.error(
                "Error closing database connection",
                exc_info=True,
                extra={"error": str(e)},
            )

    async def create_tables(self) -> None:
        """Create tables that don't exist yet without dropping existing ones."""
        # Import models so they register on Base.metadata
        from financials.database import models  # noqa: F401

        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            LOGGER.info("Database tables created/verified successfully")
        except Exception as e:
            LOGGER.error(
                "Failed to create database tables",
                exc_info=True,
                extra={"error": str(e)},
            )
            raise


_engine: Optional[AsyncEngine] = None


def get_engine(
    database_url: str,
    pool_size: int = 10,
    max_overflow: int = 20,
    echo: bool = False,
) -> AsyncEngine:
    """Process-wide engine, created on first use."""
    global _engine
    if _engine is None:
        _engine = build_engine(database_url, pool_size, max_overflow, echo)
    return _engine
