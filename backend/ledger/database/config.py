"""
Database connection management for the ledger back office.

This module wraps an SQLAlchemy asyncio engine. SQLite (through aiosqlite)
is the default so the service runs without a database server; any async
SQLAlchemy URL (for example ``postgresql+asyncpg://``) works the same way.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)


class Database:
    """
    Async database engine and session factory.

    ``open()`` verifies connectivity and creates missing tables;
    ``session()`` yields a session that commits on success and rolls back
    on error.
    """

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.echo = echo
        self.engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[async_sessionmaker] = None
        self.db_type = self._detect_database_type()

    def _detect_database_type(self) -> str:
        """Detect database type from URL."""
        if self.database_url.startswith('sqlite'):
            return 'sqlite'
        elif self.database_url.startswith('mysql'):
            return 'mysql'
        elif self.database_url.startswith('postgresql'):
            return 'postgresql'
        else:
            return 'unknown'

    def _get_engine_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {'echo': self.echo}

        if self.db_type == 'sqlite':
            # An in-memory database only lives as long as its one connection
            if ':memory:' in self.database_url or self.database_url.endswith('sqlite+aiosqlite://'):
                kwargs['poolclass'] = StaticPool
            kwargs['connect_args'] = {'check_same_thread': False}
        else:
            kwargs['pool_pre_ping'] = True

        return kwargs

    @property
    def is_open(self) -> bool:
        return self.engine is not None

    async def open(self) -> None:
        """
        Create the engine, test the connection and create missing tables.

        Raises:
            SQLAlchemyError: If the database is unreachable
        """
        if self.engine is not None:
            return

        engine = create_async_engine(self.database_url, **self._get_engine_kwargs())
        try:
            async with engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            await engine.dispose()
            logger.error(f"Failed to initialize database: {e}")
            raise

        self.engine = engine
        self._sessionmaker = async_sessionmaker(
            bind=engine,
            autoflush=False,
            expire_on_commit=False,  # Keep objects accessible after commit
        )
        logger.info(f"Database engine initialized successfully ({self.db_type})")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Get a database session with automatic commit/rollback.

        Usage:
            async with database.session() as session:
                ...
        """
        if self._sessionmaker is None:
            raise RuntimeError("Database is not open")

        session = self._sessionmaker()
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        except BaseException:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def test_connection(self) -> bool:
        if self.engine is None:
            return False
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database connection test failed: {e}")
            return False

    def get_connection_info(self) -> Dict[str, Any]:
        return {
            'database_type': self.db_type,
            'database_url': self.database_url.split('@')[-1] if '@' in self.database_url else self.database_url,
            'is_open': self.is_open,
            'echo_enabled': self.echo,
        }

    async def close(self) -> None:
        """Close database connections and clean up resources."""
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            self._sessionmaker = None
            logger.info("Database connections closed")


__all__ = ['Database']
