"""Database connection and session management for PostgreSQL using SQLAlchemy with async support.

Writes go to the primary; catalog queries go to a read replica through a
separate engine whose connections default to read-only transactions.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)

from .config import get_global_settings


class DatabaseManager:
    """Database connection and session manager for the primary and the replica."""

    def __init__(self):
        """Initialize database manager with async engines."""
        settings = get_global_settings()
        self.database_url = settings.database_url
        self.replica_database_url = settings.replica_database_url

        self.engine = create_async_engine(
            self.database_url,
            echo=settings.debug,  # Enable SQL logging in debug mode
            future=True,
        )
        self.read_engine = self._create_read_engine(settings.debug)

        self.async_session_factory = self._session_factory(self.engine)
        self.read_session_factory = self._session_factory(self.read_engine)

    def _create_read_engine(self, echo: bool) -> AsyncEngine:
        return create_async_engine(
            self.replica_database_url,
            echo=echo,
            future=True,
            connect_args={
                "server_settings": {"default_transaction_read_only": "on"},
            },
        )

    @staticmethod
    def _session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
        return async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a primary database session with proper cleanup."""
        async with self.async_session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    @asynccontextmanager
    async def get_read_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a read-replica session. Nothing is ever committed on it."""
        async with self.read_session_factory() as session:
            try:
                yield session
            finally:
                await session.rollback()
                await session.close()

    async def close(self) -> None:
        """Close database connections."""
        await self.engine.dispose()
        await self.read_engine.dispose()


# Global database manager instance
db_manager = DatabaseManager()


# Dependency for FastAPI routes
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Fastapi dependency for getting a primary database session."""
    async with db_manager.get_session() as session:
        yield session


async def get_read_db() -> AsyncGenerator[AsyncSession, None]:
    """Fastapi dependency for getting a read-replica session."""
    async with db_manager.get_read_session() as session:
        yield session
