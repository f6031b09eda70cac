"""Database configuration for Orderbook Service"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, TypeVar

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ..models.base import OrderbookBase

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OrderbookDatabaseManager:
    """Owns the async engine, the bounded connection pool and transaction scoping."""

    def __init__(
        self,
        database_url: str,
        echo: bool = False,
        pool_size: int = 20,
        max_overflow: int = 40,
    ) -> None:
        engine_kwargs: Dict[str, Any] = {"echo": echo}

        if "sqlite" in database_url:
            # SQLite configuration for development and tests
            engine_kwargs["connect_args"] = {"timeout": 60}
        else:
            # PostgreSQL configuration
            engine_kwargs.update(
                {
                    "pool_size": pool_size,
                    "max_overflow": max_overflow,
                    "pool_timeout": 30,
                    "pool_recycle": 3600,
                    "pool_pre_ping": True,
                    "connect_args": {
                        "command_timeout": 30,
                        "server_settings": {"jit": "off"},
                    },
                }
            )

        self.database_url = database_url
        self.async_engine = create_async_engine(database_url, **engine_kwargs)
        self.async_session_maker = async_sessionmaker(
            bind=self.async_engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    async def create_tables(self) -> None:
        """Create all Orderbook Service database tables."""
        async with self.async_engine.begin() as conn:
            await conn.run_sync(OrderbookBase.metadata.create_all, checkfirst=True)
        logger.info("Database tables ensured", extra={"operation": "create_tables"})

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Session for read-only work; nothing is committed."""
        async with self.async_session_maker() as session:
            yield session

    async def run_in_transaction(
        self, operation: Callable[[AsyncSession], Awaitable[T]]
    ) -> T:
        """Run ``operation`` in one transaction.

        Commits when the operation returns and rolls back on any exception,
        which is re-raised to the caller.
        """
        async with self.async_session_maker() as session:
            async with session.begin():
                return await operation(session)

    async def health_check(self) -> bool:
        try:
            async with self.async_engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning(
                "Database health check failed",
                extra={"error": str(e), "operation": "database_health_check"},
            )
            return False

    async def close(self) -> None:
        """Close the engine and release every pooled connection."""
        await self.async_engine.dispose()
        logger.info("Database connections closed", extra={"operation": "close_database"})
