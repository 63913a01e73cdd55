"""
Async engine and session lifecycle, plus the connectivity and pool figures
reported by the database health/stats endpoints.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional, Dict, Any
from urllib.parse import urlparse

from sqlmodel import text
from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.core.settings import Settings
from app.db.base import Base

logger = logging.getLogger(__name__)

# sync URL prefix -> async driver prefix
ASYNC_DRIVERS = {
    "postgresql://": "postgresql+asyncpg://",
    "sqlite://": "sqlite+aiosqlite://",
}


class DatabaseManager:
    """Owns the engine and session factory for one database URL"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.engine: Optional[AsyncEngine] = None
        self.async_session: Optional[async_sessionmaker] = None
        self._stats: Dict[str, Any] = {
            "total_connections": 0,
            "active_connections": 0,
            "failed_connections": 0,
            "last_health_check": None,
            "health_status": "unknown",
        }

    def _prepare_database_url(self) -> str:
        """DB_URL rewritten to its async driver"""
        url = self.settings.DB_URL
        if not url or not urlparse(url).scheme:
            raise ValueError("DB_URL must be a database URL with a scheme")

        for sync_prefix, async_prefix in ASYNC_DRIVERS.items():
            if url.startswith(sync_prefix):
                return async_prefix + url[len(sync_prefix):]
        return url

    def _create_engine(self) -> AsyncEngine:
        url = self._prepare_database_url()
        options: Dict[str, Any] = {"echo": self.settings.DB_ECHO, "pool_pre_ping": True}
        if url.startswith("postgresql"):
            options.update(
                pool_size=self.settings.DB_POOL_SIZE,
                max_overflow=self.settings.DB_MAX_OVERFLOW,
                pool_timeout=self.settings.DB_POOL_TIMEOUT,
                pool_recycle=self.settings.DB_POOL_RECYCLE,
            )

        engine = create_async_engine(url, **options)
        self._track_connections(engine)
        logger.info(f"Database engine created for {urlparse(url).scheme}")
        return engine

    def _track_connections(self, engine: AsyncEngine) -> None:
        stats = self._stats

        def connected(dbapi_connection, connection_record):
            stats["total_connections"] += 1
            stats["active_connections"] += 1

        def closed(dbapi_connection, connection_record):
            stats["active_connections"] = max(0, stats["active_connections"] - 1)

        def failed(exception_context):
            stats["failed_connections"] += 1
            logger.error(f"Database error: {exception_context.original_exception}")

        event.listen(engine.sync_engine, "connect", connected)
        event.listen(engine.sync_engine, "close", closed)
        event.listen(engine.sync_engine, "handle_error", failed)

    def bind(self, engine: AsyncEngine) -> None:
        """Attach an engine and build the session factory on it"""
        self.engine = engine
        self.async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def initialize(self) -> None:
        self.bind(self._create_engine())
        await self.health_check()
        logger.info("Database manager initialized")

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """One session; rolled back on a storage error and always closed"""
        if not self.async_session:
            raise RuntimeError("Database manager not initialized")

        session = self.async_session()
        try:
            yield session
        except SQLAlchemyError as e:
            logger.error(f"Database session error: {e}")
            self._stats["failed_connections"] += 1
            await session.rollback()
            raise
        finally:
            await session.close()

    async def health_check(self) -> Dict[str, Any]:
        checks: Dict[str, Any] = {}
        health = {"status": "healthy", "timestamp": time.time(), "checks": checks}

        started = time.time()
        try:
            async with self.get_session() as session:
                await session.execute(text("SELECT 1"))
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            health.update(status="unhealthy", error=str(e))
            checks["connectivity"] = {"status": "fail", "error": str(e)}
        else:
            checks["connectivity"] = {"status": "pass", "response_time": f"{time.time() - started:.3f}s"}
            if self.engine.dialect.name == "postgresql":
                pool = self.engine.pool
                checks["connection_pool"] = {
                    "status": "pass",
                    "size": pool.size(),
                    "checked_out": pool.checkedout(),
                    "overflow": pool.overflow(),
                }

        self._stats["last_health_check"] = health["timestamp"]
        self._stats["health_status"] = health["status"]
        health["connection_stats"] = self.get_connection_stats()
        return health

    async def init_db(self) -> None:
        """create_all for every registered table (development; production uses Alembic)"""
        if not self.engine:
            raise RuntimeError("Database engine not initialized")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.create_all)
        logger.info("Database tables created")

    async def close(self) -> None:
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self.async_session = None
            logger.info("Database connections closed")

    def get_connection_stats(self) -> Dict[str, Any]:
        return dict(self._stats)


db_manager = DatabaseManager()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding one session per request"""
    async with db_manager.get_session() as session:
        yield session


async def database_health_check() -> Dict[str, Any]:
    return await db_manager.health_check()


def get_database_stats() -> Dict[str, Any]:
    return db_manager.get_connection_stats()
