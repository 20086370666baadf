"""
User Service Database Configuration

Async SQLAlchemy connection management for the store of record:
- Connection pooling from settings (PostgreSQL)
- Connection retry logic with exponential backoff
- Optional schema creation at startup
- Health checks for the /health endpoint
"""

import time
from typing import Any, Dict, Optional

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)
import structlog

from .config import Settings
from ..models import Base

logger = structlog.get_logger()


class DatabaseManager:
    """
    Database connection manager for the store of record.

    Owns the AsyncEngine and the session factory handed to repositories.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None

    @property
    def session_factory(self) -> async_sessionmaker:
        """Session factory for repositories."""
        if self._session_factory is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._session_factory

    def _engine_options(self) -> Dict[str, Any]:
        """Engine keyword arguments; SQLite keeps the dialect's default pool."""
        options: Dict[str, Any] = {"echo": self.settings.DEBUG}
        if not self.settings.is_sqlite:
            options.update(
                pool_size=self.settings.DATABASE_POOL_SIZE,
                max_overflow=self.settings.DATABASE_MAX_OVERFLOW,
                pool_timeout=self.settings.DATABASE_POOL_TIMEOUT,
                pool_recycle=self.settings.DATABASE_POOL_RECYCLE,
                pool_pre_ping=True,
            )
        return options

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((OperationalError, ConnectionError, OSError)),
        before_sleep=lambda retry_state: logger.warning(
            "Database connection retry",
            attempt=retry_state.attempt_number,
            wait_time=retry_state.next_action.sleep,
        ),
        reraise=True,
    )
    async def _connect(self, engine: AsyncEngine) -> None:
        """Verify connectivity with retry."""
        async with engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            if result.scalar() != 1:
                raise RuntimeError("Database probe returned unexpected result")

    async def initialize(self) -> None:
        """Create engine, verify connectivity and optionally create tables."""
        if self._session_factory is not None:
            return

        engine = create_async_engine(self.settings.DATABASE_URL, **self._engine_options())

        try:
            await self._connect(engine)

            if self.settings.DATABASE_CREATE_TABLES:
                async with engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)

        except Exception as e:
            await engine.dispose()
            logger.error(
                "Database initialization failed",
                error=str(e),
                exc_info=True,
            )
            raise

        self.engine = engine
        self._session_factory = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

        logger.info(
            "Database initialized",
            dialect=engine.dialect.name,
            create_tables=self.settings.DATABASE_CREATE_TABLES,
        )

    async def health_check(self) -> Dict[str, Any]:
        """Check database connectivity."""
        if self.engine is None:
            return {"status": "unhealthy", "error": "Database not initialized"}

        start_time = time.time()
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return {
                "status": "healthy",
                "response_time_ms": round((time.time() - start_time) * 1000, 2),
            }
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {"status": "unhealthy", "error": str(e)}

    async def close(self) -> None:
        """Close database connections and cleanup resources."""
        if self.engine is not None:
            await self.engine.dispose()
            logger.info("Database connections closed")
        self.engine = None
        self._session_factory = None
