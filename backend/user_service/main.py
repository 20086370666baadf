"""
User Service - Main FastAPI Application

Wires the store of record, the Redis cache and the cached user store
facade together and exposes them over HTTP.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
import structlog

from .api.endpoints.health import router as health_router
from .api.endpoints.users import router as users_router
from .constants import APP_NAME, APP_VERSION
from .core.config import get_settings
from .core.correlation import CorrelationIdMiddleware
from .core.database import DatabaseManager
from .core.logging import configure_logging
from .infrastructure.redis.connection_factory import RedisConnectionFactory
from .infrastructure.repositories import (
    RedisUserCacheRepository,
    SqlAlchemyUserRepository,
)
from .services.users import CachedUserStore, CachedUserStoreConfig, seed_test_users

logger = structlog.get_logger()


# Application lifecycle management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the store of record and the cache, drain mirrors on shutdown."""
    settings = get_settings()
    configure_logging(
        service_name=settings.SERVICE_NAME,
        log_level=settings.LOG_LEVEL,
        json_logs=settings.LOG_JSON,
    )
    logger.info(
        "Starting User Service",
        version=APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    database = DatabaseManager(settings)
    await database.initialize()

    redis_factory = RedisConnectionFactory.from_settings(settings)
    await redis_factory.initialize()
    redis_health = await redis_factory.health_check()
    if redis_health["status"] != "healthy":
        logger.warning(
            "Redis unavailable at startup, serving from the store of record",
            error=redis_health.get("error"),
        )

    user_store = CachedUserStore(
        store=SqlAlchemyUserRepository(database.session_factory),
        cache=RedisUserCacheRepository(
            redis_factory,
            key_prefix=settings.CACHE_KEY_PREFIX,
            ttl_seconds=settings.CACHE_ENTRY_TTL_SECONDS,
        ),
        config=CachedUserStoreConfig.from_settings(settings),
    )

    app.state.database = database
    app.state.redis_factory = redis_factory
    app.state.user_store = user_store

    if settings.SEED_TEST_DATA:
        await seed_test_users(user_store)

    logger.info("User Service started successfully")

    yield

    # Shutdown
    logger.info("Shutting down User Service")
    try:
        await user_store.close()
        await redis_factory.close()
    finally:
        await database.close()
    logger.info("Application shutdown completed")


def create_app() -> FastAPI:
    """Create the FastAPI application."""
    app = FastAPI(
        title=APP_NAME,
        description="User CRUD service with a Redis read-through cache",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    # Add correlation ID middleware for request tracking
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(health_router, tags=["health"])
    app.include_router(users_router, tags=["users"])
    return app


app = create_app()


def run() -> None:
    """Run the API server with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "user_service.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.API_RELOAD,
    )


if __name__ == "__main__":
    run()
