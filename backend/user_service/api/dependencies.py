"""
API Dependencies

FastAPI dependency providers reading the components wired up by the
application lifespan from ``app.state``.
"""

from typing import Optional

from fastapi import HTTPException, Request, status

from ..core.database import DatabaseManager
from ..infrastructure.redis.connection_factory import RedisConnectionFactory
from ..services.users.cached_user_store import CachedUserStore


def get_user_store(request: Request) -> CachedUserStore:
    """Cached user store of the running application."""
    store = getattr(request.app.state, "user_store", None)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="User store not initialized",
        )
    return store


def get_database_manager(request: Request) -> Optional[DatabaseManager]:
    return getattr(request.app.state, "database", None)


def get_redis_factory(request: Request) -> Optional[RedisConnectionFactory]:
    return getattr(request.app.state, "redis_factory", None)
