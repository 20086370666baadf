"""
Repository Implementations

Concrete store of record and cache repositories for users.
"""

from .user_cache_repository import RedisUserCacheRepository
from .user_repository import SqlAlchemyUserRepository

__all__ = [
    "RedisUserCacheRepository",
    "SqlAlchemyUserRepository",
]
