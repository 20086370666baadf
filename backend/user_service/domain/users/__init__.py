"""
User Domain Module

Domain entity and repository contracts for the user store.
"""

from .entities import User
from .repository_interfaces import UserCacheRepository, UserStoreRepository

__all__ = [
    "User",
    "UserCacheRepository",
    "UserStoreRepository",
]
