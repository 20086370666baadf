"""
User Services

Cached user store facade and test data seeding.
"""

from .cached_user_store import (
    CachedUserStore,
    CachedUserStoreConfig,
    CachedUserStoreStats,
)
from .seed import TEST_USERS, seed_test_users

__all__ = [
    "CachedUserStore",
    "CachedUserStoreConfig",
    "CachedUserStoreStats",
    "TEST_USERS",
    "seed_test_users",
]
