"""
Main pytest configuration for all backend tests.

In-memory store of record and cache doubles, plus fixtures wiring them
into a CachedUserStore.
"""

import asyncio
import os
import uuid
from typing import Dict, List, Optional

import pytest

# Set test environment variables before importing app modules
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./user_service_test.db"
os.environ["LOG_LEVEL"] = "DEBUG"

from user_service.constants import get_current_timestamp
from user_service.core.config import get_settings
from user_service.domain.users.entities import User
from user_service.domain.users.repository_interfaces import (
    UserCacheRepository,
    UserStoreRepository,
)
from user_service.monitoring.cache_metrics import CacheMetricsCollector
from user_service.services.users.cached_user_store import (
    CachedUserStore,
    CachedUserStoreConfig,
)


class InMemoryUserStore(UserStoreRepository):
    """
    Store of record double.

    ``fail_with`` makes every call raise. ``read_gate`` holds reads after
    they have taken their snapshot, until set.
    """

    def __init__(self):
        self.users: Dict[str, User] = {}
        self.fail_with: Optional[Exception] = None
        self.read_gate: Optional[asyncio.Event] = None
        self.calls: List[str] = []

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if self.fail_with is not None:
            raise self.fail_with

    async def _hold(self) -> None:
        if self.read_gate is not None:
            await self.read_gate.wait()

    async def find_all(self):
        self._check("find_all")
        snapshot = list(self.users.values())
        await self._hold()
        for user in snapshot:
            yield user

    async def find_by_id(self, user_id: str) -> Optional[User]:
        self._check("find_by_id")
        user = self.users.get(user_id)
        await self._hold()
        return user

    async def save(self, user: User) -> User:
        self._check("save")
        existing = self.users.get(user.id) if user.id else None
        if existing is not None:
            saved = existing.with_details(user.name, user.age)
        else:
            saved = User(
                id=user.id or str(uuid.uuid4()),
                name=user.name,
                age=user.age,
                created_at=get_current_timestamp(),
            )
        self.users[saved.id] = saved
        return saved

    async def delete_by_id(self, user_id: str) -> bool:
        self._check("delete_by_id")
        return self.users.pop(user_id, None) is not None

    async def delete_all(self) -> int:
        self._check("delete_all")
        removed = len(self.users)
        self.users.clear()
        return removed


class InMemoryUserCache(UserCacheRepository):
    """
    Cache double.

    ``fail_with`` makes calls raise; ``fail_times`` limits how many calls
    fail before the cache recovers. ``save_gate`` blocks saves until set.
    """

    def __init__(self):
        self.entries: Dict[str, User] = {}
        self.fail_with: Optional[Exception] = None
        self.fail_times: Optional[int] = None
        self.save_gate: Optional[asyncio.Event] = None
        self.calls: List[str] = []
        self.completed: List[str] = []

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if self.fail_with is None:
            return
        if self.fail_times is None:
            raise self.fail_with
        if self.fail_times > 0:
            self.fail_times -= 1
            raise self.fail_with

    async def find_all(self):
        self._check("find_all")
        for user in list(self.entries.values()):
            yield user

    async def find_by_id(self, user_id: str) -> Optional[User]:
        self._check("find_by_id")
        return self.entries.get(user_id)

    async def save(self, user: User) -> None:
        if self.save_gate is not None:
            await self.save_gate.wait()
        self._check("save")
        self.entries[user.id] = user
        self.completed.append(f"save:{user.id}")

    async def delete_by_id(self, user_id: str) -> None:
        self._check("delete_by_id")
        self.entries.pop(user_id, None)
        self.completed.append(f"delete:{user_id}")

    async def delete_all(self) -> None:
        self._check("delete_all")
        self.entries.clear()
        self.completed.append("clear")


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Reload settings for every test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def store_repo():
    """In-memory store of record."""
    return InMemoryUserStore()


@pytest.fixture
def cache_repo():
    """In-memory cache."""
    return InMemoryUserCache()


@pytest.fixture
def metrics():
    """Metrics collector with its own registry."""
    return CacheMetricsCollector()


@pytest.fixture
def store_config():
    """Mirror retries without backoff."""
    return CachedUserStoreConfig(mirror_max_attempts=3, mirror_retry_delay=0)


@pytest.fixture
async def cached_store(store_repo, cache_repo, store_config, metrics):
    """CachedUserStore over the in-memory doubles."""
    store = CachedUserStore(store_repo, cache_repo, config=store_config, metrics=metrics)
    yield store
    await store.wait_for_pending()


@pytest.fixture
def sample_user():
    """Persisted-looking user."""
    return User(id="X", name="Eun", age=31, created_at=get_current_timestamp())
