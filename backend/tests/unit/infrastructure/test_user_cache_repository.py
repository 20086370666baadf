"""
Unit tests for the Redis user cache repository.

Runs against an in-memory Redis double injected into the connection
factory, so the circuit breaker and error mapping stay in the path.
"""

import json
from typing import Dict, Optional, Set

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from user_service.constants import get_current_timestamp
from user_service.domain.users.entities import User
from user_service.infrastructure.redis import (
    CircuitBreakerConfig,
    RedisCircuitBreakerOpenException,
    RedisConnectionException,
    RedisConnectionFactory,
)
from user_service.infrastructure.repositories.user_cache_repository import (
    RedisUserCacheRepository,
)


class FakeRedis:
    """Subset of redis.asyncio.Redis with decode_responses=True semantics."""

    def __init__(self):
        self.strings: Dict[str, str] = {}
        self.sets: Dict[str, Set[str]] = {}
        self.expiry: Dict[str, Optional[int]] = {}
        self.fail_with: Optional[Exception] = None

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    async def ping(self) -> bool:
        self._check()
        return True

    async def get(self, key: str) -> Optional[str]:
        self._check()
        return self.strings.get(key)

    async def mget(self, keys):
        self._check()
        return [self.strings.get(key) for key in keys]

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        self._check()
        self.strings[key] = value
        self.expiry[key] = ex
        return True

    async def sadd(self, key: str, *members: str) -> int:
        self._check()
        current = self.sets.setdefault(key, set())
        added = len(set(members) - current)
        current.update(members)
        return added

    async def srem(self, key: str, *members: str) -> int:
        self._check()
        current = self.sets.get(key, set())
        removed = len(current & set(members))
        current.difference_update(members)
        if not current:
            self.sets.pop(key, None)
        return removed

    async def smembers(self, key: str) -> Set[str]:
        self._check()
        return set(self.sets.get(key, set()))

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            if self.strings.pop(key, None) is not None:
                removed += 1
            if self.sets.pop(key, None) is not None:
                removed += 1
        return removed

    def expire_now(self, key: str) -> None:
        """Simulate TTL expiry of a string key."""
        self.strings.pop(key, None)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def connection_factory(fake_redis):
    return RedisConnectionFactory(
        client=fake_redis,
        circuit_breaker_config=CircuitBreakerConfig(
            failure_threshold=2,
            recovery_timeout=60.0,
            failure_exceptions=(RedisConnectionError, ConnectionError, OSError),
        ),
    )


@pytest.fixture
def cache(connection_factory):
    return RedisUserCacheRepository(connection_factory)


def make_user(user_id: str, name: str = "Eun", age: int = 31) -> User:
    return User(id=user_id, name=name, age=age, created_at=get_current_timestamp())


async def collect(iterator):
    return [item async for item in iterator]


class TestRedisUserCacheRepository:
    """Test key layout and operations."""

    @pytest.mark.asyncio
    async def test_save_uses_entry_key_and_index(self, cache, fake_redis):
        user = make_user("X")

        await cache.save(user)

        assert json.loads(fake_redis.strings["users:X"]) == user.to_dict()
        assert fake_redis.sets["users"] == {"X"}
        assert fake_redis.expiry["users:X"] is None

    @pytest.mark.asyncio
    async def test_save_applies_ttl(self, connection_factory, fake_redis):
        cache = RedisUserCacheRepository(connection_factory, ttl_seconds=300)

        await cache.save(make_user("X"))

        assert fake_redis.expiry["users:X"] == 300

    @pytest.mark.asyncio
    async def test_custom_prefix(self, connection_factory, fake_redis):
        cache = RedisUserCacheRepository(connection_factory, key_prefix="people")

        await cache.save(make_user("X"))

        assert "people:X" in fake_redis.strings
        assert fake_redis.sets["people"] == {"X"}

    @pytest.mark.asyncio
    async def test_find_by_id(self, cache):
        user = make_user("X")
        await cache.save(user)

        assert await cache.find_by_id("X") == user
        assert await cache.find_by_id("missing") is None

    @pytest.mark.asyncio
    async def test_find_all_sorted_by_id(self, cache):
        for user_id, name in (("c", "Sua"), ("a", "Eun"), ("b", "Joe")):
            await cache.save(make_user(user_id, name=name))

        users = await collect(cache.find_all())

        assert [user.id for user in users] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_find_all_skips_expired_entries(self, cache, fake_redis):
        await cache.save(make_user("a"))
        await cache.save(make_user("b"))
        fake_redis.expire_now("users:a")

        users = await collect(cache.find_all())

        assert [user.id for user in users] == ["b"]

    @pytest.mark.asyncio
    async def test_find_all_empty(self, cache):
        assert await collect(cache.find_all()) == []

    @pytest.mark.asyncio
    async def test_delete_by_id(self, cache, fake_redis):
        await cache.save(make_user("a"))
        await cache.save(make_user("b"))

        await cache.delete_by_id("a")

        assert "users:a" not in fake_redis.strings
        assert fake_redis.sets["users"] == {"b"}

    @pytest.mark.asyncio
    async def test_delete_all_leaves_other_keys(self, cache, fake_redis):
        await cache.save(make_user("a"))
        await cache.save(make_user("b"))
        fake_redis.strings["sessions:1"] = "keep"

        await cache.delete_all()

        assert fake_redis.strings == {"sessions:1": "keep"}
        assert "users" not in fake_redis.sets

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", ["[]", "42", '"Eun"', "null"])
    async def test_non_object_payload_raises_value_error(
        self, cache, fake_redis, payload
    ):
        fake_redis.strings["users:X"] = payload

        with pytest.raises(ValueError, match="expected an object"):
            await cache.find_by_id("X")

    @pytest.mark.asyncio
    async def test_corrupt_payload_raises_value_error(self, cache, fake_redis):
        fake_redis.strings["users:X"] = "{not json"

        with pytest.raises(ValueError, match="Corrupt cached user payload"):
            await cache.find_by_id("X")

    @pytest.mark.asyncio
    async def test_save_requires_id(self, cache):
        with pytest.raises(ValueError, match="without an id"):
            await cache.save(User(name="Eun"))

    def test_invalid_construction(self, connection_factory):
        with pytest.raises(ValueError):
            RedisUserCacheRepository(connection_factory, key_prefix="bad prefix")
        with pytest.raises(ValueError):
            RedisUserCacheRepository(connection_factory, key_prefix="")
        with pytest.raises(ValueError):
            RedisUserCacheRepository(connection_factory, ttl_seconds=0)


class TestCacheFailures:
    """Redis failures surface as RedisException subclasses."""

    @pytest.mark.asyncio
    async def test_connection_error_mapped(self, cache, fake_redis):
        fake_redis.fail_with = RedisConnectionError("connection refused")

        with pytest.raises(RedisConnectionException) as exc_info:
            await cache.find_by_id("X")

        assert isinstance(exc_info.value.__cause__, RedisConnectionError)
        assert exc_info.value.error_code == "REDIS_CONNECTION_ERROR"

    @pytest.mark.asyncio
    async def test_circuit_opens_after_threshold(
        self, cache, fake_redis, connection_factory
    ):
        fake_redis.fail_with = RedisConnectionError("connection refused")

        for _ in range(2):
            with pytest.raises(RedisConnectionException):
                await cache.save(make_user("X"))

        fake_redis.fail_with = None
        with pytest.raises(RedisCircuitBreakerOpenException):
            await cache.find_by_id("X")

        status = connection_factory.circuit_breaker.get_status()
        assert status["state"] == "open"
        assert status["metrics"]["rejected_calls"] == 1

    @pytest.mark.asyncio
    async def test_health_check_reports_failure(self, connection_factory, fake_redis):
        fake_redis.fail_with = RedisConnectionError("connection refused")

        health = await connection_factory.health_check()

        assert health["status"] == "unhealthy"
        assert health["error_code"] == "REDIS_CONNECTION_ERROR"

    @pytest.mark.asyncio
    async def test_health_check_healthy(self, connection_factory):
        health = await connection_factory.health_check()

        assert health["status"] == "healthy"
        assert "response_time_ms" in health
