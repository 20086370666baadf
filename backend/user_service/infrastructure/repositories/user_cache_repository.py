"""
Redis User Cache Repository

Infrastructure implementation of the user cache contract using Redis.

Key layout:
- ``<prefix>:<id>`` holds the JSON payload of one user
- ``<prefix>`` is a set indexing the ids of cached users
"""

import json
import logging
from typing import AsyncIterator, List, Optional

from redis.asyncio import Redis

from ...constants import DEFAULT_CACHE_KEY_PREFIX
from ...domain.users.entities import User
from ...domain.users.repository_interfaces import UserCacheRepository
from ..redis.connection_factory import RedisConnectionFactory

logger = logging.getLogger(__name__)


class RedisUserCacheRepository(UserCacheRepository):
    """Redis implementation of the user cache."""

    def __init__(
        self,
        connection_factory: RedisConnectionFactory,
        key_prefix: str = DEFAULT_CACHE_KEY_PREFIX,
        ttl_seconds: Optional[int] = None,
    ):
        if not key_prefix or any(char.isspace() for char in key_prefix):
            raise ValueError(f"Invalid cache key prefix: {key_prefix!r}")
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")

        self.connection_factory = connection_factory
        self.key_prefix = key_prefix
        self.ttl_seconds = ttl_seconds

    @property
    def index_key(self) -> str:
        return self.key_prefix

    def entry_key(self, user_id: str) -> str:
        return f"{self.key_prefix}:{user_id}"

    async def find_all(self) -> AsyncIterator[User]:
        """Iterate over cached users, skipping indexed ids whose entry expired."""

        async def _load(redis_client: Redis) -> List[Optional[str]]:
            user_ids = await redis_client.smembers(self.index_key)
            if not user_ids:
                return []
            keys = [self.entry_key(user_id) for user_id in sorted(user_ids)]
            return await redis_client.mget(keys)

        payloads = await self.connection_factory.execute("cache.find_all", _load)
        users = [self._deserialize(payload) for payload in payloads if payload]

        logger.debug(
            f"Loaded {len(users)} cached users",
            extra={"indexed": len(payloads), "cached": len(users)},
        )
        for user in users:
            yield user

    async def find_by_id(self, user_id: str) -> Optional[User]:
        """Find cached user by id."""

        async def _get(redis_client: Redis) -> Optional[str]:
            return await redis_client.get(self.entry_key(user_id))

        payload = await self.connection_factory.execute("cache.find_by_id", _get)
        return self._deserialize(payload) if payload else None

    async def save(self, user: User) -> None:
        """Cache user under its id, indexing the id."""
        if user.is_new:
            raise ValueError("Cannot cache a user without an id")

        payload = json.dumps(user.to_dict(), default=str)

        async def _set(redis_client: Redis) -> None:
            await redis_client.set(self.entry_key(user.id), payload, ex=self.ttl_seconds)
            await redis_client.sadd(self.index_key, user.id)

        await self.connection_factory.execute("cache.save", _set)
        logger.debug(f"Cached user {user.id}", extra={"user_id": user.id})

    async def delete_by_id(self, user_id: str) -> None:
        """Evict user and drop it from the index."""

        async def _delete(redis_client: Redis) -> None:
            await redis_client.delete(self.entry_key(user_id))
            await redis_client.srem(self.index_key, user_id)

        await self.connection_factory.execute("cache.delete_by_id", _delete)
        logger.debug(f"Evicted cached user {user_id}", extra={"user_id": user_id})

    async def delete_all(self) -> None:
        """Evict every indexed user and the index itself."""

        async def _clear(redis_client: Redis) -> int:
            user_ids = await redis_client.smembers(self.index_key)
            keys = [self.entry_key(user_id) for user_id in user_ids]
            return await redis_client.delete(self.index_key, *keys)

        removed = await self.connection_factory.execute("cache.delete_all", _clear)
        logger.debug(f"Cleared user cache ({removed} keys removed)")

    def _deserialize(self, payload: str) -> User:
        try:
            data = json.loads(payload)
        except ValueError as e:
            raise ValueError(f"Corrupt cached user payload: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(
                "Corrupt cached user payload: expected an object, "
                f"got {type(data).__name__}"
            )
        try:
            return User.from_dict(data)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Corrupt cached user payload: {e}") from e
